# -*- coding: utf-8 -*-
"""
WordBatch: batch vocabulary (phonics) analysis with live progress.

Public API (stable):
  - WordBatch
  - RunConfig
  - ProgressStore
  - BatchScheduler
"""

from __future__ import annotations

from vpa.analysis_types import BatchAnalysisResult, InvalidRunConfig, ProgressSnapshot, RunConfig
from vpa.batch_scheduler import BatchScheduler
from vpa.progress_store import ProgressStore

from ._version import VERSION as __version__
from .api import RunHandle, WordBatch
from .runner import AnalysisRunError
from .workspace import Workspace

__all__ = [
    "WordBatch",
    "RunHandle",
    "RunConfig",
    "InvalidRunConfig",
    "AnalysisRunError",
    "ProgressStore",
    "ProgressSnapshot",
    "BatchScheduler",
    "BatchAnalysisResult",
    "Workspace",
    "__version__",
]
