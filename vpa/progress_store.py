# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from .analysis_types import (
    OVERALL_ANALYZING,
    OVERALL_COMPLETED,
    OVERALL_EXTRACTING,
    OVERALL_IDLE,
    AnalysisProgress,
    ExtractionProgress,
    ProgressSnapshot,
    WordStatus,
)


log = logging.getLogger("wordbatch.store")


def _overall_status(extraction: Optional[ExtractionProgress], analysis: Optional[AnalysisProgress]) -> str:
    if analysis is not None:
        if int(analysis.completed_words) >= int(analysis.total_words):
            return OVERALL_COMPLETED
        return OVERALL_ANALYZING
    if extraction is not None:
        return OVERALL_EXTRACTING
    return OVERALL_IDLE


def _current_step(extraction: Optional[ExtractionProgress], analysis: Optional[AnalysisProgress]) -> str:
    if analysis is not None:
        bi = analysis.batch_info
        total = int(bi.total_batches or 0)
        n = min(int(bi.completed_batches) + 1, total) if total > 0 else 0
        return f"batch {n}/{total}"
    if extraction is not None:
        return f"extracting {int(extraction.extracted_words)}/{int(extraction.total_words)}"
    return "preparing"


class ProgressStore:
    """
    Shared progress state of one in-flight (or most recently finished) run.

    Each slice has its own lock so a cancellation check never waits on a
    word-status write and a poller never waits on an unrelated writer:
      - extraction progress
      - analysis progress
      - word-status table
      - cancellation flag
    plus a small run-outcome slice (finished / terminal error).

    snapshot() is consistent per slice, not transactionally across slices.
    """

    def __init__(self):
        self._extraction_lock = threading.Lock()
        self._extraction: Optional[ExtractionProgress] = None

        self._analysis_lock = threading.Lock()
        self._analysis: Optional[AnalysisProgress] = None

        self._words_lock = threading.Lock()
        self._words: Dict[str, WordStatus] = {}

        self._cancel_lock = threading.Lock()
        self._cancelled = False

        self._outcome_lock = threading.Lock()
        self._finished = False
        self._error: Optional[str] = None

    def start_run(self) -> None:
        with self._cancel_lock:
            self._cancelled = False
        self._reset_progress()
        log.debug("progress store reset for new run")

    def _reset_progress(self) -> None:
        with self._extraction_lock:
            self._extraction = None
        with self._analysis_lock:
            self._analysis = None
        with self._words_lock:
            self._words = {}
        with self._outcome_lock:
            self._finished = False
            self._error = None

    def update_extraction(self, progress: ExtractionProgress) -> None:
        with self._extraction_lock:
            self._extraction = progress

    def update_analysis(self, progress: AnalysisProgress) -> None:
        with self._analysis_lock:
            self._analysis = progress

    def upsert_word_status(self, status: WordStatus) -> None:
        with self._words_lock:
            self._words[status.word] = status

    def word_status(self, word: str) -> Optional[WordStatus]:
        with self._words_lock:
            return self._words.get(word)

    def finish_run(self, error: Optional[str] = None) -> None:
        with self._outcome_lock:
            self._finished = True
            self._error = (str(error).strip() or None) if error else None

    def request_cancel(self) -> None:
        with self._cancel_lock:
            self._cancelled = True

    def is_cancelled(self) -> bool:
        # A bool read is atomic; the lock only orders it against start_run().
        if not self._cancel_lock.acquire(blocking=False):
            return bool(self._cancelled)
        try:
            return bool(self._cancelled)
        finally:
            self._cancel_lock.release()

    def clear(self) -> None:
        """Reset progress slices. The cancellation flag is left as is."""
        self._reset_progress()

    def snapshot(self) -> ProgressSnapshot:
        with self._extraction_lock:
            extraction = self._extraction
        with self._analysis_lock:
            analysis = self._analysis
        with self._words_lock:
            words = dict(self._words)
        with self._outcome_lock:
            finished = self._finished
            error = self._error
        return ProgressSnapshot(
            overall_status=_overall_status(extraction, analysis),
            current_step=_current_step(extraction, analysis),
            extraction=extraction,
            analysis=analysis,
            word_statuses=words,
            cancelled=self.is_cancelled(),
            finished=finished,
            error=error,
        )
