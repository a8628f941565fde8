# -*- coding: utf-8 -*-

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict


log = logging.getLogger("wordbatch.workspace")


@dataclass(frozen=True)
class Workspace:
    """
    Per-user data directory:
      - settings.json   (LLM API settings, optional)
      - logs/           (launcher / CLI log files)

    Analysis progress itself is never written here; it lives in memory for one run.
    """

    data_dir: Path

    @staticmethod
    def default() -> "Workspace":
        return Workspace(Path.home() / ".wordbatch")

    @staticmethod
    def from_env() -> "Workspace":
        env_dir = (os.environ.get("WORDBATCH_DATA_DIR", "") or "").strip()
        if env_dir:
            return Workspace(Path(env_dir).expanduser())
        return Workspace.default()

    def ensure_dirs(self) -> None:
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.warning("cannot create %s: %s", self.logs_dir, e)

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def settings_path(self) -> Path:
        return self.data_dir / "settings.json"

    def load_settings(self) -> Dict[str, Any]:
        p = self.settings_path
        if not p.exists():
            return {}
        try:
            with open(p, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log.warning("ignoring unreadable settings file %s: %s", p, e)
            return {}
        return data if isinstance(data, dict) else {}
