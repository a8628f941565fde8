# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import logging.config
import os
import sys
from pathlib import Path
from typing import Optional


def resolve_log_path(data_dir: Path, name: str = "wordbatch.log") -> Path:
    raw = (os.environ.get("WORDBATCH_LOG_FILE") or "").strip()
    p = Path(raw).expanduser() if raw else data_dir.joinpath("logs", name)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass
    return p


def build_log_config(log_path: Optional[Path], *, level: str = "INFO") -> dict:
    handlers: dict = {}
    handler_names = []
    if log_path is not None:
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "filename": str(log_path),
            "encoding": "utf-8",
        }
        handler_names.append("file")
    # pythonw has no console; only add stderr when available.
    if getattr(sys, "stderr", None) is not None:
        handlers["stderr"] = {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stderr",
        }
        handler_names.append("stderr")

    level = (level or "INFO").upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"}},
        "handlers": handlers,
        "loggers": {
            "wordbatch": {"handlers": handler_names, "level": level, "propagate": False},
            "uvicorn": {"handlers": handler_names, "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": handler_names, "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": handler_names, "level": "INFO", "propagate": False},
        },
        "root": {"handlers": handler_names, "level": "WARNING"},
    }


def configure_logging(log_path: Optional[Path], *, level: str = "INFO") -> dict:
    cfg = build_log_config(log_path, level=level)
    try:
        logging.config.dictConfig(cfg)
    except (ValueError, OSError):
        logging.basicConfig(level=logging.INFO)
    return cfg
