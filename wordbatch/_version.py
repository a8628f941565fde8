# -*- coding: utf-8 -*-

from __future__ import annotations

from pathlib import Path


def _read_version_from_pyproject() -> str:
    # Running from a source checkout without installation.
    try:
        import tomllib  # py>=3.11
    except ImportError:
        return "0.0.0"

    pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
    if not pyproject.exists():
        return "0.0.0"
    try:
        with open(pyproject, "rb") as f:
            data = tomllib.load(f)
    except (OSError, ValueError):
        return "0.0.0"
    proj = data.get("project", {}) if isinstance(data, dict) else {}
    v = str(proj.get("version", "") or "").strip() if isinstance(proj, dict) else ""
    return v or "0.0.0"


def _read_version_from_metadata() -> str:
    from importlib.metadata import PackageNotFoundError, version

    try:
        return str(version("wordbatch") or "").strip() or "0.0.0"
    except PackageNotFoundError:
        return "0.0.0"


VERSION = _read_version_from_metadata()
if VERSION == "0.0.0":
    VERSION = _read_version_from_pyproject()

__version__ = VERSION

__all__ = ["VERSION", "__version__"]
