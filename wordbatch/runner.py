# -*- coding: utf-8 -*-

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from vpa.openai_compat import OpenAICompatClient, OpenAICompatConfig, mask_secret, normalize_base_url
from vpa.phonics_client import PhonicsAnalysisClient

from .workspace import Workspace


DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"

ENV_API_KEY = ["WORDBATCH_LLM_API_KEY", "OPENAI_API_KEY"]
ENV_BASE_URL = ["WORDBATCH_LLM_BASE_URL", "OPENAI_BASE_URL"]
ENV_MODEL = ["WORDBATCH_LLM_MODEL", "OPENAI_MODEL"]


class AnalysisRunError(RuntimeError):
    pass


@dataclass(frozen=True)
class LLMConfig:
    api_key: str
    base_url: str
    model: str
    source: str  # "env" | "settings" | "mixed" | "missing"


def _env_any(names: List[str]) -> str:
    for n in names:
        v = (os.environ.get(n, "") or "").strip()
        if v:
            return v
    return ""


def resolve_llm_config(workspace: Optional[Workspace] = None) -> LLMConfig:
    """
    Resolve OpenAI-compatible LLM config.

    Priority:
      1) env WORDBATCH_LLM_* (or OPENAI_*)
      2) <data_dir>/settings.json keys llm_api_key / llm_api_base_url / llm_api_model

    base_url and model fall back to OpenAI defaults; only a missing api key makes the config "missing".
    """
    api_key_env = _env_any(ENV_API_KEY)
    base_url_env = _env_any(ENV_BASE_URL)
    model_env = _env_any(ENV_MODEL)

    settings: Dict[str, Any] = {}
    if not (api_key_env and base_url_env and model_env):
        settings = (workspace or Workspace.from_env()).load_settings()
    api_key_settings = str(settings.get("llm_api_key", "") or "").strip()
    base_url_settings = str(settings.get("llm_api_base_url", "") or "").strip()
    model_settings = str(settings.get("llm_api_model", "") or "").strip()

    api_key = api_key_env or api_key_settings
    base_url = normalize_base_url(base_url_env or base_url_settings or DEFAULT_BASE_URL)
    model = model_env or model_settings or DEFAULT_MODEL

    if not api_key:
        return LLMConfig(api_key="", base_url=base_url, model=model, source="missing")

    sources = set()
    if api_key_env or base_url_env or model_env:
        sources.add("env")
    if (api_key_settings and not api_key_env) or (base_url_settings and not base_url_env) or (model_settings and not model_env):
        sources.add("settings")
    source = "mixed" if len(sources) >= 2 else (list(sources)[0] if sources else "env")
    return LLMConfig(api_key=api_key, base_url=base_url, model=model, source=source)


def llm_status(workspace: Optional[Workspace] = None) -> Dict[str, Any]:
    cfg = resolve_llm_config(workspace)
    return {
        "base_url": cfg.base_url,
        "model": cfg.model,
        "api_key_present": bool(cfg.api_key),
        "api_key_masked": mask_secret(cfg.api_key),
        "source": cfg.source,
    }


def load_llm(workspace: Optional[Workspace] = None, *, timeout_s: float = 60.0) -> Optional[OpenAICompatClient]:
    cfg0 = resolve_llm_config(workspace)
    if cfg0.source == "missing":
        return None
    cfg = OpenAICompatConfig(
        api_key=cfg0.api_key,
        base_url=cfg0.base_url,
        model=cfg0.model,
        timeout_s=float(timeout_s),
        max_retries=2,
        base_retry_delay_s=0.9,
        max_retry_delay_s=8.0,
    )
    return OpenAICompatClient(cfg)


def build_analysis_client(workspace: Optional[Workspace] = None) -> PhonicsAnalysisClient:
    # A missing config still yields a client; its first batch aborts the run with a visible error.
    return PhonicsAnalysisClient(load_llm(workspace))
