# -*- coding: utf-8 -*-

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


log = logging.getLogger("wordbatch.client")

_MAX_ERROR_CHARS = 500


class LLMTransportError(RuntimeError):
    """Transient failure talking to the provider (network, timeout, 429/5xx, unusable reply)."""


class ProviderUnavailableError(RuntimeError):
    """The provider cannot be used at all (missing config, rejected credentials, unknown model/endpoint)."""


def mask_secret(value: str, *, show_last: int = 4) -> str:
    value = (value or "").strip()
    if not value:
        return ""
    n = int(show_last)
    if len(value) <= n:
        return "*" * len(value)
    return "*" * (len(value) - n) + value[-n:]


def normalize_base_url(raw: str) -> str:
    """
    Normalize an OpenAI-compatible base_url so it ends with "/v1".

      https://api.openai.com/v1      -> unchanged
      http://127.0.0.1:8000          -> http://127.0.0.1:8000/v1
      https://gw.example.com/v1/x    -> unchanged (nested gateway paths are kept)
    """
    url = (raw or "").strip().rstrip("/")
    if not url:
        return ""
    if "/v1" not in url:
        url = url + "/v1"
    return url


def _clip(text: str, limit: int = _MAX_ERROR_CHARS) -> str:
    text = (text or "").strip()
    if len(text) > limit:
        return text[:limit] + "…"
    return text


def _decode_body(body: bytes) -> dict:
    raw = (body or b"").decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
        return data if isinstance(data, dict) else {"_raw": _clip(raw, 2000)}
    except Exception:
        raw = raw.strip()
        return {"_raw": _clip(raw, 2000)} if raw else {}


def _http_json(
    method: str,
    url: str,
    *,
    payload: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout_s: float = 30.0,
) -> Tuple[int, dict]:
    """Returns (status, body). Status 0 means the request never got an HTTP answer."""
    req_headers = {"Content-Type": "application/json"}
    if headers:
        req_headers.update({str(k): str(v) for k, v in headers.items() if v is not None})
    data = json.dumps(payload, ensure_ascii=False).encode("utf-8") if payload is not None else None
    req = urllib.request.Request(url, data=data, headers=req_headers, method=method.upper())
    try:
        with urllib.request.urlopen(req, timeout=float(timeout_s)) as resp:
            return int(getattr(resp, "status", 200)), _decode_body(resp.read())
    except urllib.error.HTTPError as e:
        try:
            body = e.read() or b""
        except Exception:
            body = b""
        return int(getattr(e, "code", 500) or 500), _decode_body(body)
    except Exception as e:
        # DNS, TLS, connection refused, socket timeout ...
        return 0, {"_error": _clip(str(e) or e.__class__.__name__)}


def _is_transient_status(status: int) -> bool:
    s = int(status or 0)
    return s == 0 or s in (408, 429) or 500 <= s <= 599


def error_message(status: int, data: dict) -> str:
    msg = ""
    if isinstance(data, dict):
        err = data.get("error", None)
        if isinstance(err, dict):
            msg = str(err.get("message", "") or "")
        elif isinstance(err, str):
            msg = err
        if not msg:
            msg = str(data.get("_error", "") or data.get("_raw", "") or "")
    msg = _clip(msg)
    if int(status or 0) == 0:
        return f"transport error: {msg or 'no response'}"
    return f"HTTP {int(status)}: {msg}" if msg else f"HTTP {int(status)}"


def raise_for_status(status: int, data: dict) -> None:
    """Map a non-200 outcome to LLMTransportError (retryable) or ProviderUnavailableError (hard)."""
    s = int(status or 0)
    if s == 200:
        return
    msg = error_message(s, data)
    if s in (401, 403, 404):
        raise ProviderUnavailableError(msg)
    raise LLMTransportError(msg)


@dataclass(frozen=True)
class OpenAICompatConfig:
    api_key: str
    base_url: str
    model: str
    timeout_s: float = 60.0
    max_retries: int = 2
    base_retry_delay_s: float = 0.8
    max_retry_delay_s: float = 6.0

    @property
    def base_url_v1(self) -> str:
        return normalize_base_url(self.base_url)

    def auth_headers(self) -> dict:
        k = (self.api_key or "").strip()
        return {"Authorization": f"Bearer {k}"} if k else {}

    def missing_fields(self) -> List[str]:
        out = []
        if not (self.api_key or "").strip():
            out.append("api_key")
        if not self.base_url_v1:
            out.append("base_url")
        if not (self.model or "").strip():
            out.append("model")
        return out


class OpenAICompatClient:
    def __init__(self, cfg: OpenAICompatConfig):
        self.cfg = cfg

    def chat_completions(self, payload: dict, *, timeout_s: Optional[float] = None) -> Tuple[int, dict]:
        base = self.cfg.base_url_v1
        if not base:
            return 0, {"_error": "missing base_url"}
        url = base.rstrip("/") + "/chat/completions"

        max_retries = max(0, min(int(self.cfg.max_retries or 0), 8))
        base_delay = max(0.0, float(self.cfg.base_retry_delay_s))
        max_delay = max(0.0, float(self.cfg.max_retry_delay_s))
        timeout = float(timeout_s if timeout_s is not None else (self.cfg.timeout_s or 60.0))
        deadline = time.time() + timeout

        status, data = 0, {}
        for attempt in range(max_retries + 1):
            remaining = deadline - time.time()
            if remaining <= 0:
                break
            status, data = _http_json("POST", url, payload=payload, headers=self.cfg.auth_headers(), timeout_s=remaining)
            if not _is_transient_status(status):
                return status, data
            log.info("transient provider answer (attempt %d/%d): %s", attempt + 1, max_retries + 1, error_message(status, data))
            if attempt < max_retries:
                delay = min(max_delay, max(0.0, base_delay * (2**attempt)))
                # Never sleep past the caller's deadline.
                time.sleep(max(0.0, min(delay, deadline - time.time())))
        return status, data

    def chat(
        self,
        *,
        messages: list,
        temperature: float = 0.0,
        max_tokens: int = 900,
        timeout_s: float = 60.0,
    ) -> Tuple[int, dict]:
        payload: Dict[str, Any] = {
            "model": (self.cfg.model or "").strip(),
            "messages": messages,
            "temperature": float(temperature or 0.0),
            "max_tokens": int(max_tokens or 0),
        }
        return self.chat_completions(payload, timeout_s=timeout_s)


def extract_first_content(resp: dict) -> str:
    if not isinstance(resp, dict):
        return ""
    choices = resp.get("choices", [])
    if not (isinstance(choices, list) and choices and isinstance(choices[0], dict)):
        return ""
    msg = choices[0].get("message", {})
    if not isinstance(msg, dict):
        return ""
    return str(msg.get("content", "") or "").strip()
