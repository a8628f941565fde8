# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import os
import time
from typing import Optional

try:
    from fastapi import Body, FastAPI, HTTPException
    from fastapi.middleware.cors import CORSMiddleware
except Exception as e:  # pragma: no cover
    raise RuntimeError("Missing web dependencies. Install: pip install fastapi uvicorn") from e

from vpa.analysis_types import InvalidRunConfig, RunConfig
from vpa.word_extract import extract_words
from wordbatch._version import VERSION
from wordbatch.api import WordBatch
from wordbatch.runner import AnalysisRunError, llm_status


log = logging.getLogger("wordbatch.web")

MAX_TEXT_CHARS = int(os.environ.get("WORDBATCH_MAX_TEXT_CHARS", "200000") or 200000)


def _text_from(payload: dict) -> str:
    text = str(payload.get("text", "") or "")
    if not text.strip():
        raise HTTPException(status_code=400, detail="text required")
    if len(text) > MAX_TEXT_CHARS:
        raise HTTPException(status_code=413, detail=f"text too long (max {MAX_TEXT_CHARS} chars)")
    return text


def create_app(engine: Optional[WordBatch] = None) -> FastAPI:
    app = FastAPI(title="WordBatch", version=str(VERSION or "0.0.0"))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # One engine (and one progress store) per app: the polling endpoint reads what the run writes.
    wb = engine if engine is not None else WordBatch()
    app.state.engine = wb

    @app.get("/api/health")
    def health():
        return {"ok": True, "time": time.time(), "version": VERSION}

    @app.get("/api/llm/status")
    def get_llm_status():
        return llm_status(wb.ws)

    @app.post("/api/analysis/extract")
    def extract(payload: dict = Body(default={})):
        text = _text_from(payload)
        mode = str(payload.get("extraction_mode", "focus") or "focus").strip()
        try:
            res = extract_words(text, mode=mode)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return res.to_dict()

    @app.post("/api/analysis/start")
    def start(payload: dict = Body(default={})):
        words = payload.get("words", None)
        if words is not None:
            if not isinstance(words, list) or not all(isinstance(w, str) for w in words):
                raise HTTPException(status_code=400, detail="words must be a list of strings")
            text = None
        else:
            text = _text_from(payload)
        try:
            cfg = RunConfig.from_dict(payload.get("config", None) or {}).validate()
            handle = wb.start(text, cfg, words=words)
        except InvalidRunConfig as e:
            raise HTTPException(status_code=400, detail=str(e))
        except AnalysisRunError as e:
            raise HTTPException(status_code=409, detail=str(e))
        log.info("run %d started over HTTP (%s)", handle.run_id, "words" if words is not None else "text")
        return {"ok": True, "run_id": handle.run_id, "config": cfg.to_dict()}

    @app.get("/api/analysis/progress")
    def progress():
        return wb.get_progress().to_dict()

    @app.post("/api/analysis/cancel")
    def cancel():
        wb.cancel()
        return {"ok": True}

    @app.post("/api/analysis/clear")
    def clear():
        wb.clear()
        return {"ok": True}

    @app.get("/api/analysis/result")
    def result():
        handle = wb.last_run
        if handle is None:
            raise HTTPException(status_code=404, detail="no run yet")
        if not handle.done:
            raise HTTPException(status_code=409, detail="run still in progress")
        if handle.error is not None:
            raise HTTPException(status_code=500, detail=str(handle.error))
        if handle.result is None:
            raise HTTPException(status_code=404, detail="no result")
        return handle.result.to_dict()

    return app


app = create_app()
