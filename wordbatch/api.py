# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from vpa.analysis_types import BatchAnalysisResult, ProgressSnapshot, RunConfig, WordExtractionResult
from vpa.batch_scheduler import BatchScheduler, EventCallback
from vpa.phonics_client import AnalysisClient
from vpa.progress_store import ProgressStore
from vpa.word_extract import extract_words

from .runner import AnalysisRunError, build_analysis_client
from .workspace import Workspace


log = logging.getLogger("wordbatch.api")


class RunHandle:
    """Handle to one background run started by WordBatch.start()."""

    def __init__(self, run_id: int):
        self.run_id = int(run_id)
        self._done = threading.Event()
        self.result: Optional[BatchAnalysisResult] = None
        self.error: Optional[BaseException] = None

    def __repr__(self) -> str:  # pragma: no cover
        return f"RunHandle(run_id={self.run_id}, done={self.done})"

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> Optional[BatchAnalysisResult]:
        self._done.wait(timeout)
        return self.result

    def _finish(self, result: Optional[BatchAnalysisResult], error: Optional[BaseException]) -> None:
        self.result = result
        self.error = error
        self._done.set()


class WordBatch:
    """
    Composition root for batch vocabulary analysis.

      - start(): validate config, start one background run, return a RunHandle
      - get_progress(): immutable snapshot for polling callers
      - cancel(): cooperative; in-flight batches finish, no new ones start
      - clear(): cancel, then reset progress

    Only one run may be active at a time; the store is shared with pollers.
    """

    def __init__(
        self,
        client: Optional[AnalysisClient] = None,
        *,
        store: Optional[ProgressStore] = None,
        data_dir: Union[str, Path, None] = None,
        client_factory: Optional[Callable[[], AnalysisClient]] = None,
        event_cb: Optional[EventCallback] = None,
    ):
        self.ws = Workspace(Path(data_dir)) if str(data_dir or "").strip() else Workspace.from_env()
        self.store = store if store is not None else ProgressStore()
        self.event_cb = event_cb
        self._client = client
        self._client_factory = client_factory or (lambda: build_analysis_client(self.ws))

        self._lock = threading.Lock()
        self._active: Optional[RunHandle] = None
        self._last: Optional[RunHandle] = None
        self._run_seq = 0

    def __repr__(self) -> str:  # pragma: no cover
        return f"WordBatch(data_dir={str(self.ws.data_dir)!r})"

    def _resolve_client(self) -> AnalysisClient:
        if self._client is not None:
            return self._client
        return self._client_factory()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._active is not None and not self._active.done

    @property
    def last_run(self) -> Optional[RunHandle]:
        with self._lock:
            return self._last

    def start(
        self,
        text: Optional[str] = None,
        config: Union[RunConfig, Dict[str, Any], None] = None,
        *,
        words: Optional[List[str]] = None,
    ) -> RunHandle:
        if isinstance(config, RunConfig):
            cfg = config.validate()
        else:
            cfg = RunConfig.from_dict(config).validate()
        if text is None and words is None:
            raise ValueError("text or words required")

        if self.running:
            raise AnalysisRunError("an analysis run is already in progress")
        scheduler = BatchScheduler(self.store, self._resolve_client(), config=cfg, event_cb=self.event_cb)

        with self._lock:
            if self._active is not None and not self._active.done:
                raise AnalysisRunError("an analysis run is already in progress")
            self._run_seq += 1
            handle = RunHandle(self._run_seq)
            self._active = handle
            self._last = handle
            # Reset before returning so the first poll never sees the previous run
            # and a cancel() issued right after start() is not lost.
            self.store.start_run()

        def worker():
            result: Optional[BatchAnalysisResult] = None
            error: Optional[BaseException] = None
            try:
                result = scheduler.run(text, words=words, reset=False)
            except Exception as e:
                log.exception("run %d failed", handle.run_id)
                error = e
            finally:
                handle._finish(result, error)

        threading.Thread(target=worker, name=f"wordbatch-run-{handle.run_id}", daemon=True).start()
        log.info("run %d started (batch_size=%d, max_concurrent=%d)", handle.run_id, cfg.batch_size, cfg.max_concurrent_batches)
        return handle

    def analyze(
        self,
        text: Optional[str] = None,
        config: Union[RunConfig, Dict[str, Any], None] = None,
        *,
        words: Optional[List[str]] = None,
        timeout: Optional[float] = None,
    ) -> Optional[BatchAnalysisResult]:
        handle = self.start(text, config, words=words)
        result = handle.wait(timeout)
        if handle.error is not None:
            raise AnalysisRunError(str(handle.error)) from handle.error
        return result

    def extract(self, text: str, *, mode: str = "focus") -> WordExtractionResult:
        return extract_words(text, mode=mode)

    def get_progress(self) -> ProgressSnapshot:
        return self.store.snapshot()

    def cancel(self) -> None:
        self.store.request_cancel()

    def clear(self) -> None:
        # Cancel first so a live run stops issuing batches; the flag survives the clear.
        self.store.request_cancel()
        self.store.clear()
