# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import replace
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple

from .analysis_types import (
    STATUS_ANALYZING,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    AnalysisProgress,
    BatchAnalysisResult,
    BatchInfo,
    ExtractionProgress,
    PhonicsWord,
    RunConfig,
    WordOutcome,
    WordStatus,
)
from .openai_compat import LLMTransportError, ProviderUnavailableError
from .phonics_client import MISSING_WORD_ERROR, AnalysisClient
from .progress_store import ProgressStore
from .word_extract import extract_words


log = logging.getLogger("wordbatch.scheduler")

EventCallback = Callable[[str, Dict[str, Any]], None]

EVENT_BATCH_START = "batch_start"
EVENT_WORD_STATUS = "word_status_update"
EVENT_BATCH_COMPLETE = "batch_complete"
EVENT_ANALYSIS_COMPLETE = "analysis_complete"
EVENT_ANALYSIS_ERROR = "analysis_error"

_SLOT_POLL_S = 0.05


def partition(words: List[str], batch_size: int) -> List[List[str]]:
    n = max(1, int(batch_size))
    return [words[i : i + n] for i in range(0, len(words), n)]


def call_with_deadline(
    fn: Callable[[], Any],
    timeout_s: float,
    *,
    name: str = "wordbatch-call",
    slot: Optional[threading.Semaphore] = None,
) -> Any:
    """
    Run fn() in a helper thread and wait at most timeout_s.

    The helper thread is abandoned (not interrupted) on timeout; its late result is dropped.
    `slot`, when given, is a semaphore the caller already holds. The helper releases it
    when fn() actually returns, so an abandoned call keeps holding its slot.
    """
    box: Dict[str, Any] = {}

    def target():
        try:
            box["value"] = fn()
        except Exception as e:
            box["error"] = e
        finally:
            if slot is not None:
                slot.release()

    th = threading.Thread(target=target, name=name, daemon=True)
    try:
        th.start()
    except RuntimeError:
        if slot is not None:
            slot.release()
        raise
    th.join(float(timeout_s))
    if th.is_alive():
        raise TimeoutError(f"batch timed out after {float(timeout_s):g}s")
    if "error" in box:
        raise box["error"]
    return box.get("value")


class BatchScheduler:
    """
    Drives one run end to end: extraction, batching, bounded-concurrency
    dispatch, per-batch timeout, retry passes and cooperative cancellation.

    All progress goes into the injected ProgressStore. Aggregate counters are
    owned by the scheduler and only change under `_agg_lock`, so every pushed
    AnalysisProgress is monotonic in completed + failed.
    """

    def __init__(
        self,
        store: ProgressStore,
        client: AnalysisClient,
        *,
        config: Optional[RunConfig] = None,
        event_cb: Optional[EventCallback] = None,
    ):
        self.store = store
        self.client = client
        self.config = (config or RunConfig()).validate()
        self.event_cb = event_cb

        self._agg_lock = threading.Lock()
        # Held for the whole provider call, including calls abandoned after a timeout.
        self._call_slots = threading.BoundedSemaphore(int(self.config.max_concurrent_batches))
        self._order: List[str] = []
        self._frequency: Dict[str, int] = {}
        self._attempts: Dict[str, int] = {}
        self._completed: Set[str] = set()
        self._retryable: Set[str] = set()  # failed, another attempt allowed
        self._final_failed: Set[str] = set()
        self._results: Dict[str, PhonicsWord] = {}
        self._total_batches = 0
        self._completed_batches = 0
        self._current_batch = 0
        self._current_word: Optional[str] = None
        self._abort_error: Optional[str] = None
        self._t0 = 0.0

    # ---- public -----------------------------------------------------------------

    def run(
        self,
        text: Optional[str] = None,
        *,
        words: Optional[List[str]] = None,
        reset: bool = True,
    ) -> BatchAnalysisResult:
        """
        Run extraction (from text, or take `words` as already extracted) and analysis.

        reset=False skips store.start_run() for callers that already reset the store.
        """
        cfg = self.config
        if reset:
            self.store.start_run()
        self._t0 = time.time()
        try:
            order = self._extract(text, words)
            self._begin_analysis(order)

            log.info(
                "analysis start: words=%d batches=%d batch_size=%d max_concurrent=%d",
                len(order),
                self._total_batches,
                cfg.batch_size,
                cfg.max_concurrent_batches,
            )
            self._dispatch(partition(order, cfg.batch_size), first_index=0)

            passes = 0
            while cfg.retry_failed_words and passes < int(cfg.max_retries) and not self._should_stop():
                with self._agg_lock:
                    retry_words = [w for w in self._order if w in self._retryable]
                if not retry_words:
                    break
                passes += 1
                batches = partition(retry_words, cfg.batch_size)
                with self._agg_lock:
                    first_index = self._total_batches
                    self._total_batches += len(batches)
                    self._push_progress_locked()
                log.info("retry pass %d/%d: words=%d batches=%d", passes, cfg.max_retries, len(retry_words), len(batches))
                self._dispatch(batches, first_index=first_index)
                with self._agg_lock:
                    self._push_progress_locked()

            self._settle()
        except Exception as e:
            log.exception("analysis run crashed")
            self.store.finish_run(error=str(e) or e.__class__.__name__)
            self._emit(EVENT_ANALYSIS_ERROR, {"error": str(e)})
            raise

        result = self._build_result()
        self.store.finish_run(error=result.error)
        if result.error:
            self._emit(EVENT_ANALYSIS_ERROR, {"error": result.error})
        self._emit(EVENT_ANALYSIS_COMPLETE, result.to_dict())
        log.info(
            "analysis done: completed=%d failed=%d pending=%d cancelled=%s elapsed=%.2fs",
            result.completed_words,
            result.failed_words,
            result.pending_words,
            result.cancelled,
            result.elapsed_seconds,
        )
        return result

    # ---- phases -----------------------------------------------------------------

    def _extract(self, text: Optional[str], words: Optional[List[str]]) -> List[str]:
        if words is not None:
            seen: Dict[str, int] = {}
            for w in words:
                w = str(w or "").strip()
                if w:
                    seen[w] = seen.get(w, 0) + 1
            self._frequency = dict(seen)
            n = len(seen)
            self.store.update_extraction(ExtractionProgress(total_words=n, extracted_words=n, elapsed_seconds=0.0))
            return list(seen)

        res = extract_words(text or "", mode=self.config.extraction_mode, progress_cb=self.store.update_extraction)
        self._frequency = {ew.word: int(ew.frequency) for ew in res.words}
        log.info("extracted %d unique words from %d candidate tokens", res.unique_count, res.total_count)
        return [ew.word for ew in res.words]

    def _begin_analysis(self, order: List[str]) -> None:
        for w in order:
            self.store.upsert_word_status(WordStatus(word=w, status=STATUS_PENDING))
        with self._agg_lock:
            self._order = list(order)
            self._attempts = {w: 0 for w in order}
            self._total_batches = int(math.ceil(len(order) / float(self.config.batch_size))) if order else 0
            self._push_progress_locked()

    def _should_stop(self) -> bool:
        if self.store.is_cancelled():
            return True
        with self._agg_lock:
            return self._abort_error is not None

    def _dispatch(self, batches: List[List[str]], *, first_index: int) -> int:
        """Run batches with at most max_concurrent_batches in flight. Returns how many were started."""
        queue: Deque[Tuple[int, List[str]]] = deque((first_index + i, b) for i, b in enumerate(batches))
        in_flight: Set[Future] = set()
        started = 0
        limit = int(self.config.max_concurrent_batches)
        with ThreadPoolExecutor(max_workers=limit, thread_name_prefix="wordbatch") as pool:
            while queue or in_flight:
                while queue and len(in_flight) < limit and not self._should_stop():
                    idx, batch = queue.popleft()
                    in_flight.add(pool.submit(self._run_batch, idx, batch))
                if not in_flight:
                    break
                done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                for fut in done:
                    if fut.result():
                        started += 1
        if started < len(batches):
            log.info("stopped issuing batches: %d of %d not started", len(batches) - started, len(batches))
        return started

    def _acquire_call_slot(self) -> bool:
        """Wait for a free provider slot; gives up when the run is cancelled or aborted."""
        while not self._call_slots.acquire(timeout=_SLOT_POLL_S):
            if self._should_stop():
                return False
        if self._should_stop():
            self._call_slots.release()
            return False
        return True

    def _run_batch(self, batch_index: int, words: List[str]) -> bool:
        if not self._acquire_call_slot():
            return False
        cfg = self.config
        with self._agg_lock:
            if self._abort_error is not None:
                self._call_slots.release()
                return False
            self._current_batch = batch_index
            for w in words:
                self._attempts[w] = self._attempts.get(w, 0) + 1
                self.store.upsert_word_status(WordStatus(word=w, status=STATUS_ANALYZING, attempts=self._attempts[w]))
            self._push_progress_locked()
        self._emit(EVENT_BATCH_START, {"batch_index": batch_index, "words": list(words)})
        log.debug("batch %d start: %s", batch_index + 1, ", ".join(words))

        t0 = time.time()
        try:
            outcomes = call_with_deadline(
                lambda: self.client.analyze_batch(list(words), timeout_s=float(cfg.timeout_per_batch_seconds)),
                float(cfg.timeout_per_batch_seconds),
                name=f"wordbatch-batch-{batch_index + 1}",
                slot=self._call_slots,
            )
        except ProviderUnavailableError as e:
            msg = str(e) or "analysis provider unavailable"
            log.error("batch %d: provider unavailable, aborting run: %s", batch_index + 1, msg)
            with self._agg_lock:
                if self._abort_error is None:
                    self._abort_error = msg
            self._record_batch(batch_index, [WordOutcome(word=w, error=msg) for w in words], final=True)
            return True
        except TimeoutError as e:
            log.warning("batch %d: %s", batch_index + 1, e)
            self._record_batch(batch_index, [WordOutcome(word=w, error=str(e)) for w in words])
            return True
        except Exception as e:
            msg = str(e) if isinstance(e, LLMTransportError) and str(e) else f"transport error: {str(e) or e.__class__.__name__}"
            log.warning("batch %d failed: %s", batch_index + 1, msg)
            self._record_batch(batch_index, [WordOutcome(word=w, error=msg) for w in words])
            return True

        by_word: Dict[str, WordOutcome] = {}
        for oc in outcomes or []:
            if isinstance(oc, WordOutcome) and oc.word in words and oc.word not in by_word:
                by_word[oc.word] = oc
        merged = [by_word.get(w) or WordOutcome(word=w, error=MISSING_WORD_ERROR) for w in words]
        self._record_batch(batch_index, merged)
        log.debug("batch %d done in %.2fs", batch_index + 1, time.time() - t0)
        return True

    def _record_batch(self, batch_index: int, outcomes: List[WordOutcome], *, final: bool = False) -> None:
        cfg = self.config
        max_attempts = 1 + (int(cfg.max_retries) if cfg.retry_failed_words else 0)
        updates: List[WordStatus] = []
        with self._agg_lock:
            for oc in outcomes:
                w = oc.word
                attempts = self._attempts.get(w, 1)
                if oc.result is not None:
                    result = oc.result
                    freq = self._frequency.get(w)
                    if freq is not None and result.frequency != freq:
                        result = replace(result, frequency=freq)
                    st = WordStatus(word=w, status=STATUS_COMPLETED, result=result, attempts=attempts)
                    self._results[w] = result
                    self._retryable.discard(w)
                    self._completed.add(w)
                else:
                    st = WordStatus(word=w, status=STATUS_FAILED, error=str(oc.error), attempts=attempts)
                    if final or attempts >= max_attempts:
                        self._retryable.discard(w)
                        self._final_failed.add(w)
                    else:
                        self._retryable.add(w)
                self.store.upsert_word_status(st)
                updates.append(st)
                self._current_word = w
            self._completed_batches += 1
            self._push_progress_locked()
            done_batches = self._completed_batches
        for st in updates:
            self._emit(EVENT_WORD_STATUS, st.to_dict())
        ok = sum(1 for st in updates if st.status == STATUS_COMPLETED)
        self._emit(
            EVENT_BATCH_COMPLETE,
            {"batch_index": batch_index, "completed": ok, "failed": len(updates) - ok, "completed_batches": done_batches},
        )

    def _settle(self) -> None:
        """Finalize leftovers once no more batches will run."""
        with self._agg_lock:
            abort = self._abort_error
            if abort is not None:
                for w in self._order:
                    if w in self._completed or w in self._final_failed:
                        continue
                    self.store.upsert_word_status(
                        WordStatus(word=w, status=STATUS_FAILED, error=abort, attempts=self._attempts.get(w, 0))
                    )
                    self._final_failed.add(w)
                self._retryable.clear()
            elif self._retryable:
                # Cancelled (or out of passes): failures waiting for a retry become final.
                self._final_failed.update(self._retryable)
                self._retryable.clear()
            self._push_progress_locked()

    # ---- helpers ----------------------------------------------------------------

    def _push_progress_locked(self) -> None:
        total = len(self._order)
        self.store.update_analysis(
            AnalysisProgress(
                total_words=total,
                completed_words=len(self._completed),
                failed_words=len(self._final_failed),
                current_word=self._current_word,
                batch_info=BatchInfo(
                    total_batches=self._total_batches,
                    completed_batches=min(self._completed_batches, self._total_batches),
                    current_batch=min(self._current_batch, max(0, self._total_batches - 1)),
                    batch_size=int(self.config.batch_size),
                ),
                elapsed_seconds=time.time() - self._t0,
            )
        )

    def _build_result(self) -> BatchAnalysisResult:
        with self._agg_lock:
            words = [self._results[w] for w in self._order if w in self._results]
            total = len(self._order)
            completed = len(self._completed)
            failed = len(self._final_failed)
            error = self._abort_error
        return BatchAnalysisResult(
            words=words,
            total_words=total,
            completed_words=completed,
            failed_words=failed,
            pending_words=max(0, total - completed - failed),
            cancelled=self.store.is_cancelled(),
            error=error,
            elapsed_seconds=time.time() - self._t0,
        )

    def _emit(self, name: str, payload: Dict[str, Any]) -> None:
        if self.event_cb is None:
            return
        try:
            self.event_cb(name, payload)
        except Exception:
            log.exception("event callback failed for %s", name)
