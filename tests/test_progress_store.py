# -*- coding: utf-8 -*-

import threading
import unittest

from vpa.analysis_types import AnalysisProgress, BatchInfo, ExtractionProgress, PhonicsWord, WordStatus
from vpa.progress_store import ProgressStore


def _analysis(total: int, completed: int, failed: int = 0, *, total_batches: int = 2, completed_batches: int = 0):
    return AnalysisProgress(
        total_words=total,
        completed_words=completed,
        failed_words=failed,
        batch_info=BatchInfo(total_batches=total_batches, completed_batches=completed_batches, current_batch=0, batch_size=10),
    )


class TestProgressStore(unittest.TestCase):
    def test_fresh_store_is_idle(self):
        snap = ProgressStore().snapshot()
        self.assertEqual(snap.overall_status, "idle")
        self.assertEqual(snap.current_step, "preparing")
        self.assertFalse(snap.cancelled)
        self.assertEqual(snap.word_statuses, {})

    def test_clear_after_start_run_is_idle(self):
        store = ProgressStore()
        store.start_run()
        store.clear()
        self.assertEqual(store.snapshot().overall_status, "idle")

    def test_request_cancel_is_idempotent(self):
        store = ProgressStore()
        store.request_cancel()
        store.request_cancel()
        self.assertTrue(store.is_cancelled())

    def test_clear_keeps_cancel_flag_and_start_run_resets_it(self):
        store = ProgressStore()
        store.update_extraction(ExtractionProgress(total_words=3, extracted_words=3))
        store.request_cancel()
        store.clear()
        self.assertTrue(store.is_cancelled())
        self.assertIsNone(store.snapshot().extraction)
        store.start_run()
        self.assertFalse(store.is_cancelled())

    def test_status_derivation(self):
        store = ProgressStore()
        store.update_extraction(ExtractionProgress(total_words=40, extracted_words=12))
        snap = store.snapshot()
        self.assertEqual(snap.overall_status, "extracting")
        self.assertEqual(snap.current_step, "extracting 12/40")

        store.update_analysis(_analysis(20, 5, completed_batches=0))
        snap = store.snapshot()
        self.assertEqual(snap.overall_status, "analyzing")
        self.assertEqual(snap.current_step, "batch 1/2")

        store.update_analysis(_analysis(20, 20, completed_batches=2))
        snap = store.snapshot()
        self.assertEqual(snap.overall_status, "completed")
        self.assertEqual(snap.current_step, "batch 2/2")

    def test_failed_words_keep_status_analyzing(self):
        store = ProgressStore()
        store.update_analysis(_analysis(10, 8, 2, completed_batches=2))
        self.assertEqual(store.snapshot().overall_status, "analyzing")

    def test_pending_words_agree_with_analysis_counts(self):
        store = ProgressStore()
        for w in ("alpha", "bravo", "charlie", "delta"):
            store.upsert_word_status(WordStatus(word=w, status="pending"))
        self.assertEqual(store.snapshot().pending_words, 4)
        # The table moves ahead of the last pushed counters while a batch settles.
        store.update_analysis(_analysis(4, 1, 1))
        store.upsert_word_status(WordStatus(word="alpha", status="completed", result=PhonicsWord(word="alpha"), attempts=1))
        snap = store.snapshot()
        a = snap.analysis
        self.assertEqual(a.completed_words + a.failed_words + snap.pending_words, 4)
        self.assertEqual(snap.to_dict()["pending_words"], 2)

    def test_upsert_is_last_write_wins(self):
        store = ProgressStore()
        store.upsert_word_status(WordStatus(word="apple"))
        store.upsert_word_status(WordStatus(word="apple", status="failed", error="boom", attempts=1))
        pw = PhonicsWord(word="apple", ipa="/ˈæpəl/")
        store.upsert_word_status(WordStatus(word="apple", status="completed", result=pw, attempts=2))
        ws = store.snapshot().word_statuses["apple"]
        self.assertEqual(ws.status, "completed")
        self.assertIsNone(ws.error)
        self.assertEqual(ws.result.ipa, "/ˈæpəl/")

    def test_old_snapshot_is_not_mutated(self):
        store = ProgressStore()
        store.upsert_word_status(WordStatus(word="apple"))
        before = store.snapshot()
        store.upsert_word_status(WordStatus(word="banana"))
        store.start_run()
        self.assertEqual(list(before.word_statuses), ["apple"])
        self.assertEqual(store.snapshot().word_statuses, {})

    def test_finish_run_error_is_visible(self):
        store = ProgressStore()
        store.finish_run(error="provider down")
        snap = store.snapshot()
        self.assertTrue(snap.finished)
        self.assertEqual(snap.error, "provider down")
        self.assertEqual(snap.to_dict()["error"], "provider down")

    def test_word_status_field_rules(self):
        with self.assertRaises(ValueError):
            WordStatus(word="x", status="failed")
        with self.assertRaises(ValueError):
            WordStatus(word="x", status="completed")
        with self.assertRaises(ValueError):
            WordStatus(word="x", status="done")

    def test_cancel_check_does_not_wait_on_word_writes(self):
        store = ProgressStore()
        # Hold the word-table lock as a slow writer would.
        with store._words_lock:
            result = []
            t = threading.Thread(target=lambda: result.append(store.is_cancelled()))
            t.start()
            t.join(1.0)
            self.assertFalse(t.is_alive())
            self.assertEqual(result, [False])

    def test_concurrent_writers_and_readers(self):
        store = ProgressStore()
        words = [f"w{i}" for i in range(200)]

        def writer(chunk):
            for w in chunk:
                store.upsert_word_status(WordStatus(word=w, status="analyzing", attempts=1))

        def reader():
            for _ in range(200):
                store.snapshot()

        threads = [threading.Thread(target=writer, args=(words[i::4],)) for i in range(4)]
        threads += [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(store.snapshot().word_statuses), 200)


if __name__ == "__main__":
    unittest.main()
