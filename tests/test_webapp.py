# -*- coding: utf-8 -*-

import tempfile
import threading
import time
import unittest

from fastapi.testclient import TestClient

from vpa.analysis_types import PhonicsWord, WordOutcome
from wordbatch.api import WordBatch
from webapp.app import create_app


class StubClient:
    def __init__(self, gate: threading.Event = None):
        self.gate = gate

    def analyze_batch(self, words, *, timeout_s):
        if self.gate is not None:
            self.gate.wait(5.0)
        return [WordOutcome(word=w, result=PhonicsWord(word=w, ipa=f"/{w}/")) for w in words]


class TestWebApp(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.addCleanup(self._td.cleanup)

    def _client(self, stub) -> TestClient:
        self.engine = WordBatch(stub, data_dir=self._td.name)
        return TestClient(create_app(self.engine))

    def _wait_done(self, timeout_s: float = 5.0):
        t0 = time.time()
        while time.time() - t0 < timeout_s:
            run = self.engine.last_run
            if run is not None and run.done:
                return
            time.sleep(0.01)
        self.fail("run did not finish")

    def test_health(self):
        r = self._client(StubClient()).get("/api/health")
        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.json()["ok"])

    def test_full_run_over_http(self):
        http = self._client(StubClient())
        r = http.post(
            "/api/analysis/start",
            json={"text": "apple banana cherry dragon eagle forest", "config": {"batch_size": 5, "max_concurrent_batches": 2}},
        )
        self.assertEqual(r.status_code, 200, r.text)
        self.assertTrue(r.json()["ok"])
        self._wait_done()

        prog = http.get("/api/analysis/progress").json()
        self.assertEqual(prog["status"], "completed")
        self.assertEqual(prog["analysis_progress"]["completed_words"], 6)
        self.assertEqual(prog["analysis_progress"]["batch_info"]["total_batches"], 2)
        self.assertEqual(len(prog["word_statuses"]), 6)

        res = http.get("/api/analysis/result").json()
        self.assertEqual([w["word"] for w in res["words"]], ["apple", "banana", "cherry", "dragon", "eagle", "forest"])

    def test_bad_requests(self):
        http = self._client(StubClient())
        self.assertEqual(http.post("/api/analysis/start", json={"text": ""}).status_code, 400)
        r = http.post("/api/analysis/start", json={"text": "apple", "config": {"batch_size": 2}})
        self.assertEqual(r.status_code, 400)
        self.assertIn("batch_size", r.json()["detail"])
        self.assertEqual(http.post("/api/analysis/start", json={"words": "apple"}).status_code, 400)
        self.assertEqual(http.get("/api/analysis/result").status_code, 404)

    def test_busy_cancel_and_clear(self):
        gate = threading.Event()
        http = self._client(StubClient(gate))
        words = [f"word{c}" for c in "abcdefghijklmno"]
        r = http.post("/api/analysis/start", json={"words": words, "config": {"batch_size": 5, "max_concurrent_batches": 1}})
        self.assertEqual(r.status_code, 200)
        try:
            self.assertEqual(http.post("/api/analysis/start", json={"words": ["other"]}).status_code, 409)
            self.assertEqual(http.get("/api/analysis/result").status_code, 409)
            self.assertEqual(http.post("/api/analysis/cancel").status_code, 200)
            self.assertTrue(http.get("/api/analysis/progress").json()["cancelled"])
        finally:
            gate.set()
        self._wait_done()

        prog = http.get("/api/analysis/progress").json()
        a = prog["analysis_progress"]
        self.assertEqual(a["completed_words"] + a["failed_words"] + prog["pending_words"], 15)

        self.assertEqual(http.post("/api/analysis/clear").status_code, 200)
        prog = http.get("/api/analysis/progress").json()
        self.assertEqual(prog["status"], "idle")
        self.assertEqual(prog["current_step"], "preparing")

    def test_extract_endpoint(self):
        http = self._client(StubClient())
        r = http.post("/api/analysis/extract", json={"text": "The river, the river bank", "extraction_mode": "all"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual([w["word"] for w in r.json()["words"]], ["the", "river", "bank"])


if __name__ == "__main__":
    unittest.main()
