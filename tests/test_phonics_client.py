# -*- coding: utf-8 -*-

import unittest
from unittest.mock import patch

from vpa.openai_compat import (
    LLMTransportError,
    OpenAICompatClient,
    OpenAICompatConfig,
    ProviderUnavailableError,
    mask_secret,
    normalize_base_url,
    raise_for_status,
)
from vpa.phonics_client import PhonicsAnalysisClient, build_batch_prompt, parse_phonics_csv


HEADER = "word,frequency,chinese_translation,pos_abbreviation,pos_english,pos_chinese,ipa,syllables,phonics_rule,analysis_explanation"


class StubLLM:
    def __init__(self, content: str = "", *, status: int = 200, body=None):
        self.cfg = OpenAICompatConfig(api_key="sk-test", base_url="http://127.0.0.1:9/v1", model="stub")
        self._status = status
        self._body = body if body is not None else {"choices": [{"message": {"content": content}}]}
        self.calls = []

    def chat(self, **kwargs):
        self.calls.append(kwargs)
        return self._status, self._body


class TestParsePhonicsCsv(unittest.TestCase):
    def test_parses_fenced_csv_with_quoted_commas(self):
        content = "\n".join(
            [
                "```csv",
                HEADER,
                'apple,2,苹果,n.,noun,名词,/ˈæpəl/,ap-ple,"le ending, silent e",Common fruit word.',
                "banana,1,香蕉,n.,noun,名词,/bəˈnɑːnə/,ba-na-na,open syllables,Three open syllables.",
                "```",
            ]
        )
        rows = parse_phonics_csv(content)
        self.assertEqual([r.word for r in rows], ["apple", "banana"])
        self.assertEqual(rows[0].phonics_rule, "le ending, silent e")
        self.assertEqual(rows[0].frequency, 2)
        self.assertEqual(rows[1].syllables, "ba-na-na")

    def test_rows_without_word_are_skipped(self):
        rows = parse_phonics_csv(HEADER + "\n,1,x\napple,oops,苹果\n")
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].frequency, 1)

    def test_no_rows_is_transport_error(self):
        with self.assertRaises(LLMTransportError):
            parse_phonics_csv(HEADER + "\n")
        with self.assertRaises(LLMTransportError):
            parse_phonics_csv("Sorry, I cannot help with that.")


class TestPhonicsAnalysisClient(unittest.TestCase):
    def test_prompt_lists_words(self):
        prompt = build_batch_prompt(["apple", "banana"])
        self.assertIn("apple, banana", prompt)
        self.assertIn(HEADER, prompt)

    def test_maps_rows_back_to_requested_words(self):
        llm = StubLLM(HEADER + "\nApple,1,苹果,n.,noun,名词,/ˈæpəl/,ap-ple,,\n")
        client = PhonicsAnalysisClient(llm)
        out = client.analyze_batch(["apple", "pear"], timeout_s=5.0)
        self.assertTrue(out[0].ok)
        self.assertEqual(out[0].result.word, "apple")
        self.assertFalse(out[1].ok)
        self.assertEqual(out[1].error, "missing from provider response")
        self.assertEqual(llm.calls[0]["timeout_s"], 5.0)

    def test_http_errors_are_classified(self):
        with self.assertRaises(ProviderUnavailableError):
            PhonicsAnalysisClient(StubLLM(status=401, body={"error": {"message": "bad key"}})).analyze_batch(["apple"], timeout_s=1.0)
        with self.assertRaises(LLMTransportError):
            PhonicsAnalysisClient(StubLLM(status=503, body={})).analyze_batch(["apple"], timeout_s=1.0)
        with self.assertRaises(LLMTransportError):
            PhonicsAnalysisClient(StubLLM(body={"choices": []})).analyze_batch(["apple"], timeout_s=1.0)

    def test_missing_config_is_provider_unavailable(self):
        with self.assertRaises(ProviderUnavailableError):
            PhonicsAnalysisClient(None).analyze_batch(["apple"], timeout_s=1.0)
        llm = OpenAICompatClient(OpenAICompatConfig(api_key="", base_url="https://api.openai.com/v1", model="m"))
        with self.assertRaises(ProviderUnavailableError):
            PhonicsAnalysisClient(llm).analyze_batch(["apple"], timeout_s=1.0)


class TestOpenAICompat(unittest.TestCase):
    def test_helpers(self):
        self.assertEqual(normalize_base_url("http://127.0.0.1:8000/"), "http://127.0.0.1:8000/v1")
        self.assertEqual(normalize_base_url("https://api.openai.com/v1"), "https://api.openai.com/v1")
        self.assertEqual(mask_secret("sk-abcdef"), "*****cdef")
        raise_for_status(200, {})
        with self.assertRaises(ProviderUnavailableError):
            raise_for_status(404, {"error": {"message": "model not found"}})
        with self.assertRaises(LLMTransportError):
            raise_for_status(0, {"_error": "connection refused"})

    def test_transient_statuses_are_retried(self):
        cfg = OpenAICompatConfig(api_key="k", base_url="http://127.0.0.1:9", model="m", max_retries=2, base_retry_delay_s=0.0)
        answers = [(503, {}), (429, {}), (200, {"choices": []})]
        with patch("vpa.openai_compat._http_json", side_effect=answers) as http:
            status, _ = OpenAICompatClient(cfg).chat(messages=[], timeout_s=5.0)
        self.assertEqual(status, 200)
        self.assertEqual(http.call_count, 3)

    def test_client_errors_are_not_retried(self):
        cfg = OpenAICompatConfig(api_key="k", base_url="http://127.0.0.1:9", model="m", max_retries=3, base_retry_delay_s=0.0)
        with patch("vpa.openai_compat._http_json", return_value=(401, {})) as http:
            status, _ = OpenAICompatClient(cfg).chat(messages=[], timeout_s=5.0)
        self.assertEqual(status, 401)
        self.assertEqual(http.call_count, 1)


if __name__ == "__main__":
    unittest.main()
