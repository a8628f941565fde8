# -*- coding: utf-8 -*-

import unittest

from vpa.word_extract import extract_words


class TestWordExtract(unittest.TestCase):
    def test_first_occurrence_order_and_frequency(self):
        res = extract_words("Banana apple banana, Cherry! apple banana.")
        self.assertEqual([w.word for w in res.words], ["banana", "apple", "cherry"])
        self.assertEqual([w.frequency for w in res.words], [3, 2, 1])
        self.assertEqual(res.unique_count, 3)
        self.assertEqual(res.total_count, 6)

    def test_focus_mode_drops_stop_words(self):
        text = "The cat and the dog are in the garden"
        focus = [w.word for w in extract_words(text, mode="focus").words]
        everything = [w.word for w in extract_words(text, mode="all").words]
        self.assertEqual(focus, ["cat", "dog", "garden"])
        self.assertIn("the", everything)
        self.assertIn("and", everything)

    def test_length_bounds(self):
        long_word = "a" * 21
        res = extract_words(f"x {long_word} ok elephant", mode="all")
        self.assertEqual([w.word for w in res.words], ["ok", "elephant"])

    def test_mixed_chinese_text(self):
        res = extract_words("我喜欢apple和banana，也喜欢apple派")
        words = [w.word for w in res.words]
        self.assertEqual(words, ["apple", "banana"])
        self.assertEqual(res.words[0].frequency, 2)

    def test_contractions_same_with_or_without_chinese(self):
        plain = [w.word for w in extract_words("we don't stop", mode="all").words]
        mixed = [w.word for w in extract_words("我们 don't stop", mode="all").words]
        self.assertEqual(plain, ["we", "don't", "stop"])
        self.assertEqual(mixed, ["don't", "stop"])

    def test_progress_is_monotonic_and_ends_at_unique_count(self):
        text = " ".join(f"word{chr(97 + i % 26)}{chr(97 + (i // 26) % 26)}" for i in range(300))
        seen = []
        res = extract_words(text, mode="all", progress_cb=seen.append, report_every=25)
        self.assertGreater(len(seen), 2)
        extracted = [p.extracted_words for p in seen]
        self.assertEqual(extracted, sorted(extracted))
        for p in seen:
            self.assertLessEqual(p.extracted_words, p.total_words)
        self.assertEqual(seen[-1].extracted_words, len(res.words))
        self.assertEqual(seen[-1].total_words, len(res.words))

    def test_empty_text(self):
        seen = []
        res = extract_words("   ", progress_cb=seen.append)
        self.assertEqual(res.words, [])
        self.assertEqual(seen[-1].extracted_words, 0)

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            extract_words("hello world", mode="fancy")


if __name__ == "__main__":
    unittest.main()
