# -*- coding: utf-8 -*-

from __future__ import annotations

import re
import time
from typing import Callable, Dict, List, Optional

from .analysis_types import EXTRACTION_MODES, ExtractedWord, ExtractionProgress, WordExtractionResult


MIN_WORD_LEN = 2
MAX_WORD_LEN = 20

# Words with little study value; dropped in "focus" mode.
STOP_WORDS = {
    # articles
    "a", "an", "the",
    # basic pronouns
    "i", "you", "he", "she", "it", "we", "they", "me", "him", "her", "us", "them",
    "my", "your", "his", "its", "our", "their",
    # be / auxiliaries
    "am", "is", "are", "was", "were", "be", "been", "being",
    "do", "does", "did", "have", "has", "had", "will", "would", "can", "could",
    "should", "shall", "may", "might", "must",
    # prepositions
    "in", "on", "at", "to", "for", "of", "with", "by", "from", "up", "out", "off", "over", "under",
    # conjunctions
    "and", "or", "but", "so", "if", "when", "then", "than", "as",
    # adverbs
    "not", "no", "yes", "very", "too", "also", "only", "just", "now", "here", "there",
    # number words
    "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten",
}

_EN_WORD_RE = re.compile(r"[A-Za-z]+(?:'[A-Za-z]+)?")


def _candidate_tokens(text: str) -> List[str]:
    # Latin-letter runs; Hanzi, digits and punctuation all act as separators.
    return [m.group(0).lower() for m in _EN_WORD_RE.finditer(text or "")]


def _keep(word: str, mode: str) -> bool:
    if not (MIN_WORD_LEN <= len(word) <= MAX_WORD_LEN):
        return False
    if mode == "focus" and word in STOP_WORDS:
        return False
    return True


def extract_words(
    text: str,
    *,
    mode: str = "focus",
    progress_cb: Optional[Callable[[ExtractionProgress], None]] = None,
    report_every: int = 50,
) -> WordExtractionResult:
    """
    Turn raw text into deduplicated candidate words, ordered by first occurrence.

    progress_cb receives ExtractionProgress(total_words=<candidate tokens>,
    extracted_words=<unique words so far>). The last call reports the unique
    count for both fields.
    """
    mode = (mode or "focus").strip().lower()
    if mode not in EXTRACTION_MODES:
        raise ValueError(f"unknown extraction mode: {mode!r}")

    t0 = time.time()
    tokens = [t for t in _candidate_tokens(text) if _keep(t, mode)]
    total = len(tokens)
    every = max(1, int(report_every or 1))

    freq: Dict[str, int] = {}
    for i, tok in enumerate(tokens, start=1):
        if tok in freq:
            freq[tok] += 1
        else:
            freq[tok] = 1
        if progress_cb is not None and i % every == 0 and i < total:
            progress_cb(ExtractionProgress(total_words=total, extracted_words=len(freq), elapsed_seconds=time.time() - t0))

    words = [ExtractedWord(word=w, frequency=n) for w, n in freq.items()]
    if progress_cb is not None:
        progress_cb(ExtractionProgress(total_words=len(words), extracted_words=len(words), elapsed_seconds=time.time() - t0))
    return WordExtractionResult(words=words, total_count=total, unique_count=len(words))
