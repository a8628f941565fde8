# -*- coding: utf-8 -*-

from __future__ import annotations

import csv
import io
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Protocol

from .analysis_types import PHONICS_FIELDS, PhonicsWord, WordOutcome
from .openai_compat import (
    LLMTransportError,
    OpenAICompatClient,
    ProviderUnavailableError,
    extract_first_content,
    raise_for_status,
)


log = logging.getLogger("wordbatch.client")

MISSING_WORD_ERROR = "missing from provider response"


class AnalysisClient(Protocol):
    def analyze_batch(self, words: List[str], *, timeout_s: float) -> List[WordOutcome]:
        ...


BATCH_PROMPT = """You are an English phonics teacher for Chinese learners.

Analyze each of these English words: {word_list}

Return ONLY CSV (no prose, no markdown) with this exact header line:
{header}

Rules:
- One row per word, in the order given; keep the word spelled exactly as given.
- frequency: integer, use 1 if unknown.
- chinese_translation / pos_chinese: Simplified Chinese.
- pos_abbreviation: e.g. n. / v. / adj. / adv.
- ipa: IPA transcription wrapped in slashes, e.g. /ˈæpəl/.
- syllables: split with "-", e.g. ap-ple.
- phonics_rule / analysis_explanation: short, one sentence each.
- Quote any field that contains a comma.
"""


def build_batch_prompt(words: List[str]) -> str:
    return BATCH_PROMPT.format(word_list=", ".join(words), header=",".join(PHONICS_FIELDS))


def strip_markdown_fences(content: str) -> str:
    s = (content or "").strip()
    if not s.startswith("```"):
        return s
    lines = s.splitlines()
    body = lines[1:]
    if body and body[-1].strip().startswith("```"):
        body = body[:-1]
    return "\n".join(body).strip()


def _to_int(raw: str, default: int = 1) -> int:
    try:
        return int(str(raw or "").strip())
    except ValueError:
        return default


def parse_phonics_csv(content: str) -> List[PhonicsWord]:
    """
    Parse the provider's CSV reply. Rows without a word are skipped; a reply
    with no usable row raises LLMTransportError so the batch can be retried.
    """
    cleaned = strip_markdown_fences(content)
    reader = csv.DictReader(io.StringIO(cleaned))
    fields = [str(f or "").strip().lower() for f in (reader.fieldnames or [])]
    if "word" not in fields:
        raise LLMTransportError("provider reply is not CSV with a 'word' header")
    reader.fieldnames = fields

    out: List[PhonicsWord] = []
    for line_no, row in enumerate(reader, start=2):
        word = str(row.get("word", "") or "").strip()
        if not word:
            log.info("skipping CSV row %d without a word", line_no)
            continue
        out.append(
            PhonicsWord(
                word=word,
                frequency=_to_int(row.get("frequency", "")),
                chinese_translation=str(row.get("chinese_translation", "") or "").strip(),
                pos_abbreviation=str(row.get("pos_abbreviation", "") or "").strip(),
                pos_english=str(row.get("pos_english", "") or "").strip(),
                pos_chinese=str(row.get("pos_chinese", "") or "").strip(),
                ipa=str(row.get("ipa", "") or "").strip(),
                syllables=str(row.get("syllables", "") or "").strip(),
                phonics_rule=str(row.get("phonics_rule", "") or "").strip(),
                analysis_explanation=str(row.get("analysis_explanation", "") or "").strip(),
            )
        )
    if not out:
        raise LLMTransportError("no valid words found in CSV response")
    return out


class PhonicsAnalysisClient:
    """Analysis client backed by an OpenAI-compatible chat endpoint."""

    def __init__(
        self,
        llm: Optional[OpenAICompatClient],
        *,
        max_tokens: int = 8000,
        temperature: float = 0.1,
    ):
        self.llm = llm
        self.max_tokens = int(max_tokens)
        self.temperature = float(temperature)

    def analyze_batch(self, words: List[str], *, timeout_s: float) -> List[WordOutcome]:
        if self.llm is None:
            raise ProviderUnavailableError("LLM API is not configured (set WORDBATCH_LLM_API_KEY / OPENAI_API_KEY)")
        missing = self.llm.cfg.missing_fields()
        if missing:
            raise ProviderUnavailableError("LLM API is not configured: missing " + ", ".join(missing))
        if not words:
            return []

        status, resp = self.llm.chat(
            messages=[{"role": "system", "content": build_batch_prompt(words)}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout_s=float(timeout_s),
        )
        raise_for_status(status, resp)
        content = extract_first_content(resp)
        if not content:
            raise LLMTransportError("empty content in provider response")

        parsed = parse_phonics_csv(content)
        by_key: Dict[str, PhonicsWord] = {}
        for pw in parsed:
            by_key.setdefault(pw.word.strip().lower(), pw)

        outcomes: List[WordOutcome] = []
        for w in words:
            pw = by_key.get(w.strip().lower())
            if pw is None:
                outcomes.append(WordOutcome(word=w, error=MISSING_WORD_ERROR))
                continue
            outcomes.append(WordOutcome(word=w, result=replace(pw, word=w)))
        return outcomes
