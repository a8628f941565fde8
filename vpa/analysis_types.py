# -*- coding: utf-8 -*-

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


STATUS_PENDING = "pending"
STATUS_ANALYZING = "analyzing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

WORD_STATUSES = (STATUS_PENDING, STATUS_ANALYZING, STATUS_COMPLETED, STATUS_FAILED)

OVERALL_IDLE = "idle"
OVERALL_EXTRACTING = "extracting"
OVERALL_ANALYZING = "analyzing"
OVERALL_COMPLETED = "completed"

EXTRACTION_MODES = ("focus", "all")


class InvalidRunConfig(ValueError):
    pass


@dataclass(frozen=True)
class ExtractionProgress:
    total_words: int = 0
    extracted_words: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BatchInfo:
    total_batches: int = 0
    completed_batches: int = 0
    current_batch: int = 0  # 0-based
    batch_size: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AnalysisProgress:
    total_words: int = 0
    completed_words: int = 0
    failed_words: int = 0
    current_word: Optional[str] = None
    batch_info: BatchInfo = field(default_factory=BatchInfo)
    elapsed_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PhonicsWord:
    word: str
    frequency: int = 0
    chinese_translation: str = ""
    pos_abbreviation: str = ""
    pos_english: str = ""
    pos_chinese: str = ""
    ipa: str = ""
    syllables: str = ""
    phonics_rule: str = ""
    analysis_explanation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


PHONICS_FIELDS: List[str] = [
    "word",
    "frequency",
    "chinese_translation",
    "pos_abbreviation",
    "pos_english",
    "pos_chinese",
    "ipa",
    "syllables",
    "phonics_rule",
    "analysis_explanation",
]


@dataclass(frozen=True)
class WordStatus:
    """
    Latest known state of one word in the current run.

    `error` is set iff status == "failed"; `result` is set iff status == "completed".
    """

    word: str
    status: str = STATUS_PENDING
    error: Optional[str] = None
    result: Optional[PhonicsWord] = None
    attempts: int = 0

    def __post_init__(self):
        if self.status not in WORD_STATUSES:
            raise ValueError(f"unknown word status: {self.status!r}")
        if (self.status == STATUS_FAILED) != (self.error is not None):
            raise ValueError("error must be set iff status is failed")
        if (self.status == STATUS_COMPLETED) != (self.result is not None):
            raise ValueError("result must be set iff status is completed")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word": self.word,
            "status": self.status,
            "error": self.error,
            "result": self.result.to_dict() if self.result is not None else None,
            "attempts": int(self.attempts),
        }


@dataclass(frozen=True)
class WordOutcome:
    """Per-word answer from one provider call: exactly one of result/error is set."""

    word: str
    result: Optional[PhonicsWord] = None
    error: Optional[str] = None

    def __post_init__(self):
        if (self.result is None) == (self.error is None):
            raise ValueError("exactly one of result/error must be set")

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass(frozen=True)
class RunConfig:
    batch_size: int = 10
    max_concurrent_batches: int = 3
    retry_failed_words: bool = True
    max_retries: int = 2
    timeout_per_batch_seconds: float = 60.0
    extraction_mode: str = "focus"  # "focus" | "all"

    def validate(self) -> "RunConfig":
        if not (5 <= int(self.batch_size) <= 20):
            raise InvalidRunConfig(f"batch_size must be within 5..20 (got {self.batch_size})")
        if not (1 <= int(self.max_concurrent_batches) <= 5):
            raise InvalidRunConfig(f"max_concurrent_batches must be within 1..5 (got {self.max_concurrent_batches})")
        if not (0 <= int(self.max_retries) <= 10):
            raise InvalidRunConfig(f"max_retries must be within 0..10 (got {self.max_retries})")
        if not float(self.timeout_per_batch_seconds) > 0:
            raise InvalidRunConfig(f"timeout_per_batch_seconds must be > 0 (got {self.timeout_per_batch_seconds})")
        if self.extraction_mode not in EXTRACTION_MODES:
            raise InvalidRunConfig(f"extraction_mode must be one of {EXTRACTION_MODES} (got {self.extraction_mode!r})")
        return self

    @staticmethod
    def from_dict(raw: Optional[dict]) -> "RunConfig":
        raw = raw or {}
        if not isinstance(raw, dict):
            raise InvalidRunConfig("config must be an object")
        d = RunConfig()
        try:
            return RunConfig(
                batch_size=int(raw.get("batch_size", d.batch_size)),
                max_concurrent_batches=int(raw.get("max_concurrent_batches", d.max_concurrent_batches)),
                retry_failed_words=bool(raw.get("retry_failed_words", d.retry_failed_words)),
                max_retries=int(raw.get("max_retries", d.max_retries)),
                timeout_per_batch_seconds=float(raw.get("timeout_per_batch_seconds", d.timeout_per_batch_seconds)),
                extraction_mode=str(raw.get("extraction_mode", d.extraction_mode) or d.extraction_mode).strip(),
            )
        except (TypeError, ValueError) as e:
            raise InvalidRunConfig(f"bad config value: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProgressSnapshot:
    overall_status: str
    current_step: str
    extraction: Optional[ExtractionProgress] = None
    analysis: Optional[AnalysisProgress] = None
    word_statuses: Dict[str, WordStatus] = field(default_factory=dict)
    cancelled: bool = False
    finished: bool = False
    error: Optional[str] = None

    def count(self, status: str) -> int:
        return sum(1 for ws in self.word_statuses.values() if ws.status == status)

    @property
    def pending_words(self) -> int:
        """Words not yet settled, taken from the same analysis slice as the completed/failed counts."""
        a = self.analysis
        if a is None:
            return self.count(STATUS_PENDING)
        return max(0, int(a.total_words) - int(a.completed_words) - int(a.failed_words))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.overall_status,
            "current_step": self.current_step,
            "extraction_progress": self.extraction.to_dict() if self.extraction is not None else None,
            "analysis_progress": self.analysis.to_dict() if self.analysis is not None else None,
            "word_statuses": [ws.to_dict() for ws in self.word_statuses.values()],
            "pending_words": self.pending_words,
            "cancelled": bool(self.cancelled),
            "finished": bool(self.finished),
            "error": self.error,
        }


@dataclass(frozen=True)
class ExtractedWord:
    word: str
    frequency: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class WordExtractionResult:
    words: List[ExtractedWord]
    total_count: int  # candidate token occurrences
    unique_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "words": [w.to_dict() for w in self.words],
            "total_count": int(self.total_count),
            "unique_count": int(self.unique_count),
        }


@dataclass(frozen=True)
class BatchAnalysisResult:
    words: List[PhonicsWord]
    total_words: int
    completed_words: int
    failed_words: int
    pending_words: int = 0
    cancelled: bool = False
    error: Optional[str] = None
    elapsed_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "words": [w.to_dict() for w in self.words],
            "total_words": int(self.total_words),
            "completed_words": int(self.completed_words),
            "failed_words": int(self.failed_words),
            "pending_words": int(self.pending_words),
            "cancelled": bool(self.cancelled),
            "error": self.error,
            "elapsed_seconds": float(self.elapsed_seconds),
        }
