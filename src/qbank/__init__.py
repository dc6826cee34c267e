"""Question bank corpus pipeline: normalization, LLM rewriting, validation."""

__version__ = "0.1.0"

from qbank.models import (
    AnswerType,
    CanonicalOption,
    CanonicalRecord,
    Corpus,
    RawOption,
    RawRecord,
    RegionCode,
)

__all__ = [
    "AnswerType",
    "CanonicalOption",
    "CanonicalRecord",
    "Corpus",
    "RawOption",
    "RawRecord",
    "RegionCode",
    "__version__",
]
