"""Two-level validation of a (possibly partially rewritten) corpus.

Errors mark structural problems that block loading the corpus into the
serving store: missing text or category, an unknown answer type, answer
indexes outside the choice range, and unusable choices. Warnings flag
content for human review: suspicious length and text that does not look
Dutch.

Validation is exhaustive and side-effect free: every record is checked
and every finding is reported. Deciding what to do with an invalid
report is left to the caller.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from qbank.corpus import load_corpus
from qbank.models import AnswerType, CanonicalRecord, Corpus

logger = logging.getLogger(__name__)

MIN_QUESTION_LENGTH = 10
MAX_QUESTION_LENGTH = 2000

_VALID_ANSWER_TYPES: set[str] = {t.value for t in AnswerType}
_INDEXED_ANSWER_TYPES: set[str] = {AnswerType.SINGLE_CHOICE.value, AnswerType.YES_NO.value}

# Common Dutch function words and domain vocabulary
DUTCH_WORDS: frozenset[str] = frozenset({
    "de", "het", "een", "is", "van", "en", "in", "op", "te", "dat",
    "zijn", "wordt", "met", "voor", "niet", "aan", "bij", "als", "maar",
    "rijden", "bestuurder", "voertuig", "weg", "verkeer", "snelheid",
    "voorrang", "kruispunt", "parkeren", "stoppen", "bord", "licht",
    "wie", "wat", "waar", "hoe", "waarom", "wanneer", "welke", "uit",
})


class Severity(str, Enum):
    """Finding severity."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationFinding:
    """One problem found in one record field."""

    record_id: str
    field: str
    message: str
    severity: Severity

    def to_dict(self) -> dict[str, str]:
        return {
            "questionId": self.record_id,
            "field": self.field,
            "message": self.message,
            "severity": self.severity.value,
        }


@dataclass
class ValidationReport:
    """Aggregate result of validating a corpus.

    Attributes:
        total_records: Number of records checked.
        errors: Error findings in corpus order.
        warnings: Warning findings in corpus order.
        by_field: Count of all findings per field name.
    """

    total_records: int
    errors: list[ValidationFinding] = field(default_factory=list)
    warnings: list[ValidationFinding] = field(default_factory=list)
    by_field: dict[str, int] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def to_dict(self) -> dict[str, Any]:
        """Machine-readable report."""
        return {
            "valid": self.valid,
            "totalQuestions": self.total_records,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "summary": {
                "errorCount": self.error_count,
                "warningCount": self.warning_count,
                "byField": dict(self.by_field),
            },
        }


def looks_dutch(text: str) -> bool:
    """Token-overlap language check against :data:`DUTCH_WORDS`.

    Passes with two overlapping tokens, or one when the text has fewer
    than five tokens.
    """
    tokens = text.lower().split()
    overlap = sum(1 for token in tokens if token in DUTCH_WORDS)
    return overlap >= 2 or (len(tokens) < 5 and overlap >= 1)


def _as_index(value: Any) -> int | None:
    """Return *value* as an int index, accepting integral floats such as 1.0."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def validate_record(record: CanonicalRecord) -> list[ValidationFinding]:
    """Check one record and return all of its findings."""
    findings: list[ValidationFinding] = []
    rid = record.original_id

    def error(field_name: str, message: str) -> None:
        findings.append(ValidationFinding(rid, field_name, message, Severity.ERROR))

    def warning(field_name: str, message: str) -> None:
        findings.append(ValidationFinding(rid, field_name, message, Severity.WARNING))

    question = record.question_text or ""
    answer_type = record.answer_type
    choices = record.choices or []

    # --- Errors ---

    if not question.strip():
        error("questionText", "Question text is empty")

    if not (record.category_slug or "").strip():
        error("categorySlug", "Category slug is empty")

    if not answer_type:
        error("answerType", "Answer type is missing")
    elif answer_type not in _VALID_ANSWER_TYPES:
        error("answerType", f"Invalid answer type: {answer_type}")

    if answer_type in _INDEXED_ANSWER_TYPES:
        answer = record.answer
        index = _as_index(answer)
        if index is None or index < 0:
            error("answer", f"Invalid answer index: {answer!r}")
        elif index >= len(choices):
            error(
                "answer",
                f"Answer index {index} out of range ({len(choices)} choices)",
            )

    if answer_type == AnswerType.ORDER.value and not isinstance(record.answer, list):
        error("answer", "ORDER type requires array answer")

    if answer_type != AnswerType.INPUT.value:
        if not choices:
            error("choices", "No choices provided for non-INPUT question")
        else:
            for i, choice in enumerate(choices):
                if not (choice.text or "").strip() and not choice.image_uuid:
                    error(f"choices[{i}]", "Choice has neither text nor image")

    # --- Warnings ---

    if question:
        if len(question) < MIN_QUESTION_LENGTH:
            warning("questionText", "Question text suspiciously short")
        elif len(question) > MAX_QUESTION_LENGTH:
            warning("questionText", "Question text unusually long")
        if not looks_dutch(question):
            warning("questionText", "Question may not be in Dutch")

    return findings


def validate_corpus(corpus: Corpus) -> ValidationReport:
    """Validate every record and aggregate the findings."""
    report = ValidationReport(total_records=len(corpus.records))
    by_field: Counter[str] = Counter()

    for record in corpus.records:
        for finding in validate_record(record):
            by_field[finding.field] += 1
            if finding.severity is Severity.ERROR:
                report.errors.append(finding)
            else:
                report.warnings.append(finding)

    report.by_field = dict(by_field)
    return report


def resolve_validation_input(
    canonical_path: Path, rewritten_path: Path, explicit: Path | None = None
) -> Path:
    """Pick the file to validate: explicit, else rewritten, else canonical."""
    if explicit is not None:
        return Path(explicit)
    if Path(rewritten_path).exists():
        return Path(rewritten_path)
    logger.info("%s not found, using %s", rewritten_path, canonical_path)
    return Path(canonical_path)


def run_validation(path: Path) -> ValidationReport:
    """Load a corpus file and validate it.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    logger.info("Validating %s", path)
    corpus = load_corpus(path)
    report = validate_corpus(corpus)
    logger.info(
        "Validated %d questions: %d errors, %d warnings",
        report.total_records,
        report.error_count,
        report.warning_count,
    )
    return report
