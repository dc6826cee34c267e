"""Data models and enums for the question-bank corpus pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

# Single index, free-text/number input, or an ordered index list
Answer = Union[int, str, list[int]]


def _int_or(value: Any, default: int) -> int:
    """Coerce *value* to int, falling back to *default* when it is not numeric."""
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _label(value: Any) -> str:
    """Text form of an identifier-like field; absent becomes ``""``."""
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _list_or_empty(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


class AnswerType(str, Enum):
    """How a question is answered."""

    SINGLE_CHOICE = "SINGLE_CHOICE"
    YES_NO = "YES_NO"
    INPUT = "INPUT"
    ORDER = "ORDER"


class RegionCode(str, Enum):
    """Regulatory region a question applies to."""

    NATIONAL = "national"
    BRUSSELS = "brussels"
    FLANDERS = "flanders"
    WALLONIA = "wallonia"


@dataclass(frozen=True)
class RawOption:
    """A single answer option as it appears in the raw corpus."""

    text: str | None = None
    image: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> RawOption:
        if not isinstance(data, dict):
            return cls()
        return cls(text=_str_or_none(data.get("text")), image=_str_or_none(data.get("image")))


@dataclass(frozen=True)
class RawRecord:
    """A question exactly as exported by the upstream source. Read-only."""

    id: str
    series_id: str | int
    question: str
    explanation: str
    answer: Answer
    answer_type: str
    choices: tuple[RawOption, ...] = ()
    title: str | None = None
    image: str | None = None
    video: str | None = None
    is_major_fault: bool = False
    source: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RawRecord:
        """Build a RawRecord from one entry of the raw export.

        Missing markup fields become empty strings so downstream
        normalization never has to special-case ``None``.
        """
        return cls(
            id=str(data["id"]),
            series_id=data.get("seriesId", ""),
            question=data.get("question") or "",
            explanation=data.get("explanation") or "",
            answer=data.get("answer", 0),
            answer_type=data.get("answerType", ""),
            choices=tuple(RawOption.from_dict(c) for c in data.get("choices") or []),
            title=data.get("title"),
            image=data.get("image"),
            video=data.get("video"),
            is_major_fault=bool(data.get("isMajorFault", False)),
            source=_int_or(data.get("source"), 0),
        )


@dataclass
class CanonicalOption:
    """A position-indexed answer option after normalization."""

    position: int
    text: str | None = None
    image_uuid: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"position": self.position}
        if self.text is not None:
            d["text"] = self.text
        if self.image_uuid is not None:
            d["imageUuid"] = self.image_uuid
        return d

    @classmethod
    def from_dict(cls, data: Any, position: int = 0) -> CanonicalOption:
        """Deserialize one option; *position* is used when none is stored.

        A non-object entry becomes an option with neither text nor image.
        """
        if not isinstance(data, dict):
            return cls(position=position)
        return cls(
            position=_int_or(data.get("position"), position),
            text=_str_or_none(data.get("text")),
            image_uuid=_str_or_none(data.get("imageUuid")),
        )


@dataclass
class CanonicalRecord:
    """Normalized, region- and slug-tagged question.

    ``question_text`` and ``explanation`` are the live fields that the
    rewrite stage overwrites; the ``*_original`` fields keep the
    pre-rewrite text for audit.
    """

    original_id: str
    category_slug: str
    region_code: str
    question_text: str
    question_text_original: str
    explanation: str
    explanation_original: str
    answer: Answer
    answer_type: str
    choices: list[CanonicalOption] = field(default_factory=list)
    category_title: str | None = None
    image_uuid: str | None = None
    video_id: str | None = None
    is_major_fault: bool = False
    source: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase keys of the corpus file format."""
        return {
            "originalId": self.original_id,
            "categorySlug": self.category_slug,
            "categoryTitle": self.category_title,
            "regionCode": self.region_code,
            "imageUuid": self.image_uuid,
            "videoId": self.video_id,
            "questionText": self.question_text,
            "questionTextOriginal": self.question_text_original,
            "explanation": self.explanation,
            "explanationOriginal": self.explanation_original,
            "answer": self.answer,
            "answerType": self.answer_type,
            "isMajorFault": self.is_major_fault,
            "choices": [c.to_dict() for c in self.choices],
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanonicalRecord:
        """Deserialize a corpus entry, tolerating absent optional keys.

        Fields the validator inspects (question text, category slug,
        answer type, choices) are read leniently so that a malformed
        entry is reported rather than rejected at load time.
        """
        if not isinstance(data, dict):
            data = {}
        return cls(
            original_id=_label(data.get("originalId")),
            category_slug=_label(data.get("categorySlug")),
            region_code=_label(data.get("regionCode")) or RegionCode.NATIONAL.value,
            question_text=_str_or_none(data.get("questionText")) or "",
            question_text_original=_str_or_none(data.get("questionTextOriginal")) or "",
            explanation=_str_or_none(data.get("explanation")) or "",
            explanation_original=_str_or_none(data.get("explanationOriginal")) or "",
            answer=data.get("answer"),
            answer_type=_label(data.get("answerType")),
            choices=[
                CanonicalOption.from_dict(c, position=i)
                for i, c in enumerate(_list_or_empty(data.get("choices")))
            ],
            category_title=_str_or_none(data.get("categoryTitle")),
            image_uuid=_str_or_none(data.get("imageUuid")),
            video_id=_str_or_none(data.get("videoId")),
            is_major_fault=bool(data.get("isMajorFault", False)),
            source=_int_or(data.get("source"), 0),
        )


@dataclass
class Corpus:
    """An in-memory corpus file: envelope fields plus ordered records."""

    records: list[CanonicalRecord]
    assets_base_url: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    categories: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "assetsBaseUrl": self.assets_base_url,
            "metadata": self.metadata,
            "categories": self.categories,
            "data": [r.to_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Corpus:
        """Deserialize a corpus file.

        Raises:
            ValueError: If *data* is not a JSON object.
        """
        if not isinstance(data, dict):
            raise ValueError(
                f"Corpus file must contain a JSON object, got {type(data).__name__}"
            )
        metadata = data.get("metadata")
        return cls(
            records=[CanonicalRecord.from_dict(r) for r in _list_or_empty(data.get("data"))],
            assets_base_url=_str_or_none(data.get("assetsBaseUrl")) or "",
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
            categories=list(_list_or_empty(data.get("categories"))),
        )
