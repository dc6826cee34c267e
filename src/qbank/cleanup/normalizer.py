"""Raw record to canonical record normalization.

``normalize_record`` is pure. Aggregation over the whole export
(categories, assets, region counts) lives in ``normalize_corpus`` and the
file round-trip in ``run_cleanup``.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from qbank.cleanup.categories import normalize_category_key
from qbank.cleanup.html import clean_html
from qbank.cleanup.regions import detect_region
from qbank.corpus import read_json, save_corpus
from qbank.models import CanonicalOption, CanonicalRecord, Corpus, RawRecord, RegionCode

logger = logging.getLogger(__name__)


def normalize_record(raw: RawRecord) -> CanonicalRecord:
    """Derive the canonical form of one raw question."""
    question_text = clean_html(raw.question)
    explanation = clean_html(raw.explanation)

    choices = [
        CanonicalOption(
            position=index,
            text=clean_html(option.text) if option.text else None,
            image_uuid=option.image or None,
        )
        for index, option in enumerate(raw.choices)
    ]

    return CanonicalRecord(
        original_id=raw.id,
        category_slug=normalize_category_key(raw.series_id),
        category_title=raw.title,
        region_code=detect_region(question_text, explanation).value,
        image_uuid=raw.image or None,
        video_id=raw.video or None,
        question_text=question_text,
        question_text_original=question_text,
        explanation=explanation,
        explanation_original=explanation,
        answer=raw.answer,
        answer_type=raw.answer_type,
        is_major_fault=raw.is_major_fault,
        choices=choices,
        source=raw.source,
    )


def collect_assets(record: CanonicalRecord) -> set[str]:
    """Asset references used by a record (videos prefixed ``video:``)."""
    assets: set[str] = set()
    if record.image_uuid:
        assets.add(record.image_uuid)
    if record.video_id:
        assets.add(f"video:{record.video_id}")
    for choice in record.choices:
        if choice.image_uuid:
            assets.add(choice.image_uuid)
    return assets


def normalize_corpus(
    raw_records: Iterable[RawRecord], assets_base_url: str = ""
) -> Corpus:
    """Normalize every raw record and compute run metadata.

    Args:
        raw_records: Raw export entries in source order.
        assets_base_url: Passed through to the canonical file envelope.

    Returns:
        Corpus with records in input order, sorted distinct categories,
        and metadata (totals, zero-filled region distribution, timestamp).
    """
    records: list[CanonicalRecord] = []
    categories: set[str] = set()
    assets: set[str] = set()
    region_counts: Counter[str] = Counter({r.value: 0 for r in RegionCode})

    for raw in raw_records:
        record = normalize_record(raw)
        records.append(record)
        categories.add(record.category_slug)
        region_counts[record.region_code] += 1
        assets |= collect_assets(record)

    metadata: dict[str, Any] = {
        "totalQuestions": len(records),
        "totalCategories": len(categories),
        "totalAssets": len(assets),
        "regionDistribution": {r.value: region_counts[r.value] for r in RegionCode},
        "processedAt": datetime.now(tz=timezone.utc).isoformat(),
    }

    return Corpus(
        records=records,
        assets_base_url=assets_base_url,
        metadata=metadata,
        categories=sorted(categories),
    )


def run_cleanup(input_path: Path, output_path: Path) -> Corpus:
    """Read the raw export, normalize it, and write the canonical corpus.

    Raises:
        FileNotFoundError: If *input_path* does not exist.
    """
    logger.info("Reading raw export %s", input_path)
    payload = read_json(input_path)
    raw_records = [RawRecord.from_dict(entry) for entry in payload.get("data") or []]
    logger.info("Found %d raw questions", len(raw_records))

    corpus = normalize_corpus(raw_records, payload.get("assetsBaseUrl", ""))
    save_corpus(output_path, corpus)

    logger.info(
        "Cleanup complete: %d questions, %d categories, %d assets",
        corpus.metadata["totalQuestions"],
        corpus.metadata["totalCategories"],
        corpus.metadata["totalAssets"],
    )
    return corpus
