"""Shared pytest fixtures for the corpus pipeline tests.

Provides raw export payloads, canonical corpora, a scriptable fake
rewriting backend, and isolation from the real keyring and environment.
"""

from __future__ import annotations

import asyncio
import json
import re
from pathlib import Path

import pytest

from qbank.config import PipelinePaths
from qbank.models import CanonicalOption, CanonicalRecord, Corpus

_ID_RE = re.compile(r"vraag (\S+) op de weg")


def question_for(record_id: str) -> str:
    return f"Wat is de regel voor vraag {record_id} op de weg?"


def rewritten_question_for(record_id: str) -> str:
    return f"Welke regel geldt bij vraag {record_id} op de weg?"


EXPLANATION = "De bestuurder moet voorrang geven in dit geval."
REWRITTEN_EXPLANATION = "De bestuurder moet in dit geval voorrang verlenen."


def make_record(record_id: str, **overrides) -> CanonicalRecord:
    """A valid canonical SINGLE_CHOICE record whose text embeds its id."""
    question = question_for(record_id)
    fields = dict(
        original_id=record_id,
        category_slug="voorrang-rechts",
        region_code="national",
        question_text=question,
        question_text_original=question,
        explanation=EXPLANATION,
        explanation_original=EXPLANATION,
        answer=0,
        answer_type="SINGLE_CHOICE",
        choices=[CanonicalOption(0, "Ja"), CanonicalOption(1, "Nee")],
    )
    fields.update(overrides)
    return CanonicalRecord(**fields)


def make_corpus(count: int) -> Corpus:
    return Corpus(
        records=[make_record(f"q{i}") for i in range(1, count + 1)],
        assets_base_url="https://assets.example.test/",
        metadata={"totalQuestions": count},
        categories=["voorrang-rechts"],
    )


class Crash(BaseException):
    """Simulates the process dying mid-batch."""


class FakeBackend:
    """Scriptable stand-in for the Mistral client.

    Returns a JSON payload wrapped in prose. Ids in ``fail_ids`` raise
    ``RuntimeError``; ids in ``crash_ids`` raise :class:`Crash`; ids in
    ``responses`` return that raw text instead. Tracks peak concurrency.
    """

    def __init__(
        self,
        fail_ids: set[str] | None = None,
        crash_ids: set[str] | None = None,
        responses: dict[str, str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.fail_ids = fail_ids or set()
        self.crash_ids = crash_ids or set()
        self.responses = responses or {}
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def rewrite(
        self,
        user_prompt: str,
        system_prompt: str,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> tuple[str, int]:
        record_id = _ID_RE.search(user_prompt).group(1)
        self.calls.append(record_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if record_id in self.crash_ids:
                raise Crash(record_id)
            if record_id in self.fail_ids:
                raise RuntimeError(f"connection reset for {record_id}")
            if record_id in self.responses:
                return self.responses[record_id], 10
            payload = json.dumps(
                {
                    "question": rewritten_question_for(record_id),
                    "explanation": REWRITTEN_EXPLANATION,
                }
            )
            return f"Hier is de herschreven tekst:\n{payload}\nSucces!", 42
        finally:
            self.in_flight -= 1


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep tests away from the real keyring and REPHRASE_* settings."""
    monkeypatch.setattr("qbank.config.keyring.get_password", lambda *a: None)
    for name in (
        "MISTRAL_API_KEY",
        "REPHRASE_BATCH_SIZE",
        "REPHRASE_CONCURRENCY",
        "REPHRASE_LIMIT",
        "REPHRASE_ONLY_EXPORT_REPHRASED",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def raw_payload() -> dict:
    """A small raw export covering every answer type and region."""
    return {
        "assetsBaseUrl": "https://assets.example.test/",
        "data": [
            {
                "id": "42",
                "seriesId": 56,
                "title": "Verkeersborden",
                "question": "<p>Wat is de max snelheid?</p>",
                "explanation": "In het Vlaamse Gewest...",
                "answerType": "SINGLE_CHOICE",
                "answer": 0,
                "choices": [{"text": "50"}, {"text": "70"}],
                "isMajorFault": False,
                "image": "img-42",
                "video": "",
                "source": 1,
            },
            {
                "id": "43",
                "seriesId": "Brussel &amp; Parkeren",
                "question": "Mag je hier parkeren in het Brusselse Gewest?<br/>Kijk goed.",
                "explanation": "<strong>Nee</strong>, dit is verboden.",
                "answerType": "YES_NO",
                "answer": 1,
                "choices": [{"text": "Ja"}, {"text": "Nee"}],
                "isMajorFault": True,
                "image": None,
                "video": "vid-1",
                "source": 2,
            },
            {
                "id": "44",
                "seriesId": 9999,
                "question": "Hoeveel meter is de stopafstand bij 50 km/u?",
                "explanation": "",
                "answerType": "INPUT",
                "answer": "25",
                "choices": [],
                "isMajorFault": False,
                "source": 1,
            },
            {
                "id": "45",
                "seriesId": 38,
                "question": "Zet de stappen in de juiste volgorde.",
                "explanation": "Eerst kijken, dan remmen.",
                "answerType": "ORDER",
                "answer": [1, 0],
                "choices": [{"image": "img-a"}, {"text": "Remmen", "image": "img-b"}],
                "isMajorFault": False,
                "source": 1,
            },
        ],
    }


@pytest.fixture
def paths(tmp_path: Path) -> PipelinePaths:
    return PipelinePaths(data_dir=tmp_path / "data", raw_file=tmp_path / "data_final.json")
