"""Response schema and result types for the rewrite stage."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


class RewrittenContent(BaseModel):
    """The two-field object the backend must return.

    Both keys are required. A blank question is rejected; the explanation
    may be empty because some source questions have none.
    """

    question: str = Field(min_length=1, description="Rewritten question text")
    explanation: str = Field(description="Rewritten explanation text")

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


@dataclass(frozen=True)
class RewriteResult:
    """A successful rewrite of one record, keyed by record id."""

    record_id: str
    question: str
    explanation: str
