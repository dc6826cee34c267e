"""Response parsing for rewriting backend outputs.

The backend is asked for a bare JSON object but may wrap it in prose or
code fences. Reasoning models may also return content as a list of typed
chunks, where only ``type == 'text'`` chunks carry the answer.
"""

from __future__ import annotations

import json
from typing import Any

from qbank.rewrite.schemas import RewrittenContent


def response_text(content: Any) -> str:
    """Flatten a chat message ``content`` into plain text.

    Handles both plain strings and lists of chunk objects (thinking
    chunks are skipped).
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for chunk in content:
            if getattr(chunk, "type", None) == "text":
                parts.append(getattr(chunk, "text", "") or "")
        return "".join(parts)
    if content is None:
        return ""
    return str(content)


def extract_json_object(text: str) -> dict:
    """Parse the span from the first ``{`` to the last ``}`` as JSON.

    Raises:
        ValueError: If no brace-delimited span exists, it is not valid
            JSON, or it does not decode to an object.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError(f"No JSON object found in response: {text[:200]!r}")

    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse JSON from response: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def parse_rewrite_response(text: str) -> RewrittenContent:
    """Extract and validate the ``{question, explanation}`` payload.

    Raises:
        ValueError: If no JSON object can be extracted.
        pydantic.ValidationError: If a required field is absent or blank.
    """
    return RewrittenContent.model_validate(extract_json_object(text))
