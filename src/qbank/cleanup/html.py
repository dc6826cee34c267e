"""HTML markup to plain text folding."""

from __future__ import annotations

import html
import re

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_P_RE = re.compile(r"</?p(?:\s[^>]*)?>", re.IGNORECASE)
_EMPHASIS_RE = re.compile(r"</?(?:strong|em|b|i)(?:\s[^>]*)?>", re.IGNORECASE)
_ANY_TAG_RE = re.compile(r"<[^>]*>")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def clean_html(markup: str | None) -> str:
    """Convert question markup to plain text.

    Entities are decoded first, then line breaks and paragraph boundaries
    become newlines, emphasis wrappers are dropped keeping their text, and
    any remaining tag is removed. Runs of three or more newlines collapse
    to a single blank line.

    Never raises: ``None`` or non-string input yields an empty string.
    """
    if not markup or not isinstance(markup, str):
        return ""

    text = html.unescape(markup)
    text = _BR_RE.sub("\n", text)
    text = _P_RE.sub("\n", text)
    text = _EMPHASIS_RE.sub("", text)
    text = _ANY_TAG_RE.sub("", text)
    text = _EXCESS_NEWLINES_RE.sub("\n\n", text)
    return text.strip()
