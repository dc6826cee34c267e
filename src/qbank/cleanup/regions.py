"""Keyword-based region tagging."""

from __future__ import annotations

from qbank.models import RegionCode

# Checked in this order; first region with any matching keyword wins.
REGION_KEYWORDS: dict[RegionCode, tuple[str, ...]] = {
    RegionCode.BRUSSELS: ("brusselse gewest", "brussels", "bruxelles", "brussel"),
    RegionCode.FLANDERS: ("vlaanderen", "vlaamse", "vlaams"),
    RegionCode.WALLONIA: ("wallonië", "wallonie", "waals", "waalse"),
}


def detect_region(question_text: str, explanation: str) -> RegionCode:
    """Classify a question into exactly one region.

    The lower-cased question and explanation are searched for each
    region's keywords; no match means the rule is national.
    """
    combined = f"{question_text or ''} {explanation or ''}".lower()
    for region, keywords in REGION_KEYWORDS.items():
        if any(keyword in combined for keyword in keywords):
            return region
    return RegionCode.NATIONAL
