"""Category key to slug mapping."""

from __future__ import annotations

import re

# Legacy numeric series ids from the upstream export
SERIES_SLUGS: dict[int, str] = {
    22: "bestuurders",
    23: "voetgangers",
    24: "fietspad",
    25: "bevoegde-personen",
    26: "openbare-weg",
    27: "rijstroken",
    28: "kruisen",
    29: "autosnelweg",
    30: "autoweg",
    31: "voorrang-rechts",
    35: "auto-lading",
    36: "auto-lichten",
    37: "auto",
    38: "snelheid",
    39: "stopafstand",
    41: "inhalen",
    42: "kruispunt-borden",
    43: "verkeerslichten",
    44: "speciale-gebieden",
    45: "verplichte-rijrichting",
    46: "verboden-rijrichting",
    47: "voorrang-afslaan",
    48: "trein-tram-bus",
    49: "stilstaan-parkeren-1",
    50: "stilstaan-parkeren-2",
    51: "stilstaan-parkeren-3",
    52: "alcohol-drugs",
    53: "ongeval",
    54: "zuinig-rijden",
    55: "techniek",
    56: "verkeersborden",
    61: "ad-random",
}

_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Lower-case ASCII slug: non ``[a-z0-9]`` runs become one ``-``."""
    return _NON_SLUG_RE.sub("-", value.lower()).strip("-")


def normalize_category_key(key: str | int) -> str:
    """Map a raw category key to its stable slug.

    Integer keys go through :data:`SERIES_SLUGS`, falling back to
    ``series-<n>``; string keys are slugified.
    """
    if isinstance(key, bool):
        key = str(key)
    if isinstance(key, int):
        return SERIES_SLUGS.get(key, f"series-{key}")
    return slugify(str(key))
