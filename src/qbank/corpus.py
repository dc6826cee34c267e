"""Reading and writing corpus JSON files.

Writes are atomic (write to .tmp then rename) so that an interrupted
run never leaves a half-written corpus behind for the next stage.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from qbank.models import Corpus

logger = logging.getLogger(__name__)


def read_json(path: Path) -> dict[str, Any]:
    """Read a JSON document.

    Raises:
        FileNotFoundError: If *path* does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write *payload* as indented JSON via a temp file and rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8"
    )
    tmp_path.replace(path)


def load_corpus(path: Path) -> Corpus:
    """Load a canonical or rewritten corpus file."""
    return Corpus.from_dict(read_json(path))


def save_corpus(path: Path, corpus: Corpus) -> None:
    """Persist *corpus* atomically."""
    write_json_atomic(path, corpus.to_dict())
    logger.info("Wrote %d records to %s", len(corpus.records), path)


def resolve_latest_corpus(canonical_path: Path, rewritten_path: Path) -> Path:
    """Return the most recent corpus artifact.

    A previously rewritten corpus wins over the canonical one so repeated
    rewrite runs layer onto earlier partial output.

    Raises:
        FileNotFoundError: If neither file exists.
    """
    if Path(rewritten_path).exists():
        return Path(rewritten_path)
    if Path(canonical_path).exists():
        return Path(canonical_path)
    raise FileNotFoundError(
        f"No corpus found: neither {rewritten_path} nor {canonical_path} exists"
    )
