"""Checkpoint persistence for resumable rewrite runs.

The checkpoint records which question ids have been rewritten
successfully. It is written atomically (write to .tmp then rename) after
every batch so an interrupted run loses at most the batch in flight.

Failed ids are never recorded: on the next run they are indistinguishable
from ids that were never attempted and are retried the same way.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.table import Table

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


@dataclass
class CheckpointState:
    """Completed-id set plus bookkeeping timestamps.

    Attributes:
        processed_ids: Ids rewritten successfully, in completion order.
        last_batch_index: Index of the last batch whose progress was flushed.
        started_at: ISO 8601 timestamp of the first run.
        last_updated_at: ISO 8601 timestamp of the last flush.
    """

    processed_ids: list[str] = field(default_factory=list)
    last_batch_index: int = 0
    started_at: str = field(default_factory=_now)
    last_updated_at: str = field(default_factory=_now)

    def __post_init__(self) -> None:
        # Drop duplicates while keeping first-seen order
        self.processed_ids = list(dict.fromkeys(self.processed_ids))
        self._seen = set(self.processed_ids)

    def is_processed(self, record_id: str) -> bool:
        return record_id in self._seen

    def mark_processed(self, record_id: str) -> None:
        """Add *record_id* to the completed set (no-op if already present)."""
        if record_id not in self._seen:
            self._seen.add(record_id)
            self.processed_ids.append(record_id)

    @property
    def completed(self) -> frozenset[str]:
        return frozenset(self._seen)

    def to_dict(self) -> dict:
        return {
            "processedIds": list(self.processed_ids),
            "lastBatchIndex": self.last_batch_index,
            "startedAt": self.started_at,
            "lastUpdatedAt": self.last_updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CheckpointState:
        return cls(
            processed_ids=[str(i) for i in data.get("processedIds", [])],
            last_batch_index=int(data.get("lastBatchIndex", 0)),
            started_at=data.get("startedAt") or _now(),
            last_updated_at=data.get("lastUpdatedAt") or _now(),
        )


class CheckpointStore:
    """Loads and atomically persists :class:`CheckpointState`.

    Single-process: the last writer wins, no merge is attempted.

    Args:
        path: Checkpoint file location. Defaults to ``data/progress.json``.
    """

    def __init__(self, path: Path = Path("data/progress.json")) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """Return the checkpoint file path."""
        return self._path

    @property
    def exists(self) -> bool:
        """Check if a checkpoint file exists."""
        return self._path.exists()

    def load(self) -> CheckpointState:
        """Load checkpoint state, or a fresh empty state if none is usable."""
        if not self._path.exists():
            return CheckpointState()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return CheckpointState.from_dict(data)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(
                "Unreadable checkpoint %s (%s); starting from an empty state",
                self._path,
                e,
            )
            return CheckpointState()

    def persist(self, state: CheckpointState) -> None:
        """Stamp ``last_updated_at`` and write *state* atomically."""
        state.last_updated_at = _now()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(state.to_dict(), indent=2))
        tmp_path.replace(self._path)

    def clear(self) -> None:
        """Delete the checkpoint file if it exists."""
        if self._path.exists():
            self._path.unlink()


def display_progress(
    state: CheckpointState, total_records: int, console: Console
) -> None:
    """Render checkpoint progress against the corpus size as a Rich table."""
    done = len(state.processed_ids)
    remaining = max(total_records - done, 0)
    pct = (done / total_records * 100) if total_records else 0.0

    table = Table(title="Rewrite Progress", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Rewritten", f"{done:,}/{total_records:,} ({pct:.1f}%)")
    table.add_row("Remaining", f"{remaining:,}")
    table.add_row("Last batch", str(state.last_batch_index))
    table.add_row("Started", state.started_at)
    table.add_row("Last updated", state.last_updated_at)
    console.print(table)
