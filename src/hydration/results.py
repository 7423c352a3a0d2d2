"""Per-object result records and their aggregation.

The append-only ResultLog is the sole output of a run: the report renderer
and the provenance record are both derived from it.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .kinds import ResourceKind


class Outcome(str, Enum):
    """Reconciliation outcome for one object."""

    CREATED = "Created"
    UPDATED = "Updated"
    SKIPPED = "Skipped"
    DELETED = "Deleted"
    FAILED = "Failed"
    WOULD_CREATE = "WouldCreate"
    WOULD_UPDATE = "WouldUpdate"
    WOULD_DELETE = "WouldDelete"

    @property
    def is_dry_run(self) -> bool:
        """True for the Would* variants."""
        return self in DRY_RUN_OUTCOMES


DRY_RUN_OUTCOMES: frozenset[Outcome] = frozenset(
    {Outcome.WOULD_CREATE, Outcome.WOULD_UPDATE, Outcome.WOULD_DELETE}
)


@dataclass(frozen=True)
class ResultRecord:
    """Outcome of processing one definition or one existing object.

    Attributes:
        kind: Resource kind processed.
        name: Display name (or template file name for load failures).
        outcome: What happened.
        resource_id: Graph object id, when known.
        detail: Human-readable explanation, server error message on failure.
        object_removed: True when an update deleted the existing object but
            could not recreate it, so the object is now absent.
        timestamp: When the record was produced (UTC).
    """

    kind: ResourceKind
    name: str
    outcome: Outcome
    resource_id: str | None = None
    detail: str = ""
    object_removed: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "name": self.name,
            "outcome": self.outcome.value,
            "id": self.resource_id,
            "detail": self.detail,
            "objectRemoved": self.object_removed,
        }


class ResultLog:
    """Append-only collection of result records for one run."""

    def __init__(self) -> None:
        self._records: list[ResultRecord] = []
        self._lock = threading.Lock()

    def append(self, record: ResultRecord) -> None:
        with self._lock:
            self._records.append(record)

    def extend(self, records: Iterable[ResultRecord]) -> None:
        with self._lock:
            self._records.extend(records)

    @property
    def records(self) -> list[ResultRecord]:
        """Snapshot of the records appended so far."""
        with self._lock:
            return list(self._records)

    def __iter__(self) -> Iterator[ResultRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


@dataclass
class Summary:
    """Outcome counts for a run, overall and per kind."""

    by_outcome: dict[Outcome, int] = field(default_factory=dict)
    by_kind: dict[ResourceKind, dict[Outcome, int]] = field(default_factory=dict)
    removed: int = 0

    @property
    def total(self) -> int:
        return sum(self.by_outcome.values())

    @property
    def failed(self) -> int:
        return self.by_outcome.get(Outcome.FAILED, 0)

    def count(self, outcome: Outcome, kind: ResourceKind | None = None) -> int:
        """Count records with an outcome, optionally within one kind."""
        if kind is None:
            return self.by_outcome.get(outcome, 0)
        return self.by_kind.get(kind, {}).get(outcome, 0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total": self.total,
            "byOutcome": {o.value: n for o, n in self.by_outcome.items()},
            "byKind": {
                k.value: {o.value: n for o, n in counts.items()}
                for k, counts in self.by_kind.items()
            },
            "objectsRemoved": self.removed,
        }


def aggregate(records: Iterable[ResultRecord]) -> Summary:
    """Count outcomes overall and per kind in one pass."""
    summary = Summary()
    for record in records:
        summary.by_outcome[record.outcome] = summary.by_outcome.get(record.outcome, 0) + 1
        per_kind = summary.by_kind.setdefault(record.kind, {})
        per_kind[record.outcome] = per_kind.get(record.outcome, 0) + 1
        if record.object_removed:
            summary.removed += 1
    return summary
