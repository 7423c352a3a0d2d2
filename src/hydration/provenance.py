"""Run provenance for audit.

Every run is stamped with a single structured record answering:
- "Which tenant was touched, and in what mode?"
- "Which kit version ran, with which switches?"
- "What happened, in numbers?"

The record is emitted through the standard logger so it lands in the same
stream (JSON lines in production) as the per-object progress lines.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from . import __version__
from .config import RunContext
from .results import Summary

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to the package version
KIT_VERSION = os.environ.get("HYDRATION_KIT_VERSION", __version__)


@dataclass
class OutcomeCounts:
    """Outcome counts for provenance tracking."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    failed: int = 0
    planned: int = 0  # Would* outcomes under dry-run
    removed: int = 0  # deleted by an update that could not recreate

    @property
    def total_changes(self) -> int:
        """Mutations actually applied to the tenant."""
        return self.created + self.updated + self.deleted

    @classmethod
    def from_summary(cls, summary: Summary) -> OutcomeCounts:
        counts = cls(removed=summary.removed)
        for outcome, count in summary.by_outcome.items():
            if outcome.is_dry_run:
                counts.planned += count
            else:
                attr = outcome.value.lower()
                setattr(counts, attr, getattr(counts, attr) + count)
        return counts


@dataclass
class RunProvenance:
    """Complete provenance record for one run."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    kit_version: str = KIT_VERSION
    kit_name: str = ""

    tenant_id: str = ""
    tenant_name: str = ""
    environment: str = ""

    mode: str = "create"
    dry_run: bool = False
    force_update: bool = False
    kinds: list[str] = field(default_factory=list)

    counts: OutcomeCounts = field(default_factory=OutcomeCounts)
    duration_seconds: float = 0.0

    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result


def create_provenance(context: RunContext) -> RunProvenance:
    """Start a provenance record for a run."""
    return RunProvenance(
        kit_name=context.kit_name,
        tenant_id=context.tenant_id,
        tenant_name=context.tenant_name,
        environment=context.environment.value,
        mode=context.mode.value,
        dry_run=context.dry_run,
        force_update=context.force_update,
        kinds=[kind.value for kind in context.ordered_kinds()],
    )


def log_provenance(provenance: RunProvenance) -> None:
    """Log a completed provenance record."""
    log_level = logging.INFO
    if provenance.error:
        log_level = logging.ERROR
    elif provenance.counts.failed > 0 or provenance.counts.removed > 0:
        log_level = logging.WARNING

    logger.log(
        log_level,
        "Hydration run provenance",
        extra={
            "provenance": provenance.to_dict(),
            # Flatten key fields for easier querying
            "tenant_id": provenance.tenant_id,
            "mode": provenance.mode,
            "dry_run": provenance.dry_run,
            "changes_applied": provenance.counts.total_changes,
            "failed": provenance.counts.failed,
            "kit_version": provenance.kit_version,
            "duration_seconds": provenance.duration_seconds,
        },
    )
