"""Run orchestration.

Drives every enabled kind, one after another, through:
    template loader -> resource lister -> reconciler -> result log
and finishes with aggregation, the provenance record and the reports.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .config import RunContext, RunMode
from .graph import GraphClient
from .kinds import KIND_CONFIGS, ResourceKind
from .lister import ResourceLister
from .provenance import OutcomeCounts, create_provenance, log_provenance
from .reconciler import KindOptions, Reconciler
from .report import write_reports
from .results import ResultLog, ResultRecord, Summary, aggregate
from .templates import ResourceDefinition, load_definitions

logger = logging.getLogger(__name__)


@dataclass
class HydrationResult:
    """Everything a finished run produced."""

    records: list[ResultRecord]
    summary: Summary
    report_paths: list[Path] = field(default_factory=list)
    error: Exception | None = None

    @property
    def success(self) -> bool:
        """True when the run finished and no object failed."""
        return self.error is None and self.summary.failed == 0


class Hydrator:
    """Runs one hydration (or removal) pass over a tenant."""

    def __init__(
        self,
        context: RunContext,
        client: GraphClient,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._context = context
        self._results = ResultLog()
        # One lister per run: existing state is never reused across runs
        self._lister = ResourceLister(client)
        self._reconciler = Reconciler(context, client, self._lister, self._results, sleep=sleep)

    @property
    def results(self) -> ResultLog:
        return self._results

    def _load(self, kind: ResourceKind) -> list[ResourceDefinition]:
        kind_config = KIND_CONFIGS[kind]
        loaded = load_definitions(
            self._context.templates_dir / kind_config.template_dir,
            kind_config,
            recursive=self._context.recursive,
        )
        self._results.extend(loaded.failures)
        return loaded.definitions

    def run_kind(self, kind: ResourceKind) -> list[ResultRecord]:
        """Reconcile one kind."""
        kind_config = KIND_CONFIGS[kind]
        options = KindOptions.from_context(self._context, kind)
        if not options.enabled:
            return []

        definitions: list[ResourceDefinition] = []
        if self._context.mode == RunMode.CREATE:
            definitions = self._load(kind)

        return self._reconciler.reconcile(kind_config, definitions, options)

    def run(self) -> HydrationResult:
        """Process every enabled kind, then aggregate and report.

        A failure that escapes the per-object handling (for example an
        unwritable reports directory) is recorded on the result instead of
        propagating, and the provenance record is logged either way.
        """
        started = time.monotonic()
        provenance = create_provenance(self._context)
        report_paths: list[Path] = []
        error: Exception | None = None

        logger.info(
            "Starting hydration run",
            extra={
                "tenant_id": self._context.tenant_id,
                "mode": self._context.mode.value,
                "dry_run": self._context.dry_run,
                "force_update": self._context.force_update,
                "kinds": provenance.kinds,
            },
        )

        try:
            for kind in self._context.ordered_kinds():
                self.run_kind(kind)

            records = self._results.records
            report_paths = write_reports(records, self._context, aggregate(records))
        except OSError as e:
            logger.error("Failed to write run artifacts", extra={"error": str(e)})
            error = e
        except Exception as e:
            logger.exception("Unexpected error during hydration run")
            error = e
        finally:
            records = self._results.records
            summary = aggregate(records)
            provenance.counts = OutcomeCounts.from_summary(summary)
            provenance.duration_seconds = round(time.monotonic() - started, 3)
            if error is not None:
                provenance.error = str(error)
                provenance.error_type = type(error).__name__
            log_provenance(provenance)

        return HydrationResult(
            records=records, summary=summary, report_paths=report_paths, error=error
        )
