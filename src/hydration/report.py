"""Markdown and JSON run reports.

Reports are rendered from the result log alone. They are written even when
objects failed; only a fatal error before reconciliation prevents them.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .config import RunContext
from .kinds import KIND_ORDER
from .results import Outcome, ResultRecord, Summary, aggregate

logger = logging.getLogger(__name__)

REPORT_FILE_PREFIX = "Hydration-Report"


def _escape_cell(value: str | None) -> str:
    return (value or "").replace("|", "\\|").replace("\n", " ")


def render_markdown(
    records: Sequence[ResultRecord],
    summary: Summary,
    context: RunContext,
    generated_at: datetime | None = None,
) -> str:
    """Render a human-readable markdown report."""
    generated_at = generated_at or datetime.now(UTC)
    lines = [
        "# Intune Hydration Report",
        "",
        f"- **Tenant:** {context.tenant_name or context.tenant_id}",
        f"- **Generated:** {generated_at.isoformat()}",
        f"- **Mode:** {context.mode.value}",
        f"- **Dry run:** {'yes' if context.dry_run else 'no'}",
        f"- **Force update:** {'yes' if context.force_update else 'no'}",
        "",
        "## Summary",
        "",
        "| Outcome | Count |",
        "|---|---|",
    ]
    for outcome in Outcome:
        count = summary.count(outcome)
        if count:
            lines.append(f"| {outcome.value} | {count} |")
    lines.append(f"| **Total** | {summary.total} |")

    lines += ["", "## By Kind", "", "| Kind | Outcome | Count |", "|---|---|---|"]
    for kind in KIND_ORDER:
        for outcome, count in sorted(
            summary.by_kind.get(kind, {}).items(), key=lambda item: item[0].value
        ):
            lines.append(f"| {kind.value} | {outcome.value} | {count} |")

    removed = [r for r in records if r.object_removed]
    if removed:
        lines += [
            "",
            "## Objects Removed By Failed Updates",
            "",
            "These objects were deleted for recreation but could not be recreated. "
            "They no longer exist in the tenant.",
            "",
            "| Kind | Name | Previous Id | Detail |",
            "|---|---|---|---|",
        ]
        for r in removed:
            lines.append(
                f"| {r.kind.value} | {_escape_cell(r.name)} | {r.resource_id or ''} "
                f"| {_escape_cell(r.detail)} |"
            )

    failures = [r for r in records if r.outcome == Outcome.FAILED]
    if failures:
        lines += ["", "## Failures", "", "| Kind | Name | Detail |", "|---|---|---|"]
        for r in failures:
            lines.append(f"| {r.kind.value} | {_escape_cell(r.name)} | {_escape_cell(r.detail)} |")

    lines += ["", "## Details", "", "| Time | Kind | Name | Outcome | Id |"]
    lines.append("|---|---|---|---|---|")
    for r in records:
        lines.append(
            f"| {r.timestamp.strftime('%H:%M:%S')} | {r.kind.value} | {_escape_cell(r.name)} "
            f"| {r.outcome.value} | {r.resource_id or ''} |"
        )

    return "\n".join(lines) + "\n"


def render_json(
    records: Sequence[ResultRecord],
    summary: Summary,
    context: RunContext,
    generated_at: datetime | None = None,
) -> str:
    """Render a machine-readable JSON report."""
    generated_at = generated_at or datetime.now(UTC)
    document: dict[str, Any] = {
        "tenantId": context.tenant_id,
        "tenantName": context.tenant_name,
        "generatedAt": generated_at.isoformat(),
        "mode": context.mode.value,
        "dryRun": context.dry_run,
        "forceUpdate": context.force_update,
        "summary": summary.to_dict(),
        "results": [r.to_dict() for r in records],
    }
    return json.dumps(document, indent=2)


def write_reports(
    records: Sequence[ResultRecord],
    context: RunContext,
    summary: Summary | None = None,
) -> list[Path]:
    """Write the configured report formats into the reports directory.

    Returns:
        Paths of the files written.
    """
    if not context.report_formats:
        return []

    summary = summary or aggregate(records)
    generated_at = datetime.now(UTC)
    stamp = generated_at.strftime("%Y%m%d-%H%M%S")
    context.reports_dir.mkdir(parents=True, exist_ok=True)

    written: list[Path] = []
    for report_format in context.report_formats:
        match report_format:
            case "markdown":
                path = context.reports_dir / f"{REPORT_FILE_PREFIX}-{stamp}.md"
                content = render_markdown(records, summary, context, generated_at)
            case "json":
                path = context.reports_dir / f"{REPORT_FILE_PREFIX}-{stamp}.json"
                content = render_json(records, summary, context, generated_at)
            case _:
                raise ValueError(f"Unknown report format: {report_format}")
        path.write_text(content, encoding="utf-8")
        written.append(path)
        logger.info("Report written", extra={"format": report_format, "path": str(path)})

    return written
