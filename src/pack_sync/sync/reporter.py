"""Sync report formatting.

- ``format_sync_report`` -- human-readable summary for the CLI.
- ``report_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import SyncReport


def format_sync_report(report: SyncReport) -> str:
    """Format a sync report as human-readable text.

    Sections only appear when they have entries.  Unchanged packs are
    summarised by count.
    """
    lines: list[str] = []

    lines.append(f"Pack sync for {report.cache_root}")
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(report.summary())
    lines.append("")

    if report.created:
        lines.append("Created:")
        for r in report.created:
            lines.append(f"  {r.pack_name} ({len(r.written_units)} units)")
        lines.append("")

    if report.updated:
        lines.append("Updated:")
        for r in report.updated:
            detail = f"{len(r.written_units)} written"
            if r.deleted_units:
                detail += f", {len(r.deleted_units)} removed"
            lines.append(f"  {r.pack_name} ({detail})")
        lines.append("")

    if report.pruned:
        lines.append("Pruned:")
        for r in report.pruned:
            lines.append(f"  {r.pack_name}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(f"  {r.pack_name}: {r.error}")
        lines.append("")

    if report.install_queued:
        lines.append(f"Dependency installs queued: {len(report.install_queued)}")
        lines.append("")

    if report.unchanged:
        lines.append(f"Unchanged: {len(report.unchanged)} packs")
        lines.append("")

    return "\n".join(lines).rstrip()


def report_to_json(report: SyncReport) -> dict[str, Any]:
    """Structured form of *report*, grouped by action."""
    return {
        "cache_root": report.cache_root,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "summary": {
            "total": len(report.results),
            "created": len(report.created),
            "updated": len(report.updated),
            "unchanged": len(report.unchanged),
            "pruned": len(report.pruned),
            "errors": len(report.errors),
        },
        "packs": [r.model_dump(mode="json") for r in report.results],
        "install_queued": list(report.install_queued),
    }
