"""Rendering and persistence of import results."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape

from mydevices.bulk.types import ImportSummary


def render_summary(console: Console, summary: ImportSummary, dry_run: bool) -> None:
    """Counts per record type, then every failure and warning."""
    console.print()
    console.print(f"[cyan]{'Dry Run Complete' if dry_run else 'Import Complete'}[/cyan]")
    console.print("[dim]" + "─" * 40 + "[/dim]")

    console.print(
        f"Locations:  [green]{summary.locations_created} created[/green], "
        f"[blue]{summary.locations_matched} matched[/blue], "
        f"[red]{summary.locations_failed} failed[/red]"
    )
    console.print(
        f"Devices:    [green]{summary.devices_created} created[/green], "
        f"[blue]{summary.devices_matched} matched[/blue], "
        f"[red]{summary.devices_failed} failed[/red]"
    )

    failures = summary.failures
    if failures:
        console.print()
        console.print("[red]Failed rows:[/red]")
        for failure in failures:
            row_info = f"Row {failure.row}: " if failure.row else ""
            console.print(
                f'  {row_info}{failure.record_type.value} "{escape(failure.name)}" - '
                f"{escape(failure.error or '')}"
            )

    warnings = summary.warnings
    if warnings:
        console.print()
        console.print("[yellow]Warnings:[/yellow]")
        for result in warnings:
            row_info = f"Row {result.row}: " if result.row else ""
            console.print(
                f'  {row_info}{result.record_type.value} "{escape(result.name)}" - '
                f"{escape(result.warning)}"
            )

    console.print("[dim]" + "─" * 40 + "[/dim]")


def write_result_file(
    file_path: Path,
    summary: ImportSummary,
    csv_file: Path,
    dry_run: bool,
    parameters: dict[str, Any],
) -> None:
    """Save the run's inputs and every result for later inspection."""
    data = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "csv_file": str(csv_file),
        "dry_run": dry_run,
        "parameters": parameters,
        "summary": summary.counts(),
        "results": [r.to_dict() for r in summary.results],
    }
    Path(file_path).write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
