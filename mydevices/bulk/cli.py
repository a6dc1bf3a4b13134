"""Bulk import and deactivation commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from mydevices.api.auth import AuthError
from mydevices.api.client import ApiClient, ApiError
from mydevices.api.resources import MyDevicesApi
from mydevices.bulk.csv_parser import CsvError, ParsedCSV, delimiter_name, parse_csv
from mydevices.bulk.devices import (
    DeviceSettingFormatError,
    DeviceTypeMismatchError,
    extract_form_settings,
    parse_device_settings,
)
from mydevices.bulk.importer import BulkImporter, ImportOptions
from mydevices.bulk.interactive import (
    default_form_settings,
    interactive_mapping,
    prompt_form_settings,
    prompt_location_defaults,
    prompt_save_mapping,
)
from mydevices.bulk.locations import LocationCycleError
from mydevices.bulk.mapping import (
    MappingFileError,
    load_mapping,
    render_mapping_summary,
    save_mapping,
    validate_mapping,
)
from mydevices.bulk.prompts import ConsolePrompter, Prompter, PromptCancelled
from mydevices.bulk.summary import render_summary, write_result_file
from mydevices.bulk.transform import apply_device_defaults, transform_rows
from mydevices.config import AppConfig, get_config

bulk_cli = typer.Typer(help="Bulk operations for importing and managing data")
err_console = Console(stderr=True)

HARDWARE_ID_COLUMNS = ("hardware_id", "eui", "deveui", "dev_eui", "device_eui", "hwid")


def build_api(config: AppConfig) -> MyDevicesApi:
    return MyDevicesApi(ApiClient(config.api), config.api.client_id)


def build_prompter(console: Console) -> Prompter:
    return ConsolePrompter(console)


def _fail(message: str) -> None:
    err_console.print(f"[red]✗ Error:[/red] {escape(message)}")
    raise typer.Exit(1)


def _load_config() -> AppConfig:
    try:
        return get_config()
    except KeyError as e:
        _fail(str(e.args[0]) if e.args else str(e))


def _normalize_delimiter(delimiter: str | None) -> str | None:
    if delimiter in ("\\t", "tab"):
        return "\t"
    return delimiter


def _parse(csv_file: Path, delimiter: str | None, console: Console) -> ParsedCSV:
    if not csv_file.exists():
        _fail(f"CSV file not found: {csv_file}")
    try:
        parsed = parse_csv(csv_file, _normalize_delimiter(delimiter))
    except CsvError as e:
        _fail(f"Failed to parse CSV: {e}")
    console.print(
        f"[green]✓[/green] Parsed {len(parsed.rows)} rows with {len(parsed.headers)} columns "
        f"(delimiter: {delimiter_name(parsed.delimiter)})"
    )
    return parsed


@bulk_cli.command("import")
def import_cmd(
    csv_file: Path = typer.Argument(..., help="Path to CSV file"),
    company: int = typer.Option(..., "--company", help="Target company ID"),
    user: str | None = typer.Option(None, "--user", help="Target user ID (admin mode)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate without making changes"),
    mapping_file: Path | None = typer.Option(None, "--mapping", help="Use saved column mapping file"),
    save_mapping_file: Path | None = typer.Option(
        None, "--save-mapping", help="Save the column mapping to this file"
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter", help="Force CSV delimiter (auto-detect by default)"
    ),
    location_address: str | None = typer.Option(None, "--location-address", help="Default address"),
    location_city: str | None = typer.Option(None, "--location-city", help="Default city"),
    location_state: str | None = typer.Option(None, "--location-state", help="Default state"),
    location_country: str | None = typer.Option(None, "--location-country", help="Default country"),
    location_zip: str | None = typer.Option(None, "--location-zip", help="Default ZIP code"),
    location_timezone: str | None = typer.Option(None, "--location-timezone", help="Default timezone"),
    location_industry: str | None = typer.Option(None, "--location-industry", help="Default industry"),
    location_prefix: bool = typer.Option(
        True,
        "--location-prefix/--no-location-prefix",
        help='Name locations "ColumnName Value" (default) or just the value',
    ),
    device_type_id: str | None = typer.Option(
        None, "--device-type-id", help="Default device type/template ID for all devices"
    ),
    sensor_use: str | None = typer.Option(None, "--sensor-use", help="Default sensor use for all devices"),
    device_setting: list[str] | None = typer.Option(
        None, "--device-setting", help="Device setting key=value (repeatable)"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    output: Path | None = typer.Option(None, "--output", help="Save detailed results to file"),
):
    """Import locations and devices from a CSV file."""
    # Human-readable progress goes to stderr when stdout carries JSON
    console = Console(stderr=json_output)
    prompter = build_prompter(console)
    config = _load_config()

    parsed = _parse(csv_file, delimiter, console)
    console.print("\n[cyan]Columns found:[/cyan]")
    for index, column in enumerate(parsed.headers, 1):
        console.print(f"[dim]  {index}. {escape(column)}[/dim]")

    try:
        if mapping_file:
            mapping, hierarchy = load_mapping(mapping_file)
            console.print(f"\n[green]✓[/green] Loaded mapping from {mapping_file}")
        else:
            mapping, hierarchy = interactive_mapping(parsed.headers, prompter, console)
        render_mapping_summary(console, mapping, hierarchy)

        errors = validate_mapping(mapping, hierarchy, default_device_type=bool(device_type_id))
        if errors:
            for message in errors:
                err_console.print(f"[red]✗ Error:[/red] {escape(message)}")
            raise typer.Exit(1)

        if save_mapping_file:
            save_mapping(save_mapping_file, mapping, hierarchy)
            console.print(f"\n[green]✓[/green] Mapping saved to {save_mapping_file}")
        elif not mapping_file:
            prompt_save_mapping(
                mapping, hierarchy, prompter, console, config.bulk.default_mapping_file
            )

        interactive = not (mapping_file and yes)
        location_defaults = {
            attr: value
            for attr, value in (
                ("address", location_address),
                ("city", location_city),
                ("state", location_state),
                ("country", location_country),
                ("zip", location_zip),
                ("timezone", location_timezone),
                ("industry", location_industry),
            )
            if value
        }
        if not location_defaults and interactive:
            location_defaults = prompt_location_defaults(mapping, prompter, console)

        rows = transform_rows(parsed.rows, mapping, hierarchy)
        rows = apply_device_defaults(rows, device_type_id=device_type_id, sensor_use=sensor_use)

        try:
            setting_overrides = parse_device_settings(device_setting or [])
        except DeviceSettingFormatError as e:
            _fail(str(e))

        device_settings = dict(setting_overrides)
        if device_type_id:
            device_settings = asyncio.run(
                _device_settings(config, device_type_id, setting_overrides, prompter, console, interactive)
            )

        if not dry_run and not yes:
            target = f" to user {user}" if user else ""
            if not prompter.confirm(f"Import {len(rows)} rows{target}?", default=True):
                console.print("[yellow]Import cancelled[/yellow]")
                raise typer.Exit(0)
    except MappingFileError as e:
        _fail(str(e))
    except PromptCancelled:
        err_console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(1)

    options = ImportOptions(
        client_id=config.api.client_id,
        company_id=company,
        user_id=user,
        dry_run=dry_run,
        location_defaults=location_defaults,
        device_type_id=device_type_id,
        device_settings=device_settings,
        prefix_location_name=location_prefix,
        page_size=config.bulk.page_size,
    )

    async def _import():
        async with build_api(config) as api:
            with console.status(
                "Running dry-run validation..." if dry_run else "Importing data..."
            ) as status:
                options.on_progress = lambda current, total, message: status.update(
                    f"{message} ({current}/{total})"
                )
                return await BulkImporter(api, options).run(rows)

    try:
        summary = asyncio.run(_import())
    except (DeviceTypeMismatchError, LocationCycleError, AuthError) as e:
        _fail(str(e))

    if json_output:
        typer.echo(json.dumps(summary.to_dict(), indent=2, default=str))
    else:
        render_summary(console, summary, dry_run)

    if output:
        write_result_file(
            output,
            summary,
            csv_file,
            dry_run,
            parameters={
                "company_id": company,
                "user_id": user,
                "delimiter": parsed.delimiter,
                "mapping_file": str(mapping_file) if mapping_file else None,
                "prefix_location_name": location_prefix,
                "location_defaults": location_defaults,
                "device_type_id": device_type_id,
                "sensor_use": sensor_use,
                "device_settings": device_settings,
            },
        )
        console.print(f"\n[green]✓[/green] Results saved to {output}")

    if summary.has_failures:
        raise typer.Exit(1)


async def _device_settings(
    config: AppConfig,
    device_type_id: str,
    overrides: dict[str, str],
    prompter: Prompter,
    console: Console,
    interactive: bool,
) -> dict[str, str]:
    """Fetch the device type and collect its form settings."""
    async with build_api(config) as api:
        try:
            template = await api.templates.get(device_type_id)
        except (ApiError, AuthError) as e:
            _fail(f"Failed to fetch device type {device_type_id}: {e}")

    console.print(f"[green]✓[/green] Device type: {escape(str(template.get('name', device_type_id)))}")
    fields = extract_form_settings(template)
    if not fields:
        return dict(overrides)

    if interactive:
        values = prompt_form_settings(fields, overrides, prompter, console)
    else:
        values = default_form_settings(fields, overrides)
    console.print(f"\n[green]✓[/green] {len(values)} device settings configured")
    return values


@bulk_cli.command("deactivate")
def deactivate_cmd(
    csv_file: Path = typer.Argument(..., help="CSV or text file of hardware IDs (EUIs)"),
    column: str | None = typer.Option(
        None, "--column", help="Column holding hardware IDs (auto-detected by default)"
    ),
    delimiter: str | None = typer.Option(None, "--delimiter", help="Force CSV delimiter"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be deactivated"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    output: Path | None = typer.Option(None, "--output", help="Save detailed results to file"),
):
    """Deactivate (unpair) devices listed in a file."""
    console = Console(stderr=json_output)
    config = _load_config()

    if not csv_file.exists():
        _fail(f"CSV file not found: {csv_file}")

    try:
        parsed = parse_csv(csv_file, _normalize_delimiter(delimiter))
    except CsvError as e:
        _fail(f"Failed to parse CSV: {e}")
    headers, rows = parsed.headers, parsed.rows

    if column:
        if column not in headers:
            _fail(f'Column "{column}" not found. Available columns: {", ".join(headers)}')
        eui_column = column
    else:
        match = next((h for h in headers if h.lower() in HARDWARE_ID_COLUMNS), None)
        if match:
            eui_column = match
        elif len(headers) == 1:
            eui_column = headers[0]
        else:
            _fail(
                f"Could not auto-detect hardware ID column. Available columns: {', '.join(headers)}. "
                "Use --column to choose one."
            )

    # A headerless single-column file has its first ID in the header slot
    euis = [row.get(eui_column, "").strip() for row in rows]
    if len(headers) == 1 and not column and eui_column.lower() not in HARDWARE_ID_COLUMNS:
        euis.insert(0, eui_column)
    euis = [eui for eui in euis if eui]

    if not euis:
        _fail(f'No hardware IDs found in column "{eui_column}"')

    console.print(f'\n[cyan]Found {len(euis)} hardware IDs in column "{escape(eui_column)}"[/cyan]')
    for eui in euis[:5]:
        console.print(f"[dim]  {escape(eui)}[/dim]")
    if len(euis) > 5:
        console.print(f"[dim]  ... and {len(euis) - 5} more[/dim]")

    if not dry_run and not yes:
        try:
            proceed = build_prompter(console).confirm(f"Deactivate {len(euis)} devices?", default=False)
        except PromptCancelled:
            proceed = False
        if not proceed:
            console.print("[yellow]Deactivation cancelled[/yellow]")
            raise typer.Exit(0)

    async def _deactivate():
        results = []
        async with build_api(config) as api:
            for eui in euis:
                if dry_run:
                    results.append({"hardware_id": eui, "success": True})
                    continue
                try:
                    await api.registry.unpair(eui)
                    results.append({"hardware_id": eui, "success": True})
                except ApiError as e:
                    results.append({"hardware_id": eui, "success": False, "error": str(e)})
        return results

    try:
        results = asyncio.run(_deactivate())
    except AuthError as e:
        _fail(str(e))

    deactivated = sum(1 for r in results if r["success"])
    failed = len(results) - deactivated

    if json_output:
        typer.echo(json.dumps({"deactivated": deactivated, "failed": failed, "results": results}, indent=2))
    else:
        console.print()
        console.print(f"[cyan]{'Dry Run Complete' if dry_run else 'Deactivation Complete'}[/cyan]")
        console.print("[dim]" + "─" * 40 + "[/dim]")
        console.print(f"Deactivated: [green]{deactivated}[/green]")
        console.print(f"Failed:      [red]{failed}[/red]")
        failures = [r for r in results if not r["success"]]
        if failures:
            console.print("\n[red]Failed devices:[/red]")
            for r in failures:
                console.print(f"  {escape(r['hardware_id'])} - {escape(r['error'])}")
        console.print("[dim]" + "─" * 40 + "[/dim]")

    if output:
        Path(output).write_text(
            json.dumps(
                {
                    "csv_file": str(csv_file),
                    "dry_run": dry_run,
                    "summary": {"deactivated": deactivated, "failed": failed},
                    "results": results,
                },
                indent=2,
            ),
            encoding="utf-8",
        )
        console.print(f"[green]✓[/green] Results saved to {output}")

    if failed:
        raise typer.Exit(1)
