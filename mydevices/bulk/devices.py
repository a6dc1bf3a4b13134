"""Device template lookups and device creation for bulk imports."""

from __future__ import annotations

import json
import logging
from typing import Any

from mydevices.bulk.locations import MISSING_ID_ERROR, deepest_location_path, response_id
from mydevices.bulk.types import (
    FormSettingsField,
    ImportAction,
    ImportResult,
    ImportSummary,
    ParsedRow,
    RecordType,
    TemplateInfo,
)

logger = logging.getLogger(__name__)

# Registry status of hardware that already belongs to a device
PAIRED_STATUS = "PAIRED"


class DeviceTypeMismatchError(ValueError):
    """Rows reference a device type other than the one given for the run."""

    def __init__(self, expected: str, mismatches: list[tuple[int, str]]):
        details = "\n".join(f'  Row {row}: found "{found}"' for row, found in mismatches)
        super().__init__(
            f'Device type ID mismatch. All rows must use device type "{expected}":\n{details}'
        )
        self.expected = expected
        self.mismatches = mismatches


class DeviceSettingFormatError(ValueError):
    pass


def extract_template_info(template: dict[str, Any]) -> TemplateInfo:
    """Derive fallback device fields from a device template.

    - device_category: the template category
    - sensor_use: the device use flagged as default
    - sensor_type: the ``device_type`` meta entry
    """
    info = TemplateInfo()

    if template.get("category"):
        info.device_category = template["category"]

    for use in template.get("device_use") or []:
        if use.get("default"):
            info.sensor_use = use.get("name")
            break

    for meta in template.get("meta") or []:
        if meta.get("key") == "device_type":
            info.sensor_type = meta.get("value")
            break

    return info


def extract_form_settings(template: dict[str, Any]) -> list[FormSettingsField]:
    """Configurable device settings declared in the template's ``form_settings``.

    Groups are ordered by their ``order`` and fields within each group
    likewise. A missing or unreadable entry yields no fields.
    """
    raw = next(
        (m.get("value") for m in template.get("meta") or [] if m.get("key") == "form_settings"),
        None,
    )
    if not raw:
        return []

    try:
        groups = json.loads(raw) if isinstance(raw, str) else raw
        fields: list[FormSettingsField] = []
        for group in sorted(groups, key=lambda g: g.get("order", 0)):
            variables = sorted(group.get("variables") or [], key=lambda v: v.get("order", 0))
            for var in variables:
                help_texts = sorted(var.get("help_texts") or [], key=lambda h: h.get("order", 0))
                fields.append(
                    FormSettingsField(
                        key=var["key"],
                        label=var.get("label") or var["key"],
                        form=var.get("form", "input"),
                        type=var.get("type", "string"),
                        order=var.get("order", 0),
                        default_value=var.get("default_value"),
                        required=bool(var.get("required", False)),
                        values=list(var.get("values") or []),
                        help_texts=[h["value"] for h in help_texts if h.get("value")],
                    )
                )
        return fields
    except (TypeError, ValueError, KeyError, AttributeError) as e:
        logger.warning("Ignoring unreadable form_settings: %s", e)
        return []


def check_device_type_consistency(rows: list[ParsedRow], expected: str) -> list[tuple[int, str]]:
    """Rows whose own device type differs from ``expected``."""
    return [
        (row.row_number, row.device.device_type_id)
        for row in rows
        if row.device.device_type_id and row.device.device_type_id != expected
    ]


def parse_device_settings(settings: list[str]) -> dict[str, str]:
    """Parse repeated ``key=value`` options.

    Raises:
        DeviceSettingFormatError: If an entry has no key or no ``=``
    """
    parsed: dict[str, str] = {}
    for setting in settings:
        key, sep, value = setting.partition("=")
        if not sep or not key:
            raise DeviceSettingFormatError(
                f'Invalid --device-setting format: "{setting}". Expected key=value'
            )
        parsed[key] = value
    return parsed


def merge_properties(existing: Any, overrides: dict[str, str]) -> dict[str, Any]:
    """Overlay settings on a device's properties.

    The platform stores properties as a JSON string or an object; keys not
    in ``overrides`` are preserved.
    """
    properties: dict[str, Any] = {}
    if isinstance(existing, dict):
        properties = dict(existing)
    elif isinstance(existing, str) and existing:
        try:
            loaded = json.loads(existing)
            if isinstance(loaded, dict):
                properties = loaded
        except ValueError:
            logger.debug("Device properties are not JSON, replacing them")
    properties.update(overrides)
    return properties


async def fetch_template_infos(api, template_ids: list[str]) -> dict[str, TemplateInfo]:
    """Fetch each template once. Missing templates just mean no fallbacks."""
    infos: dict[str, TemplateInfo] = {}
    for template_id in dict.fromkeys(template_ids):
        try:
            template = await api.templates.get(template_id)
        except Exception as e:
            logger.info("Template %s unavailable, no fallbacks: %s", template_id, e)
            continue
        infos[template_id] = extract_template_info(template)
    return infos


async def lookup_registry(api, hardware_ids: list[str]) -> dict[str, dict[str, Any]]:
    """Registry entries for the given hardware ids (best effort)."""
    hardware_ids = list(dict.fromkeys(hardware_ids))
    if not hardware_ids:
        return {}
    try:
        response = await api.registry.list(
            filter=f"hardware_id in {' '.join(hardware_ids)}",
            limit=len(hardware_ids),
        )
    except Exception as e:
        logger.info("Registry lookup failed, continuing without it: %s", e)
        return {}
    return {entry["hardware_id"]: entry for entry in response.get("rows") or [] if "hardware_id" in entry}


def build_device_payload(
    row: ParsedRow,
    location_id: int,
    client_id: str,
    template: TemplateInfo | None = None,
    user_id: str | None = None,
    company_id: int | None = None,
) -> dict[str, Any]:
    """Create body: the row's own values win over template fallbacks."""
    device = row.device
    template = template or TemplateInfo()

    payload: dict[str, Any] = {
        "user_id": user_id or client_id,
        "application_id": client_id,
        "company_id": company_id,
        "location_id": location_id,
        "device": {
            "hardware_id": device.hardware_id,
            "name": device.name or device.hardware_id,
            "sensor_use": device.sensor_use or template.sensor_use,
            "sensor_type": device.sensor_type or template.sensor_type,
            "device_category": device.device_category or template.device_category,
            "external_id": device.external_id,
        },
    }
    if device.metadata:
        payload["metadata"] = dict(device.metadata)
    return payload


async def create_devices(
    api,
    rows: list[ParsedRow],
    location_ids: dict[str, int],
    summary: ImportSummary,
    client_id: str,
    templates: dict[str, TemplateInfo] | None = None,
    registry: dict[str, dict[str, Any]] | None = None,
    device_settings: dict[str, str] | None = None,
    user_id: str | None = None,
    company_id: int | None = None,
    prefix_location_name: bool = True,
    dry_run: bool = False,
    on_progress=None,
) -> None:
    """One pass over the rows, creating a device for each hardware id.

    A failing row is recorded and the pass moves on to the next one.
    """
    templates = templates or {}
    registry = registry or {}

    for position, row in enumerate(rows, 1):
        if on_progress:
            on_progress(position, len(rows), f"Processing row {row.row_number}")

        device = row.device
        if not device.hardware_id:
            continue  # location-only row

        def record(action: ImportAction, **kwargs) -> None:
            summary.record(
                ImportResult(
                    record_type=RecordType.DEVICE,
                    action=action,
                    name=device.display_name,
                    row=row.row_number,
                    **kwargs,
                )
            )

        path = deepest_location_path(row, prefix_location_name)
        if path is None:
            record(ImportAction.FAILED, error="Row has no location hierarchy")
            continue
        location_id = location_ids.get(path)
        if location_id is None:
            record(ImportAction.FAILED, path=path, error=f"Location not found for path: {path}")
            continue

        entry = registry.get(device.hardware_id)
        if entry and str(entry.get("status", "")).upper() == PAIRED_STATUS:
            record(ImportAction.MATCHED, path=path, id=entry.get("id"))
            continue

        if dry_run:
            record(ImportAction.CREATED, path=path)
            continue

        template = templates.get(device.device_type_id) if device.device_type_id else None
        payload = build_device_payload(row, location_id, client_id, template, user_id, company_id)
        try:
            created = await api.devices.create(payload)
        except Exception as e:
            logger.warning("Failed to create device %s (row %d): %s", device.hardware_id, row.row_number, e)
            record(ImportAction.FAILED, path=path, error=str(e) or type(e).__name__)
            continue

        device_id = response_id(created)
        if device_id is None:
            record(ImportAction.FAILED, path=path, error=MISSING_ID_ERROR)
            continue

        warning = None
        if device_settings:
            try:
                await api.devices.update(
                    device_id,
                    {
                        "user_id": user_id or client_id,
                        "application_id": client_id,
                        "properties": merge_properties(created.get("properties"), device_settings),
                    },
                )
            except Exception as e:
                warning = f"Device created but settings failed: {e}"

        record(ImportAction.CREATED, path=path, id=device_id, warning=warning)
