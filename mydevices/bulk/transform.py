"""Turn raw CSV rows into structured ParsedRow records."""

from __future__ import annotations

from dataclasses import replace

from mydevices.bulk.mapping import (
    ColumnMapping,
    DeviceField,
    DeviceMetadata,
    HierarchyMapping,
    LocationField,
)
from mydevices.bulk.types import DeviceData, HierarchyLevel, ParsedRow


def transform_rows(
    rows: list[dict[str, str]],
    mapping: ColumnMapping,
    hierarchy: HierarchyMapping,
) -> list[ParsedRow]:
    """Apply the column mapping to every row.

    The hierarchy stops at the first blank level; deeper columns are
    ignored for that row. Pure function: dry runs and real runs see the
    same records.
    """
    parsed: list[ParsedRow] = []

    for index, row in enumerate(rows):
        levels: list[HierarchyLevel] = []
        for column in hierarchy.columns:
            value = (row.get(column) or "").strip()
            if not value:
                break
            levels.append(HierarchyLevel(column_name=column, value=value))

        location_meta: dict[str, str] = {}
        device_fields: dict[str, str] = {}
        metadata: dict[str, str] = {}

        for column, targets in mapping.items():
            value = (row.get(column) or "").strip()
            if not value:
                continue
            for target in targets:
                if isinstance(target, LocationField):
                    location_meta[target.attr] = value
                elif isinstance(target, DeviceMetadata):
                    metadata[target.name] = value
                elif isinstance(target, DeviceField):
                    device_fields[target.attr] = value

        parsed.append(
            ParsedRow(
                row_number=index + 2,  # 1-indexed, after the header line
                location_hierarchy=tuple(levels),
                location_meta=location_meta,
                device=DeviceData(**device_fields, metadata=metadata),
            )
        )

    return parsed


def apply_device_defaults(
    rows: list[ParsedRow],
    device_type_id: str | None = None,
    sensor_use: str | None = None,
) -> list[ParsedRow]:
    """Fill device type and sensor use from command-line defaults.

    Only rows carrying a device get defaults, and a value from the CSV
    always wins.
    """
    if not device_type_id and not sensor_use:
        return rows

    result: list[ParsedRow] = []
    for row in rows:
        device = row.device
        if device.hardware_id:
            device = replace(
                device,
                device_type_id=device.device_type_id or device_type_id,
                sensor_use=device.sensor_use or sensor_use,
            )
        result.append(replace(row, device=device))
    return result
