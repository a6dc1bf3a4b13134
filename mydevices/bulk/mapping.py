"""Column mapping: which CSV column feeds which location/device field.

A column maps to zero or more targets. Targets are a small tagged variant
(``Hierarchy``, ``LocationField``, ``DeviceField``, ``DeviceMetadata``)
whose ``key`` is the string form persisted in mapping files, e.g.
``location.city`` or ``device.metadata.floor_plan``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

from rich.console import Console
from rich.markup import escape

from mydevices.bulk.types import DEVICE_ATTRIBUTES, LOCATION_ATTRIBUTES

MAPPING_FILE_VERSION = "1.0"

HIERARCHY_KEY = "location.hierarchy"
METADATA_PREFIX = "device.metadata."


class MappingFileError(ValueError):
    """Mapping file is missing or cannot be understood."""


@dataclass(frozen=True)
class Hierarchy:
    """One level of the location hierarchy (may be chosen for many columns)."""

    @property
    def key(self) -> str:
        return HIERARCHY_KEY


@dataclass(frozen=True)
class LocationField:
    attr: str

    def __post_init__(self):
        if self.attr not in LOCATION_ATTRIBUTES:
            raise ValueError(f"Unknown location field: {self.attr}")

    @property
    def key(self) -> str:
        return f"location.{self.attr}"


@dataclass(frozen=True)
class DeviceField:
    attr: str

    def __post_init__(self):
        if self.attr not in DEVICE_ATTRIBUTES:
            raise ValueError(f"Unknown device field: {self.attr}")

    @property
    def key(self) -> str:
        return f"device.{self.attr}"


@dataclass(frozen=True)
class DeviceMetadata:
    name: str

    def __post_init__(self):
        if not self.name.strip():
            raise ValueError("Device metadata key cannot be empty")

    @property
    def key(self) -> str:
        return f"{METADATA_PREFIX}{self.name}"


Target = Union[Hierarchy, LocationField, DeviceField, DeviceMetadata]

# CSV column -> targets; an empty tuple means the column is skipped
ColumnMapping = dict[str, tuple[Target, ...]]


@dataclass
class HierarchyMapping:
    """CSV columns in hierarchy order (level 1 first)."""

    columns: list[str] = field(default_factory=list)


def parse_target(key: str) -> Target:
    """Parse the persisted string form of a target.

    Raises:
        ValueError: If the key does not name a known target
    """
    if key == HIERARCHY_KEY:
        return Hierarchy()
    if key.startswith(METADATA_PREFIX):
        return DeviceMetadata(key[len(METADATA_PREFIX):])
    prefix, _, attr = key.partition(".")
    if prefix == "location":
        return LocationField(attr)
    if prefix == "device":
        return DeviceField(attr)
    raise ValueError(f"Unknown mapping target: {key}")


@dataclass(frozen=True)
class TargetChoice:
    target: Target
    label: str
    description: str


TARGET_CHOICES: tuple[TargetChoice, ...] = (
    TargetChoice(
        Hierarchy(),
        "Location Hierarchy",
        "Hierarchy level (map several columns in order: Site, Building, Floor, Room)",
    ),
    TargetChoice(LocationField("external_id"), "Location External ID", "Applied to the deepest location"),
    TargetChoice(LocationField("address"), "Location Address", "Applied to the deepest location"),
    TargetChoice(LocationField("city"), "Location City", "Applied to the deepest location"),
    TargetChoice(LocationField("state"), "Location State", "Applied to the deepest location"),
    TargetChoice(LocationField("country"), "Location Country", "Applied to the deepest location"),
    TargetChoice(LocationField("zip"), "Location ZIP", "Applied to the deepest location"),
    TargetChoice(LocationField("timezone"), "Location Timezone", "Applied to the deepest location"),
    TargetChoice(LocationField("industry"), "Location Industry", "Applied to the deepest location"),
    TargetChoice(DeviceField("hardware_id"), "Device Hardware ID", "Hardware ID / DevEUI (required for devices)"),
    TargetChoice(DeviceField("name"), "Device Name", "Display name"),
    TargetChoice(DeviceField("external_id"), "Device External ID", "External reference ID"),
    TargetChoice(DeviceField("device_type_id"), "Device Type ID", "Device template ID"),
    TargetChoice(DeviceField("sensor_use"), "Device Sensor Use", "Sensor use type"),
    TargetChoice(DeviceField("sensor_type"), "Device Sensor Type", "Sensor type"),
    TargetChoice(DeviceField("device_category"), "Device Category", "Device category"),
)

# Lexicon for default suggestions. Checked in this order; location
# attributes come before the hierarchy so "Location City" is not a level.
COLUMN_PATTERNS: dict[str, tuple[str, ...]] = {
    "location.external_id": ("location external id", "location ext id", "site id", "site external id"),
    "location.address": ("address", "street", "street address"),
    "location.city": ("city", "town"),
    "location.state": ("state", "province", "region"),
    "location.country": ("country", "country code"),
    "location.zip": ("zip", "zip code", "postal code", "postcode"),
    "location.timezone": ("timezone", "time zone", "tz"),
    "location.industry": ("industry", "sector", "vertical", "business type"),
    "location.hierarchy": (
        "location", "site", "building", "floor", "room", "area",
        "zone", "facility", "campus", "wing",
    ),
    "device.hardware_id": (
        "hardware id", "hardware_id", "device id", "device_id", "deveui",
        "dev eui", "eui", "serial number", "serial",
    ),
    "device.device_type_id": ("device type id", "device_type_id", "template id", "template", "device type"),
    "device.sensor_type": ("sensor type", "sensor_type"),
    "device.sensor_use": ("sensor use", "sensor_use", "device use", "use"),
    "device.device_category": ("device category", "category"),
    "device.name": ("device name", "name", "sensor name", "thing name", "equipment description"),
    "device.external_id": ("external id", "external_id", "ext id", "reference", "ref", "id equipment"),
}


def suggest_target(column_name: str) -> Target | None:
    """Guess a target from a column name.

    Exact matches against the lexicon win over substring matches.
    """
    normalized = column_name.lower().strip()
    if not normalized:
        return None

    for key, patterns in COLUMN_PATTERNS.items():
        if normalized in patterns:
            return parse_target(key)
    for key, patterns in COLUMN_PATTERNS.items():
        if any(p in normalized for p in patterns):
            return parse_target(key)
    return None


def mapped_targets(mapping: ColumnMapping) -> set[Target]:
    return {target for targets in mapping.values() for target in targets}


def load_mapping(file_path: Path) -> tuple[ColumnMapping, HierarchyMapping]:
    """Load a saved mapping from a JSON file.

    Raises:
        MappingFileError: If the file is missing or malformed
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise MappingFileError(f"Mapping file not found: {file_path}")

    try:
        config = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise MappingFileError(f"Mapping file is not valid JSON: {e}") from e

    raw_mappings = config.get("mappings") if isinstance(config, dict) else None
    if not isinstance(raw_mappings, dict):
        raise MappingFileError("Mapping file has no 'mappings' object")

    mapping: ColumnMapping = {}
    try:
        for column, raw in raw_mappings.items():
            if raw is None:
                keys: list[str] = []
            elif isinstance(raw, str):
                keys = [raw]
            else:
                keys = list(raw)
            mapping[column] = tuple(parse_target(k) for k in keys)
    except (TypeError, ValueError) as e:
        raise MappingFileError(f"Invalid mapping for column '{column}': {e}") from e

    raw_hierarchy = config.get("hierarchy") or {}
    columns = raw_hierarchy.get("columns") if isinstance(raw_hierarchy, dict) else None
    if columns is None:
        # Older files: hierarchy order is the mapping order
        columns = [c for c, targets in mapping.items() if Hierarchy() in targets]

    return mapping, HierarchyMapping(columns=list(columns))


def save_mapping(file_path: Path, mapping: ColumnMapping, hierarchy: HierarchyMapping) -> None:
    """Save a mapping as ``{version, mappings, hierarchy, createdAt}`` JSON."""
    serialized: dict[str, str | list[str] | None] = {}
    for column, targets in mapping.items():
        if not targets:
            serialized[column] = None
        elif len(targets) == 1:
            serialized[column] = targets[0].key
        else:
            serialized[column] = [t.key for t in targets]

    config = {
        "version": MAPPING_FILE_VERSION,
        "mappings": serialized,
        "hierarchy": {"columns": list(hierarchy.columns)},
        "createdAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
    Path(file_path).write_text(json.dumps(config, indent=2), encoding="utf-8")


def validate_mapping(
    mapping: ColumnMapping,
    hierarchy: HierarchyMapping,
    default_device_type: bool = False,
) -> list[str]:
    """Check that the mapping can drive an import.

    Returns human-readable problems; an empty list means the mapping is
    usable. The caller decides whether to abort.

    Args:
        mapping: Column mapping
        hierarchy: Hierarchy column order
        default_device_type: A device type is supplied outside the CSV
            (``--device-type-id``), so it need not be mapped
    """
    errors: list[str] = []
    targets = mapped_targets(mapping)

    if not hierarchy.columns:
        errors.append("At least one location hierarchy level is required")

    has_device_fields = any(isinstance(t, (DeviceField, DeviceMetadata)) for t in targets)
    if has_device_fields:
        if DeviceField("hardware_id") not in targets:
            errors.append("device.hardware_id is required when mapping device fields")
        if (
            not default_device_type
            and DeviceField("sensor_type") not in targets
            and DeviceField("device_type_id") not in targets
        ):
            errors.append(
                "Device type cannot be inferred: map device.sensor_type or "
                "device.device_type_id, or pass --device-type-id"
            )

    return errors


def render_mapping_summary(
    console: Console, mapping: ColumnMapping, hierarchy: HierarchyMapping
) -> None:
    """Print the mapping, hierarchy levels first."""
    console.print("\n[cyan]Mapping Summary:[/cyan]")
    console.print("[dim]" + "─" * 50 + "[/dim]")

    width = max((len(c) for c in mapping), default=0)

    if hierarchy.columns:
        console.print("[cyan]  Location Hierarchy:[/cyan]")
        for index, column in enumerate(hierarchy.columns, 1):
            console.print(f"    {escape(column.ljust(width))} → [green]Level {index}[/green]")
        console.print()

    for column, targets in mapping.items():
        others = [t.key for t in targets if not isinstance(t, Hierarchy)]
        if not others:
            if Hierarchy() in targets:
                continue
            console.print(f"  {escape(column.ljust(width))} → [yellow](skipped)[/yellow]")
        else:
            console.print(f"  {escape(column.ljust(width))} → [green]{', '.join(others)}[/green]")

    console.print("[dim]" + "─" * 50 + "[/dim]")
