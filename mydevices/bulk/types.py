"""Type definitions for bulk import operations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

LOCATION_ATTRIBUTES = (
    "external_id",
    "address",
    "city",
    "state",
    "country",
    "zip",
    "timezone",
    "industry",
)

DEVICE_ATTRIBUTES = (
    "hardware_id",
    "name",
    "external_id",
    "device_type_id",
    "sensor_use",
    "sensor_type",
    "device_category",
)

PATH_SEPARATOR = "/"


class RecordType(str, Enum):
    LOCATION = "location"
    DEVICE = "device"


class ImportAction(str, Enum):
    """Outcome of reconciling one location or device."""

    CREATED = "created"
    MATCHED = "matched"
    FAILED = "failed"


@dataclass(frozen=True)
class HierarchyLevel:
    column_name: str  # CSV column, e.g. "Building"
    value: str  # cell value, e.g. "7"


@dataclass(frozen=True)
class DeviceData:
    """Device attributes collected from one CSV row."""

    hardware_id: Optional[str] = None
    name: Optional[str] = None
    external_id: Optional[str] = None
    device_type_id: Optional[str] = None
    sensor_use: Optional[str] = None
    sensor_type: Optional[str] = None
    device_category: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.hardware_id or ""


@dataclass(frozen=True)
class ParsedRow:
    """One CSV data row after column mapping has been applied.

    ``row_number`` matches the line in the source file (header is line 1)
    and is only used in diagnostics.
    """

    row_number: int
    location_hierarchy: tuple[HierarchyLevel, ...] = ()
    location_meta: dict[str, str] = field(default_factory=dict)
    device: DeviceData = field(default_factory=DeviceData)


@dataclass
class LocationNode:
    """A distinct path in the aggregate location tree."""

    path: str  # e.g. "Site RX/Building 7/Floor 0"
    name: str  # last segment, e.g. "Floor 0"
    parent_path: Optional[str] = None
    meta: Optional[dict[str, str]] = None  # set when first reached as a row's deepest level
    first_row: int = 0

    @property
    def depth(self) -> int:
        return self.path.count(PATH_SEPARATOR) + 1


@dataclass
class RemoteLocation:
    """A location as the platform returns it."""

    id: int
    name: str
    parent_id: Optional[int] = None
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteLocation:
        attributes = {
            k: v for k, v in data.items() if k not in ("id", "name", "parent_id")
        }
        return cls(
            id=data["id"],
            name=data["name"],
            parent_id=data.get("parent_id"),
            attributes=attributes,
        )


@dataclass
class TemplateInfo:
    """Fallback device fields derived from a device template."""

    device_category: Optional[str] = None
    sensor_use: Optional[str] = None
    sensor_type: Optional[str] = None


@dataclass
class FormSettingsField:
    """One configurable device setting from a template's form_settings."""

    key: str
    label: str
    form: str = "input"  # "input" or "select"
    type: str = "string"
    order: int = 0
    default_value: Any = None
    required: bool = False
    values: list[dict[str, str]] = field(default_factory=list)
    help_texts: list[str] = field(default_factory=list)


@dataclass
class ImportResult:
    """Result of reconciling one location or device."""

    record_type: RecordType
    action: ImportAction
    name: str
    row: Optional[int] = None
    id: Optional[int | str] = None
    path: Optional[str] = None
    error: Optional[str] = None
    warning: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.action != ImportAction.FAILED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = data.pop("record_type").value
        data["action"] = self.action.value
        data["success"] = self.success
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class ImportSummary:
    """Counts per record type and action, plus every result in order."""

    locations_created: int = 0
    locations_matched: int = 0
    locations_failed: int = 0
    devices_created: int = 0
    devices_matched: int = 0
    devices_failed: int = 0
    results: list[ImportResult] = field(default_factory=list)

    def record(self, result: ImportResult) -> ImportResult:
        counter = f"{result.record_type.value}s_{result.action.value}"
        setattr(self, counter, getattr(self, counter) + 1)
        self.results.append(result)
        return result

    @property
    def failures(self) -> list[ImportResult]:
        return [r for r in self.results if not r.success]

    @property
    def warnings(self) -> list[ImportResult]:
        return [r for r in self.results if r.warning]

    @property
    def has_failures(self) -> bool:
        return self.locations_failed > 0 or self.devices_failed > 0

    def counts(self) -> dict[str, int]:
        return {
            "locations_created": self.locations_created,
            "locations_matched": self.locations_matched,
            "locations_failed": self.locations_failed,
            "devices_created": self.devices_created,
            "devices_matched": self.devices_matched,
            "devices_failed": self.devices_failed,
        }

    def to_dict(self) -> dict[str, Any]:
        return {**self.counts(), "results": [r.to_dict() for r in self.results]}
