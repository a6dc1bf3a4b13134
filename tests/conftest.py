"""Pytest configuration and fixtures for mydevices tests.

Provides an in-memory stand-in for the platform API and common inputs.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from mydevices.api.client import ApiError
from mydevices.config import reset_config


class _Locations:
    def __init__(self, platform: FakePlatform):
        self.platform = platform

    async def list(self, page: int = 0, limit: int = 100, user_id: str | None = None):
        self.platform.calls.append(("locations.list", page, user_id))
        if self.platform.fail_location_list:
            raise ApiError("API error: 500", status_code=500)
        start = page * limit
        stored = self.platform.stored_locations
        return {"count": len(stored), "rows": stored[start:start + limit]}

    async def create(self, payload: dict):
        self.platform.calls.append(("locations.create", payload))
        if payload["name"] in self.platform.fail_location_names:
            raise ApiError(f"Cannot create {payload['name']}", status_code=400)
        if payload["name"] in self.platform.bodyless_location_names:
            return None
        location = {"id": self.platform.next_id(), "parent_id": None, **payload}
        self.platform.stored_locations.append(location)
        return location


class _Devices:
    def __init__(self, platform: FakePlatform):
        self.platform = platform

    async def create(self, payload: dict):
        self.platform.calls.append(("devices.create", payload))
        hardware_id = payload["device"]["hardware_id"]
        if hardware_id in self.platform.fail_hardware_ids:
            raise ApiError(f"Device {hardware_id} rejected", status_code=400)
        if hardware_id in self.platform.bodyless_hardware_ids:
            return {}
        device = {
            "id": self.platform.next_id(),
            "hardware_id": hardware_id,
            "location_id": payload["location_id"],
            "properties": self.platform.initial_properties,
        }
        self.platform.stored_devices.append(device)
        # Creating a device pairs its hardware in the registry
        self.platform.registry_entries[hardware_id] = {
            "id": f"reg-{hardware_id}",
            "hardware_id": hardware_id,
            "status": "PAIRED",
        }
        return device

    async def update(self, device_id, payload: dict):
        self.platform.calls.append(("devices.update", device_id, payload))
        if self.platform.fail_device_update:
            raise ApiError("Settings rejected", status_code=422)
        return {"id": device_id, **payload}


class _Templates:
    def __init__(self, platform: FakePlatform):
        self.platform = platform

    async def get(self, template_id: str):
        self.platform.calls.append(("templates.get", template_id))
        if template_id not in self.platform.stored_templates:
            raise ApiError("Resource not found.", status_code=404)
        return self.platform.stored_templates[template_id]


class _Registry:
    def __init__(self, platform: FakePlatform):
        self.platform = platform

    async def list(self, filter: str | None = None, limit: int = 100):
        self.platform.calls.append(("registry.list", filter))
        if self.platform.fail_registry:
            raise ApiError("API error: 503", status_code=503)
        wanted = set(filter.split(" in ", 1)[1].split()) if filter else set()
        rows = [e for hw, e in self.platform.registry_entries.items() if hw in wanted]
        return {"count": len(rows), "rows": rows}

    async def unpair(self, hardware_id: str):
        self.platform.calls.append(("registry.unpair", hardware_id))
        if hardware_id not in self.platform.registry_entries:
            raise ApiError("Resource not found.", status_code=404)
        self.platform.registry_entries[hardware_id]["status"] = "PENDING"


class FakePlatform:
    """In-memory platform with the same resources as MyDevicesApi."""

    def __init__(self):
        self.stored_locations: list[dict] = []
        self.stored_devices: list[dict] = []
        self.stored_templates: dict[str, dict] = {}
        self.registry_entries: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.initial_properties = None

        # Failure injection
        self.fail_location_list = False
        self.fail_location_names: set[str] = set()
        self.fail_hardware_ids: set[str] = set()
        self.fail_device_update = False
        self.fail_registry = False
        # Create calls that succeed without returning the new record
        self.bodyless_location_names: set[str] = set()
        self.bodyless_hardware_ids: set[str] = set()

        self._last_id = 100
        self.locations = _Locations(self)
        self.devices = _Devices(self)
        self.templates = _Templates(self)
        self.registry = _Registry(self)

    def next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    def calls_to(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def add_location(self, name: str, parent_id: int | None = None) -> int:
        location_id = self.next_id()
        self.stored_locations.append({"id": location_id, "name": name, "parent_id": parent_id})
        return location_id

    async def __aenter__(self) -> FakePlatform:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None


@pytest.fixture
def platform() -> FakePlatform:
    """Empty in-memory platform."""
    return FakePlatform()


@pytest.fixture
def scenario_csv(tmp_path: Path) -> Path:
    """Two buildings on one site, one device each."""
    path = tmp_path / "devices.csv"
    path.write_text("Site,Building,HardwareID\nRX,7,AA11\nRX,8,BB22\n", encoding="utf-8")
    return path


@pytest.fixture
def scenario_mapping_file(tmp_path: Path) -> Path:
    """Saved mapping for scenario_csv: Site > Building hierarchy, HardwareID."""
    path = tmp_path / "mapping.json"
    path.write_text(
        """{
  "version": "1.0",
  "mappings": {
    "Site": "location.hierarchy",
    "Building": "location.hierarchy",
    "HardwareID": "device.hardware_id"
  },
  "hierarchy": {"columns": ["Site", "Building"]},
  "createdAt": "2026-01-01T00:00:00Z"
}
""",
        encoding="utf-8",
    )
    return path


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("MYDEVICES_REALM", "test-realm")
    monkeypatch.setenv("MYDEVICES_CLIENT_ID", "test-client")
    monkeypatch.setenv("MYDEVICES_CLIENT_SECRET", "test-secret")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    reset_config()
    yield
    reset_config()


@pytest.fixture
def platform_factory():
    """Build further independent platforms within one test."""
    return FakePlatform
