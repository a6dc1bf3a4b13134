"""Endpoint wrappers used by the bulk commands."""

from __future__ import annotations

from typing import Any

from mydevices.api.client import ApiClient

LOCATIONS_PATH = "/v1.0/admin/locations"
DEVICES_PATH = "/v1.0/admin/things"


def _application_path(client_id: str) -> str:
    return f"/v1.1/organizations/{client_id}/applications/{client_id}/things"


class LocationsResource:
    def __init__(self, client: ApiClient):
        self.client = client

    async def list(
        self, page: int = 0, limit: int = 100, user_id: str | None = None
    ) -> dict[str, Any]:
        """One page of locations: ``{"count": int, "rows": [...]}``."""
        params: dict[str, Any] = {"limit": limit, "page": page}
        if user_id:
            params["user_id"] = user_id
        return await self.client.get(LOCATIONS_PATH, params)

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.client.post(LOCATIONS_PATH, payload)


class DevicesResource:
    def __init__(self, client: ApiClient):
        self.client = client

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.client.post(DEVICES_PATH, payload)

    async def update(self, device_id: int | str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.client.put(f"{DEVICES_PATH}/{device_id}", payload)


class TemplatesResource:
    def __init__(self, client: ApiClient, client_id: str):
        self.client = client
        self.base_path = f"{_application_path(client_id)}/types"

    async def get(self, template_id: str) -> dict[str, Any]:
        return await self.client.get(f"{self.base_path}/{template_id}")


class RegistryResource:
    def __init__(self, client: ApiClient, client_id: str):
        self.client = client
        self.things_path = _application_path(client_id)
        self.base_path = f"{self.things_path}/registry"

    async def list(self, filter: str | None = None, limit: int = 100) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit}
        if filter:
            params["filter"] = filter
        return await self.client.get(self.base_path, params)

    async def unpair(self, hardware_id: str) -> Any:
        """Unpair a device (registry status PAIRED -> PENDING)."""
        return await self.client.delete(f"{self.things_path}/{hardware_id}/unpair")


class MyDevicesApi:
    """The remote services the bulk pipeline talks to, behind one object."""

    def __init__(self, client: ApiClient, client_id: str):
        self.client = client
        self.client_id = client_id
        self.locations = LocationsResource(client)
        self.devices = DevicesResource(client)
        self.templates = TemplatesResource(client, client_id)
        self.registry = RegistryResource(client, client_id)

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> MyDevicesApi:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
