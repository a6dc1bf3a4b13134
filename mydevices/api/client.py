"""Async HTTP client for the myDevices REST API."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from mydevices.api.auth import TokenProvider
from mydevices.config import ApiConfig

logger = structlog.get_logger(__name__)


class ApiError(Exception):
    """Non-success response (or transport failure) from the platform API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class AuthenticationError(ApiError):
    pass


class PermissionDeniedError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


def error_from_response(response: httpx.Response) -> ApiError:
    """Translate an error response into the matching ApiError subclass."""
    status = response.status_code
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if status == 401:
        return AuthenticationError(
            "Authentication failed. Check your client credentials.", status, payload
        )
    if status == 403:
        return PermissionDeniedError(
            "Permission denied. You do not have access to this resource.", status, payload
        )
    if status == 404:
        return NotFoundError("Resource not found.", status, payload)

    message = None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
    return ApiError(message or f"API error: {status}", status, payload)


class ApiClient:
    """Authenticated JSON client.

    Every request carries a bearer token from the TokenProvider. Responses
    are decoded to Python objects; error statuses raise ApiError.
    """

    def __init__(
        self,
        config: ApiConfig,
        tokens: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.client = httpx.AsyncClient(
            base_url=config.api_url,
            timeout=config.timeout_seconds,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self.tokens = tokens or TokenProvider(config)

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        token = await self.tokens.get_token()

        if self.config.debug:
            logger.debug("api.request", method=method, path=path, params=params, body=json)

        try:
            response = await self.client.request(
                method,
                path,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.RequestError as exc:
            raise ApiError(f"Request failed: {exc}") from exc

        if self.config.debug:
            logger.debug("api.response", status=response.status_code, body=response.text)

        if response.is_error:
            raise error_from_response(response)

        if not response.content:
            return None
        return response.json()

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, data: dict[str, Any] | None = None) -> Any:
        return await self.request("POST", path, json=data)

    async def put(self, path: str, data: dict[str, Any] | None = None) -> Any:
        return await self.request("PUT", path, json=data)

    async def delete(self, path: str, data: dict[str, Any] | None = None) -> Any:
        return await self.request("DELETE", path, json=data)

    async def close(self) -> None:
        """Close the HTTP clients."""
        await self.client.aclose()
        await self.tokens.close()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
