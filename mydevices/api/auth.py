"""OAuth2 token handling for the platform API."""

from __future__ import annotations

import time
from dataclasses import dataclass

import httpx

from mydevices.config import ApiConfig

# Refresh tokens this many seconds before they expire
EXPIRY_BUFFER_SECONDS = 60


class AuthError(Exception):
    """Raised when an access token cannot be obtained."""


@dataclass
class TokenState:
    access_token: str
    refresh_token: str | None
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return self.expires_at > now + EXPIRY_BUFFER_SECONDS


class TokenProvider:
    """Fetches and caches bearer tokens using the client-credentials grant."""

    def __init__(self, config: ApiConfig, http: httpx.AsyncClient | None = None):
        self.config = config
        self._http = http or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_http = http is None
        self._state: TokenState | None = None

    @property
    def token_url(self) -> str:
        base = self.config.auth_url.rstrip("/")
        return f"{base}/auth/realms/{self.config.realm}/protocol/openid-connect/token"

    async def get_token(self) -> str:
        """Return a valid access token, refreshing or re-authenticating if needed."""
        now = time.time()
        if self._state and self._state.is_fresh(now):
            return self._state.access_token

        if self._state and self._state.refresh_token:
            try:
                return await self._request_token(
                    {
                        "grant_type": "refresh_token",
                        "client_id": self.config.client_id,
                        "client_secret": self.config.client_secret,
                        "refresh_token": self._state.refresh_token,
                    }
                )
            except AuthError:
                # Refresh failed, fall through to re-authenticate
                self._state = None

        return await self._request_token(
            {
                "grant_type": "client_credentials",
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            }
        )

    async def _request_token(self, form: dict[str, str]) -> str:
        try:
            response = await self._http.post(
                self.token_url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise AuthError(
                f"Authentication failed ({exc.response.status_code}). "
                "Check MYDEVICES_REALM, MYDEVICES_CLIENT_ID and MYDEVICES_CLIENT_SECRET."
            ) from exc
        except httpx.RequestError as exc:
            raise AuthError(f"Authentication request failed: {exc}") from exc

        if "access_token" not in data:
            raise AuthError("Authentication response did not include an access token")

        self._state = TokenState(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=time.time() + float(data.get("expires_in", 300)),
        )
        return self._state.access_token

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()
