"""mydevices configuration management.

Loads configuration from environment variables with sensible defaults.
Credentials are OAuth2 client credentials issued for a platform realm.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


@dataclass
class ApiConfig:
    """Platform endpoints and client credentials."""

    realm: str
    client_id: str
    client_secret: str
    api_url: str = "https://api.mydevices.com"
    auth_url: str = "https://auth.mydevices.com"
    timeout_seconds: float = 30.0
    debug: bool = False  # request/response logging


@dataclass
class BulkConfig:
    """Bulk import tuning."""

    page_size: int = 100  # locations fetched per page
    default_mapping_file: str = "column-mapping.json"


@dataclass
class AppConfig:
    """Root application configuration.

    Loads from environment variables with fail-fast on missing credentials.
    """

    api: ApiConfig
    log_level: str = "WARNING"
    json_logs: bool = False

    bulk: BulkConfig = field(default_factory=BulkConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables.

        Required environment variables:
        - MYDEVICES_REALM: Authentication realm
        - MYDEVICES_CLIENT_ID: OAuth2 client ID (also the application ID)
        - MYDEVICES_CLIENT_SECRET: OAuth2 client secret

        Optional (with defaults):
        - MYDEVICES_API_URL, MYDEVICES_AUTH_URL: Platform endpoints
        - MYDEVICES_TIMEOUT: HTTP timeout in seconds (default: 30)
        - MYDEVICES_DEBUG: Log every request and response (default: false)
        - MYDEVICES_PAGE_SIZE: Locations per page when listing (default: 100)
        - LOG_LEVEL: Logging verbosity (default: "WARNING")
        - JSON_LOGS: Emit JSON log lines (default: false)

        Raises:
            KeyError: If required environment variables are missing
        """
        required = {}
        for name in ("MYDEVICES_REALM", "MYDEVICES_CLIENT_ID", "MYDEVICES_CLIENT_SECRET"):
            value = os.environ.get(name)
            if not value:
                raise KeyError(
                    f"{name} environment variable is required. "
                    "Set it in the environment or in a .env file."
                )
            required[name] = value

        return cls(
            log_level=os.getenv("LOG_LEVEL", "WARNING"),
            json_logs=os.getenv("JSON_LOGS", "false").lower() == "true",
            api=ApiConfig(
                realm=required["MYDEVICES_REALM"],
                client_id=required["MYDEVICES_CLIENT_ID"],
                client_secret=required["MYDEVICES_CLIENT_SECRET"],
                api_url=os.getenv("MYDEVICES_API_URL", "https://api.mydevices.com"),
                auth_url=os.getenv("MYDEVICES_AUTH_URL", "https://auth.mydevices.com"),
                timeout_seconds=float(os.getenv("MYDEVICES_TIMEOUT", "30")),
                debug=os.getenv("MYDEVICES_DEBUG", "false").lower() in ("1", "true"),
            ),
            bulk=BulkConfig(
                page_size=int(os.getenv("MYDEVICES_PAGE_SIZE", "100")),
                default_mapping_file=os.getenv(
                    "MYDEVICES_MAPPING_FILE", "column-mapping.json"
                ),
            ),
        )


# Singleton instance (lazy-loaded)
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create singleton AppConfig instance from environment.

    Raises:
        KeyError: If required environment variables are missing
    """
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next call re-reads the environment."""
    global _config
    _config = None
