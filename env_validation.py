"""Environment variable validation and management."""

import os
import logging
from dataclasses import dataclass
from typing import Dict

logger = logging.getLogger(__name__)

class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass

_DEFAULTS: Dict[str, str] = {
    "DB_PATH": "data.db",
    "STUDYSYNC_API_URL": "http://localhost:8000",
    "STUDYSYNC_LOCAL_DB": "studysync_client.db",
    "STUDYSYNC_REQUEST_TIMEOUT": "5",
    "STUDYSYNC_SYNC_INTERVAL": "30",
    "STUDYSYNC_CACHE_VERSION": "v1",
    "STUDYSYNC_RECENT_WINDOW": "100",
}

def validate_environment() -> None:
    """Validate critical environment variables.

    Raises EnvironmentError if validation fails.
    """
    for var, value in _DEFAULTS.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    url = os.environ["STUDYSYNC_API_URL"]
    if not (url.startswith("http://") or url.startswith("https://")):
        raise EnvironmentError(f"Invalid URL format for STUDYSYNC_API_URL: {url}")

    for var in ("STUDYSYNC_REQUEST_TIMEOUT", "STUDYSYNC_SYNC_INTERVAL"):
        if get_env_float(var, 0.0) <= 0:
            raise EnvironmentError(f"{var} must be a positive number")

    if get_env_int("STUDYSYNC_RECENT_WINDOW", 0) < 1:
        raise EnvironmentError("STUDYSYNC_RECENT_WINDOW must be a positive integer")

def get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise EnvironmentError(f"{name} must be a number, got '{value}'") from None

def get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise EnvironmentError(f"{name} must be an integer, got '{value}'") from None


@dataclass(frozen=True)
class ClientSettings:
    """Settings for the offline-capable study client."""

    api_url: str
    local_db_path: str
    request_timeout: float
    sync_interval: float
    cache_version: str


def load_client_settings() -> ClientSettings:
    """Build :class:`ClientSettings` from the (validated) environment."""
    validate_environment()
    return ClientSettings(
        api_url=os.environ["STUDYSYNC_API_URL"].rstrip("/"),
        local_db_path=os.environ["STUDYSYNC_LOCAL_DB"],
        request_timeout=get_env_float("STUDYSYNC_REQUEST_TIMEOUT", 5.0),
        sync_interval=get_env_float("STUDYSYNC_SYNC_INTERVAL", 30.0),
        cache_version=os.environ["STUDYSYNC_CACHE_VERSION"],
    )
