from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env at import so env vars are available early
load_dotenv()

DEFAULT_BASE_URL = "https://app.fracttal.com/api"
DEFAULT_OAUTH_URL = "https://one.fracttal.com/oauth/token"


class RawSettings(BaseModel):
    # Fracttal endpoints
    FRACTTAL_BASE_URL: str = DEFAULT_BASE_URL
    FRACTTAL_OAUTH_URL: str = DEFAULT_OAUTH_URL

    # OAuth client
    FRACTTAL_CLIENT_ID: str | None = None
    FRACTTAL_CLIENT_SECRET: str | None = None

    # Sage300 source
    SAGE_DB_URL: str | None = None
    SAGE_INVENTORY_QUERY: str | None = None

    # Optional / tuning
    CONFIG_PATH: str = "sagesync.config.json"
    DB_PATH: str = "sagesync.sqlite3"
    HTTP_TIMEOUT: int = 30
    TOKEN_MARGIN: int = 300
    TOKEN_TTL: int = 7200


class SettingsStrict(BaseModel):
    FRACTTAL_BASE_URL: str
    FRACTTAL_OAUTH_URL: str
    FRACTTAL_CLIENT_ID: str
    FRACTTAL_CLIENT_SECRET: str
    SAGE_DB_URL: str

    SAGE_INVENTORY_QUERY: str | None = None
    CONFIG_PATH: str = "sagesync.config.json"
    DB_PATH: str = "sagesync.sqlite3"
    HTTP_TIMEOUT: int = 30
    TOKEN_MARGIN: int = 300
    TOKEN_TTL: int = 7200


_cache: RawSettings | None = None


def _read_env_dict() -> dict:
    return {
        # Fracttal
        "FRACTTAL_BASE_URL": os.getenv("FRACTTAL_BASE_URL") or DEFAULT_BASE_URL,
        "FRACTTAL_OAUTH_URL": os.getenv("FRACTTAL_OAUTH_URL") or DEFAULT_OAUTH_URL,
        "FRACTTAL_CLIENT_ID": os.getenv("FRACTTAL_CLIENT_ID"),
        "FRACTTAL_CLIENT_SECRET": os.getenv("FRACTTAL_CLIENT_SECRET"),
        # Sage300
        "SAGE_DB_URL": os.getenv("SAGE_DB_URL"),
        "SAGE_INVENTORY_QUERY": os.getenv("SAGE_INVENTORY_QUERY") or None,
        # Files + tuning
        "CONFIG_PATH": os.getenv("SAGESYNC_CONFIG", "sagesync.config.json"),
        "DB_PATH": os.getenv("SAGESYNC_DB", "sagesync.sqlite3"),
        "HTTP_TIMEOUT": int(os.getenv("HTTP_TIMEOUT", "30")),
        "TOKEN_MARGIN": int(os.getenv("FRACTTAL_TOKEN_MARGIN", "300")),
        "TOKEN_TTL": int(os.getenv("FRACTTAL_TOKEN_TTL", "7200")),
    }


def get_settings() -> RawSettings:
    global _cache
    if _cache is None:
        _cache = RawSettings(**_read_env_dict())
    return _cache


def require_settings() -> SettingsStrict:
    """Return validated settings; raises ValidationError if any required are missing."""
    data = _read_env_dict()
    return SettingsStrict(**data)


def missing_required_keys() -> list[str]:
    """Return list of missing required env keys for user-friendly errors."""
    required = [
        "FRACTTAL_CLIENT_ID",
        "FRACTTAL_CLIENT_SECRET",
        "SAGE_DB_URL",
    ]
    return [k for k in required if os.getenv(k) in (None, "")]
