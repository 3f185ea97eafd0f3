"""Application configuration helpers for environment-driven settings."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

_DEFAULT_API_BASE_URL = "http://localhost:8080/function"


class ApiSettings(BaseModel):
    """Endpoint and transport settings for the credential backend."""

    base_url: str = _DEFAULT_API_BASE_URL
    timeout_seconds: float = Field(default=30.0, gt=0)


class UiSettings(BaseModel):
    """Timings used by the presentation layer."""

    notification_ttl_seconds: float = Field(default=5.0, gt=0)
    expired_redirect_delay_seconds: float = Field(default=2.0, ge=0)


class PortalSettings(BaseModel):
    """Aggregated application settings."""

    api: ApiSettings = Field(default_factory=ApiSettings)
    ui: UiSettings = Field(default_factory=UiSettings)
    log_level: str = "INFO"


def _load_from_environment() -> PortalSettings:
    """Load settings using environment variables and .env file."""

    module_path = Path(__file__).resolve()
    project_root = module_path.parents[2]
    dotenv_path = project_root / ".env"
    load_dotenv(dotenv_path=dotenv_path, override=True, encoding="utf-8-sig")
    load_dotenv(override=False)  # Secondary search path (current working dir)
    try:
        api = ApiSettings(
            base_url=os.getenv("PORTAL_API_BASE_URL", _DEFAULT_API_BASE_URL),
            timeout_seconds=float(os.getenv("PORTAL_API_TIMEOUT_SECONDS", "30")),
        )
        ui = UiSettings(
            notification_ttl_seconds=float(os.getenv("PORTAL_NOTIFICATION_TTL_SECONDS", "5")),
            expired_redirect_delay_seconds=float(os.getenv("PORTAL_EXPIRED_REDIRECT_DELAY_SECONDS", "2")),
        )
        log_level = os.getenv("PORTAL_LOG_LEVEL", "INFO").upper()
    except ValidationError as exc:
        raise RuntimeError(f"Environment configuration is invalid: {exc}") from exc
    except ValueError as exc:
        raise RuntimeError(f"Environment configuration has invalid numeric value: {exc}") from exc
    return PortalSettings(api=api, ui=ui, log_level=log_level)


@lru_cache(maxsize=1)
def get_settings() -> PortalSettings:
    """Return cached application settings."""

    return _load_from_environment()
