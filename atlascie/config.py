"""
Portal configuration.

Settings are read once at startup from environment variables prefixed
with ``ATLAS_`` (or a local ``.env`` file).  Missing optional values
degrade individual features rather than failing the portal:

* no ``ATLAS_MAPS_API_KEY``       -> the journey map view is hidden;
* assessment integration disabled or missing credentials
                                  -> assessment timelines fall back to
                                     placeholder data built from the
                                     stored risk profile.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from atlascie.models import Role

settings_logger = logging.getLogger(__name__)


class PortalSettings(BaseSettings):
    """Named configuration values for one portal deployment."""

    model_config = SettingsConfigDict(
        env_prefix="ATLAS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_id: str = Field(
        default="demo-app",
        min_length=1,
        description="Tenant identifier; scopes every document path.",
    )

    # Document store connection
    store_project_id: Optional[str] = Field(default=None)
    store_api_key: Optional[str] = Field(default=None)
    store_auth_domain: Optional[str] = Field(default=None)

    # Identity
    default_role: Role = Field(
        default=Role.ENROLLMENT_MANAGER,
        description="Role assigned to lazily created profiles.",
    )

    # Maps
    maps_api_key: Optional[str] = Field(default=None)

    # Clinical-assessment integration
    assessment_enabled: bool = Field(default=False)
    assessment_client_id: Optional[str] = Field(default=None)
    assessment_client_secret: Optional[str] = Field(default=None)
    assessment_api_base: str = Field(default="https://api.alayacare.com/v1")
    assessment_tenant_id: Optional[str] = Field(default=None)
    assessment_timeout_seconds: float = Field(default=30.0, gt=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    @field_validator("assessment_api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def maps_enabled(self) -> bool:
        return bool(self.maps_api_key)

    @property
    def assessment_sync_enabled(self) -> bool:
        return bool(
            self.assessment_enabled
            and self.assessment_client_id
            and self.assessment_client_secret
        )


@lru_cache(maxsize=1)
def get_settings() -> PortalSettings:
    """Return the process-wide settings, read on first use."""
    settings = PortalSettings()
    if not settings.maps_enabled:
        settings_logger.info("Maps API key not configured; journey map disabled.")
    if settings.assessment_enabled and not settings.assessment_sync_enabled:
        settings_logger.warning(
            "Assessment integration enabled but client credentials are missing; "
            "assessment sync disabled."
        )
    return settings


def configure_logging(settings: PortalSettings | None = None) -> None:
    """Apply the configured log level and format to the root logger."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format=settings.log_format,
        datefmt=settings.log_date_format,
    )
