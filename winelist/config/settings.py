"""
Application settings and configuration management.

This module handles all environment variables, Airtable identifiers and
application configuration using Pydantic settings management for type safety
and validation.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from winelist.utils.errors import ConfigurationError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The Airtable token is stored as SecretStr to prevent accidental logging.
    Identifiers are optional at load time; use ``require()`` right before the
    network call that needs them so the error names the missing variable.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Credentials
    airtable_auth_token: Optional[SecretStr] = Field(default=None, alias="AIRTABLE_AUTH_TOKEN")

    # Airtable identifiers
    airtable_base_id: Optional[str] = Field(default=None, alias="AIRTABLE_BASE_ID")
    airtable_inventory_table: Optional[str] = Field(default=None, alias="AIRTABLE_INV_TAB_ID")
    airtable_zone_table: Optional[str] = Field(default=None, alias="AIRTABLE_ZONE_TAB_ID")
    airtable_venue_table: Optional[str] = Field(default=None, alias="AIRTABLE_ENO_TAB_ID")
    airtable_producer_table: Optional[str] = Field(default=None, alias="AIRTABLE_PRODUCER_TAB_ID")
    airtable_wine_list_table: Optional[str] = Field(default=None, alias="AIRTABLE_WINE_LIST_TAB_ID")
    airtable_wine_list_field: Optional[str] = Field(default=None, alias="AIRTABLE_WINE_LIST_FIELD_ID")
    airtable_view: Optional[str] = Field(default=None, alias="AIRTABLE_VIEW")

    # Endpoints
    airtable_api_base: str = Field(default="https://api.airtable.com/v0", alias="AIRTABLE_API_BASE")
    airtable_content_base: str = Field(
        default="https://content.airtable.com/v0",
        alias="AIRTABLE_CONTENT_BASE",
    )

    # Application Configuration
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        alias="APP_ENV",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
    )
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Requests
    page_size: int = Field(default=100, ge=1, le=100, alias="AIRTABLE_PAGE_SIZE")
    request_timeout_seconds: float = Field(default=30.0, alias="REQUEST_TIMEOUT_SECONDS")

    # Eventual consistency handling
    propagation_strategy: Literal["fixed", "poll"] = Field(default="fixed", alias="PROPAGATION_STRATEGY")
    propagation_delay_seconds: float = Field(default=2.0, ge=0, alias="PROPAGATION_DELAY_SECONDS")
    propagation_timeout_seconds: float = Field(default=15.0, gt=0, alias="PROPAGATION_TIMEOUT_SECONDS")

    # Document policies
    zone_priority_policy: Literal["priority_then_name", "name_only"] = Field(
        default="priority_then_name",
        alias="ZONE_PRIORITY_POLICY",
    )
    include_warning_records: bool = Field(default=False, alias="INCLUDE_WARNING_RECORDS")
    producer_name_field: str = Field(default="Nome", alias="PRODUCER_NAME_FIELD")

    # Output Settings
    artifact_prefix: str = Field(default="Carta-dei-Vini", alias="ARTIFACT_PREFIX")
    output_dir: Path = Field(default=Path("out"), alias="OUTPUT_DIR")
    categories_file: Optional[Path] = Field(default=None, alias="CATEGORIES_FILE")

    @field_validator("output_dir", mode="before")
    @classmethod
    def validate_directories(cls, v: str | Path) -> Path:
        """Ensure directories exist."""
        path = Path(v)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("airtable_api_base", "airtable_content_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def require(self, name: str) -> str:
        """
        Return a configured value or raise ConfigurationError naming its env var.

        Args:
            name: Attribute name on this settings object.
        """
        value = getattr(self, name)
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        if value is None or value == "":
            field = type(self).model_fields[name]
            env_name = field.alias or name.upper()
            raise ConfigurationError(
                f"{env_name} is required but not configured",
                parameter=env_name,
            )
        return str(value)

    def missing_identifiers(self) -> list[str]:
        """List the env vars needed for a full generate-and-publish run that are unset."""
        required = [
            "airtable_auth_token",
            "airtable_base_id",
            "airtable_inventory_table",
            "airtable_zone_table",
            "airtable_venue_table",
            "airtable_wine_list_table",
            "airtable_wine_list_field",
        ]
        missing = []
        for name in required:
            try:
                self.require(name)
            except ConfigurationError as e:
                missing.append(e.parameter)
        return missing


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
