"""Application configuration settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = ".env"
ENV_FILE_ENCODING = "utf-8"


class Settings(BaseSettings):
    """Application configuration values loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE, env_file_encoding=ENV_FILE_ENCODING, extra="ignore"
    )

    database_url: str = Field(
        default="sqlite:///./docledger.db",
        description="Database connection URL used by SQLAlchemy to connect to the DB",
        min_length=1,
    )
    app_timezone: str = Field(
        default="UTC",
        description="Timezone used to stamp audit entries and document timestamps",
    )
    log_level: str = Field(default="INFO", description="Root logging level")
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:4200"],
        description="Origins allowed to call the API from a browser",
    )

    audit_history_default_limit: int = Field(default=20, ge=1)
    schema_history_default_limit: int = Field(default=50, ge=1)
    audit_max_page_limit: int = Field(
        default=100,
        ge=1,
        description="Largest page size accepted by the audit history queries",
    )

    version_assignment_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts made when two writers race for the same version number",
    )
    store_write_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts made for a conditional document write before giving up",
    )

    change_feed_enabled: bool = Field(
        default=True,
        description="Start the change-feed listener together with the application",
    )
    change_feed_retry_delay_seconds: float = Field(default=5.0, ge=0)
    change_feed_handler_timeout_seconds: float = Field(default=5.0, gt=0)
    change_feed_skip_audited_origins: bool = Field(
        default=True,
        description=(
            "Skip change events produced by writers that already record their own "
            "ledger entry (API and revert paths)"
        ),
    )

    operation_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for externally triggered record creation",
    )
    bulk_max_workers: int = Field(default=8, ge=1)
    default_cleanup_days: int = Field(default=365, ge=0)

    @model_validator(mode="after")
    def _validate_page_limits(self) -> "Settings":
        if self.audit_history_default_limit > self.audit_max_page_limit:
            raise ValueError(
                "AUDIT_HISTORY_DEFAULT_LIMIT cannot exceed AUDIT_MAX_PAGE_LIMIT"
            )
        if self.schema_history_default_limit > self.audit_max_page_limit:
            raise ValueError(
                "SCHEMA_HISTORY_DEFAULT_LIMIT cannot exceed AUDIT_MAX_PAGE_LIMIT"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the settings cache to force reloading from the environment."""

    get_settings.cache_clear()


__all__ = ["Settings", "get_settings", "reset_settings_cache"]
