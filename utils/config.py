"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from .env files using pydantic-settings.
Type-safe access to all environment variables with validation.

The settings object is built once by the entry point and handed to every
component that needs it; nothing reads configuration from module globals.

Usage:
    from utils.config import get_settings

    settings = get_settings()
    scheduler = CollectorScheduler(settings)
"""

from datetime import datetime
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

SUPPORTED_OUTPUTS = ("file", "sftp")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Audit Log API Configuration
    API_DOMAIN: str = Field(default="")
    API_TOKEN: str = Field(default="")
    API_AUTH_SCHEME: str = Field(default="SSWS")
    API_SCHEME: str = Field(default="https")
    API_LOGS_PATH: str = Field(default="/api/v1/logs")
    API_TIMEOUT: float = Field(default=10, gt=0)
    API_PAGE_LIMIT: int = Field(default=1000, gt=0)

    # Rate Limit Backoff
    RATE_LIMIT_STATUS: int = Field(default=429)
    BACKOFF_INITIAL_MS: int = Field(default=1000, gt=0)
    BACKOFF_MAX_MS: int = Field(default=32000, gt=0)
    BACKOFF_FACTOR: float = Field(default=2, gt=1)

    # Scheduler Configuration
    SCHEDULE_SECONDS: int = Field(default=30, ge=0)
    RUN_ONCE: bool = Field(default=False)
    QUEUE_CAPACITY: int = Field(default=5000, gt=0)

    # Checkpoint
    STATE_PATH: str = Field(default="./data/state/checkpoint.json")
    INITIAL_SINCE: Optional[datetime] = Field(default=None)

    # File System Paths
    TMP_DIR: Optional[str] = Field(default=None)
    OUTPUT_DIR: str = Field(default="./data/audit_logs")

    # Outputs
    OUTPUTS: list[str] = Field(default_factory=lambda: ["file"])

    # SFTP Configuration
    SFTP_HOST: str = Field(default="")
    SFTP_PORT: int = Field(default=22)
    SFTP_USERNAME: str = Field(default="")
    SFTP_KEY_PATH: str = Field(default="/run/secrets/id_rsa")
    SFTP_KEY_PASSPHRASE: str | None = Field(default=None)
    SFTP_REMOTE_DIR: str = Field(default="/upload/audit_logs")
    SFTP_TIMEOUT: int = Field(default=15)
    SFTP_RETRIES: int = Field(default=3, ge=0)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @field_validator("OUTPUTS")
    @classmethod
    def validate_outputs(cls, v: list[str]) -> list[str]:
        """Normalize output names and reject unknown ones."""
        outputs = [name.strip().lower() for name in v if name and name.strip()]
        unknown = [name for name in outputs if name not in SUPPORTED_OUTPUTS]
        if unknown:
            raise ValueError(
                f"unsupported output(s) {unknown} (supported: {', '.join(SUPPORTED_OUTPUTS)})"
            )
        if not outputs:
            raise ValueError("at least one output is required")
        return outputs

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v.lower()

    @model_validator(mode="after")
    def check_required_params(self) -> "Settings":
        """Fail fast on missing parameters, before any network or disk work."""
        if not self.API_DOMAIN:
            raise ValueError("missing audit log API domain (API_DOMAIN)")
        if not self.API_TOKEN:
            raise ValueError("missing audit log API token (API_TOKEN)")
        if "sftp" in self.OUTPUTS and not (self.SFTP_HOST and self.SFTP_USERNAME):
            raise ValueError("sftp output requires SFTP_HOST and SFTP_USERNAME")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance

    Raises:
        pydantic.ValidationError: If required settings are missing or invalid
    """
    return Settings()
