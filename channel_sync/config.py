"""
Configuration module for channel sync
Environment-driven settings with validation
"""

import base64
import hashlib
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Configuration-related errors"""
    pass


class EnvironmentType(str, Enum):
    """Supported environment types"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class ChannelSyncSettings(BaseSettings):
    """Settings loaded from CHANNEL_SYNC_* environment variables or a .env file"""

    model_config = SettingsConfigDict(
        env_prefix="CHANNEL_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: EnvironmentType = Field(
        default=EnvironmentType.DEVELOPMENT, description="Deployment environment"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./channel_sync.db",
        description="SQLAlchemy async database URL",
    )
    credentials_key: Optional[str] = Field(
        default=None,
        description="Fernet key used to encrypt channel credentials - REQUIRED outside development",
    )
    request_timeout: float = Field(
        default=30.0, ge=1.0, le=120.0, description="Channel HTTP timeout in seconds"
    )
    sync_window_days: int = Field(
        default=365, ge=1, le=730, description="Default push window length in days"
    )
    default_currency: str = Field(
        default="USD", description="Currency code for pushed rates"
    )
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Emit JSON logs")
    sync_log_retention_days: int = Field(
        default=90, ge=1, description="Sync log entries older than this are purged"
    )

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v):
        v = (v or "").strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be a 3-letter ISO 4217 code")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v

    @model_validator(mode="after")
    def require_key_outside_development(self):
        if self.environment != EnvironmentType.DEVELOPMENT and not self.credentials_key:
            raise ValueError(
                "CHANNEL_SYNC_CREDENTIALS_KEY must be set in staging and production"
            )
        return self

    def resolved_credentials_key(self) -> bytes:
        """Fernet key for credential encryption; derived locally in development only"""
        if self.credentials_key:
            return self.credentials_key.encode()
        if self.environment != EnvironmentType.DEVELOPMENT:
            raise ConfigurationError("No credentials key configured")
        digest = hashlib.sha256(b"channel-sync-development-key").digest()
        return base64.urlsafe_b64encode(digest)


@lru_cache(maxsize=1)
def get_settings() -> ChannelSyncSettings:
    """Cached settings accessor"""
    return ChannelSyncSettings()
