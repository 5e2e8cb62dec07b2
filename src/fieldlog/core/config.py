"""Logger and application settings loaded from environment variables."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _parse_level(v: Any) -> int:
    """Accept either a level name (``"info"``) or a numeric level."""
    if isinstance(v, int):
        return v
    name = str(v).strip().upper()
    if name not in _LEVEL_NAMES:
        raise ValueError(f"Unknown log level: {v!r}")
    return logging.getLevelName(name)


class LoggerConfig(BaseSettings):
    """Configuration resolved once per service logger.

    Explicit constructor arguments win over the process environment, which
    wins over the defaults below.  The environment variable names are kept
    compatible with existing deployments (``NODE_ENV``, ``LOGS_FOLDER``,
    ``DD_API_KEY``).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        case_sensitive=True,
    )

    service: str = Field(validation_alias=AliasChoices("service", "SERVICE_NAME"))
    env: str = Field(default="dev", validation_alias=AliasChoices("env", "NODE_ENV"))
    logs_folder: str = Field(
        default="logs",
        validation_alias=AliasChoices("logs_folder", "LOGS_FOLDER"),
    )
    # A non-empty key enables the remote sink
    remote_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("remote_api_key", "DD_API_KEY"),
    )

    # Per-sink severity thresholds; remote starts at info, not debug
    console_level: int = Field(
        default=logging.DEBUG,
        validation_alias=AliasChoices("console_level", "LOG_CONSOLE_LEVEL"),
    )
    file_level: int = Field(
        default=logging.DEBUG,
        validation_alias=AliasChoices("file_level", "LOG_FILE_LEVEL"),
    )
    remote_level: int = Field(
        default=logging.INFO,
        validation_alias=AliasChoices("remote_level", "LOG_REMOTE_LEVEL"),
    )

    # File sink rotation
    file_max_bytes: int = 100 * 1024 * 1024
    file_retention_days: int = 15

    # Remote log-intake endpoint
    remote_host: str = "http-intake.logs.datadoghq.com"
    remote_source: str = "python"
    remote_timeout: float = 5.0

    @field_validator("service")
    @classmethod
    def reject_empty_service(cls, v: str) -> str:
        """Refuse to build a logger without a service name."""
        if not v:
            raise ValueError("service must be a non-empty string")
        return v

    @field_validator("console_level", "file_level", "remote_level", mode="before")
    @classmethod
    def parse_level(cls, v: Any) -> int:
        return _parse_level(v)

    @property
    def remote_enabled(self) -> bool:
        return bool(self.remote_api_key)


class AppSettings(BaseSettings):
    """Host application configuration via environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    service_name: str = "fieldlog"
    version: str = "0.1.0"

    # Docs viewer: None means "mounted everywhere except production"
    docs_enabled: bool | None = None
    docs_title: str = "fieldlog API reference"

    def docs_mounted(self, env: str) -> bool:
        """Return whether the docs viewer should be served in *env*."""
        if self.docs_enabled is not None:
            return self.docs_enabled
        return env.lower() not in ("production", "prod")
