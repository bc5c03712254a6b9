# === NAVMAP v1 ===
# {
#   "module": "PkgTools.TransferIO.settings",
#   "purpose": "Typed, environment-aware settings for fetching, archive transfer, and logging",
#   "sections": [
#     {"id": "http", "name": "HttpSettings", "anchor": "class-httpsettings", "kind": "class"},
#     {"id": "retry", "name": "RetrySettings", "anchor": "class-retrysettings", "kind": "class"},
#     {"id": "archive", "name": "ArchiveSettings", "anchor": "class-archivesettings", "kind": "class"},
#     {"id": "logging", "name": "LoggingSettings", "anchor": "class-loggingsettings", "kind": "class"},
#     {"id": "root", "name": "TransferSettings", "anchor": "class-transfersettings", "kind": "class"},
#     {"id": "cache", "name": "get_settings", "anchor": "function-get-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Settings for the transfer layer.

Values are grouped into frozen Pydantic models and assembled by
:class:`TransferSettings`, a ``pydantic-settings`` model that honours
``PKGTOOLS_`` prefixed environment variables.  Nested fields use ``__`` as the
delimiter, e.g. ``PKGTOOLS_ARCHIVE__TOP_LEVEL_PREFIX=types-main/``.

All durations are expressed in seconds.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import UserConfigError

__all__ = [
    "HttpSettings",
    "RetrySettings",
    "ArchiveSettings",
    "LoggingSettings",
    "TransferSettings",
    "get_settings",
    "reset_settings",
]


class HttpSettings(BaseModel):
    """HTTP client settings for the keep-alive fetcher."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    timeout: float = Field(
        default=1_000.0,
        gt=0.0,
        description="Default per-request timeout in seconds",
    )
    keepalive_expiry: float = Field(
        default=30.0,
        ge=0.0,
        le=600.0,
        description="Idle keep-alive connection expiry in seconds",
    )
    max_keepalive_connections: int = Field(
        default=20,
        ge=0,
        le=1024,
        description="Keep-alive pool size",
    )
    max_connections: int = Field(
        default=64,
        ge=1,
        le=1024,
        description="Max concurrent connections",
    )
    user_agent: str = Field(
        default="PkgTools-TransferIO/0.1.0",
        description="User-Agent header value",
    )


class RetrySettings(BaseModel):
    """Retry budget used when a request asks for the default policy."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    default_attempts: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Total attempts when retries=True",
    )
    delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=60.0,
        description="Fixed delay between attempts",
    )


class ArchiveSettings(BaseModel):
    """Streaming archive download settings."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    top_level_prefix: str = Field(
        default="DefinitelyTyped-master/",
        min_length=1,
        description="Directory prefix every archive entry must carry",
    )
    snapshot_root: str = Field(
        default="/",
        description="Logical root path of the returned snapshot",
    )
    connection_timeout: float = Field(
        default=800.0,
        gt=0.0,
        description="Guard around connecting and receiving response headers",
    )
    download_timeout: float = Field(
        default=1_000.0,
        gt=0.0,
        description="Guard around the whole download-and-extract operation",
    )

    @field_validator("top_level_prefix")
    @classmethod
    def require_trailing_slash(cls, v: str) -> str:
        """Prefixes name a directory, so they must end in '/'."""
        if not v.endswith("/"):
            raise ValueError(f"top_level_prefix must end with '/', got '{v}'")
        return v


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True, validate_assignment=False)

    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    emit_json_logs: bool = Field(
        default=True,
        description="Write JSON lines to the log directory",
        validation_alias=AliasChoices("emit_json_logs", "json"),
    )
    log_dir: Optional[Path] = Field(
        default=None,
        description="Directory for rotating JSON log files",
    )
    max_log_size_mb: float = Field(default=5.0, gt=0.0)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Normalize and validate logging level."""
        upper = v.upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}, got '{v}'")
        return upper

    def level_int(self) -> int:
        """Convert level string to logging module integer."""
        level_map = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
        }
        return level_map[self.level]


class TransferSettings(BaseSettings):
    """Root settings object assembled from defaults and the environment."""

    model_config = SettingsConfigDict(
        env_prefix="PKGTOOLS_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    http: HttpSettings = Field(default_factory=HttpSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


_SETTINGS_LOCK = threading.Lock()
_SETTINGS_CACHE: Optional[TransferSettings] = None


def get_settings() -> TransferSettings:
    """Return the memoised process-wide :class:`TransferSettings`."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        if _SETTINGS_CACHE is None:
            try:
                _SETTINGS_CACHE = TransferSettings()
            except PydanticValidationError as exc:
                raise UserConfigError(f"Invalid PKGTOOLS_ settings: {exc}") from exc
        return _SETTINGS_CACHE


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None
