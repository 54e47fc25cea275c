"""Configuration schema for prsync.

Defines all configuration options with types, defaults, and validation.
Uses Pydantic for schema enforcement and clear error messages.
"""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class GitConfig(BaseModel):
    """Repository and remote naming."""

    origin_remote: str = Field(
        default="origin",
        description="Remote whose URL identifies the local repository",
    )
    http_remote_suffix: str = Field(
        default="-http",
        description="Suffix for the https companion remote added when origin is ssh",
    )

    @field_validator("origin_remote")
    @classmethod
    def validate_origin_remote(cls, v: str) -> str:
        if not v or v.startswith("-") or any(ch.isspace() for ch in v):
            raise ValueError(f"Invalid remote name: {v!r}")
        return v


class SyncConfig(BaseModel):
    """Network and locking behavior."""

    fetch_timeout: float = Field(
        default=120.0,
        ge=0,
        description="Seconds before a fetch is killed (0 = no limit)",
    )
    push_timeout: float = Field(
        default=120.0,
        ge=0,
        description="Seconds before a push or pull is killed (0 = no limit)",
    )
    lock_timeout: float = Field(
        default=30.0,
        ge=0,
        description="Seconds to wait for the repository lock",
    )
    lock_ttl: int = Field(
        default=600,
        ge=0,
        description="Seconds before a lock file left by a crashed process is considered stale",
    )


class CreateConfig(BaseModel):
    """Push-and-create behavior."""

    confirm_visibility: bool = Field(
        default=True,
        description="Poll the remote until it reports the pushed commit",
    )
    visibility_timeout: float = Field(
        default=15.0,
        ge=0,
        description="Maximum seconds to poll for the pushed commit",
    )
    poll_interval: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between remote visibility polls",
    )
    settle_delay: float = Field(
        default=5.0,
        ge=0,
        description="Fixed delay before calling the creation API (0 disables)",
    )


class ExtractConfig(BaseModel):
    """File extraction settings."""

    cache_dir: str = Field(
        default="",
        description="Directory for extracted file contents (empty = system temp dir)",
    )

    @field_validator("cache_dir")
    @classmethod
    def validate_cache_dir(cls, v: str) -> str:
        """Warn if the path exists but is not a directory."""
        if v:
            path = Path(v).expanduser()
            if path.exists() and not path.is_dir():
                warnings.warn(
                    f"Extract cache path is not a directory: {v}",
                    UserWarning,
                )
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    dir: str = Field(
        default="",
        description="Log directory (empty = ~/.prsync/logs)",
    )
    max_bytes: int = Field(
        default=10485760,  # 10MB
        ge=0,
        description="Maximum log file size in bytes",
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        description="Number of backup log files to keep",
    )
    disable_file: bool = Field(
        default=False,
        description="Disable file logging (stderr only)",
    )


class PrSyncConfig(BaseModel):
    """Root configuration model."""

    version: int = Field(
        default=1,
        ge=1,
        description="Config schema version",
    )

    git: GitConfig = Field(default_factory=GitConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    create: CreateConfig = Field(default_factory=CreateConfig)
    extract: ExtractConfig = Field(default_factory=ExtractConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "PrSyncConfig":
        """Create config with all defaults."""
        return cls()
