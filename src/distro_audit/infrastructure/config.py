"""Centralized configuration for distro-audit."""
from __future__ import annotations

import os
import socket
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from distro_audit.shared.exceptions import ConfigurationError


def _default_workers() -> int:
    return min(4, (os.cpu_count() or 1) * 2)


class Settings(BaseSettings):
    """distro-audit configuration loaded from environment variables."""

    # Filesystems
    staging_root: Path = Path("/distro")
    live_root: Path = Path("/")

    # Snapshot store
    database_url: str = "sqlite:///distro-audit.db"
    database_echo: bool = False

    # Generation
    worker_count: int = Field(default_factory=_default_workers, gt=0)
    batch_size: int = Field(default=1000, gt=0)
    rules_dir: Path | None = None

    # Verification
    big_directory_threshold: int = Field(default=100_000, gt=0)
    throttle_cap_seconds: float = Field(default=300.0, ge=0)
    include_user_trees: bool = True
    uid_min: int = Field(default=1000, ge=0)
    gid_min: int = Field(default=1000, ge=0)
    hostname: str = Field(default_factory=socket.gethostname)
    os_name: str | None = None
    os_version: str | None = None
    architecture: str | None = None
    ownership_exempt_path: str = "/etc/opt/distro-audit/distro-audit.env"

    # Helpers
    prelink_path: str = "/usr/sbin/prelink"
    chroot_path: str = "/usr/sbin/chroot"

    # Logging
    log_level: str = "info"
    log_json: bool = False
    log_file: str | None = None

    model_config = {"env_prefix": "DISTRO_AUDIT_", "env_file": ".env", "extra": "ignore"}

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.lower() not in {"debug", "info", "warning", "error", "critical"}:
            raise ValueError(f"unknown log level: {value}")
        return value.lower()

    @field_validator("ownership_exempt_path")
    @classmethod
    def _absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"must be an absolute path: {value}")
        return value

    @property
    def variant_configured(self) -> bool:
        return None not in (self.os_name, self.os_version, self.architecture)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings; invalid values raise ``ConfigurationError``."""
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {exc.error_count()} error(s)",
            context={"errors": [f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()]},
        ) from exc


__all__ = ["Settings", "get_settings"]
