"""Detect the server's own OS variant from ``/etc/os-release``.

Only the variants that ship an ``os-release`` file can be detected; older
and dom0 variants must be configured explicitly.
"""
from __future__ import annotations

import platform
from pathlib import Path

import structlog

from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.shared.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")

# os-release ID -> variant table name
_NAME_ALIASES = {"rhel": "redhat"}


def parse_os_release(text: str) -> dict[str, str]:
    """``KEY=value`` lines to a dict; quotes around values are dropped."""
    info: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        info[key] = value.strip().strip('"').strip("'")
    return info


def detect_variant(os_release: Path = OS_RELEASE_PATH, machine: str | None = None) -> OsVariant:
    """The variant of the running host.

    Raises:
        ConfigurationError: the file is missing or lacks ``ID``/``VERSION_ID``.
        UnsupportedVariantError: the detected triple is not in the table.
    """
    try:
        info = parse_os_release(os_release.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(
            f"{os_release} not readable, configure the OS variant explicitly: {exc}",
            context={"path": str(os_release)},
        ) from exc

    os_id = info.get("ID")
    version_id = info.get("VERSION_ID")
    if not os_id or not version_id:
        raise ConfigurationError(
            f"Cannot parse ID/VERSION_ID from {os_release}",
            context={"path": str(os_release)},
        )
    name = _NAME_ALIASES.get(os_id, os_id)
    major = version_id.split(".")[0]
    architecture = machine or platform.machine()
    variant = OsVariant.resolve(name, major, architecture)
    logger.info("os_release.detected", variant=variant.label, version_id=version_id)
    return variant


def resolve_variant(
    os_name: str | None,
    os_version: str | None,
    architecture: str | None,
    os_release: Path = OS_RELEASE_PATH,
) -> OsVariant:
    """Configured triple when complete, otherwise detection."""
    if os_name and os_version and architecture:
        return OsVariant.resolve(os_name, os_version, architecture)
    if os_name or os_version or architecture:
        raise ConfigurationError("os_name, os_version and architecture must be configured together")
    return detect_variant(os_release)
