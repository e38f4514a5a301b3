"""Owner and group names as a staging variant defines them.

Snapshot entries store names rather than ids; ids differ between servers,
names do not.  Each variant's ``etc/passwd`` and ``etc/group`` are read once
per resolver; the first line for an id wins, matching how the C library
resolves duplicate ids.
"""
from __future__ import annotations

import threading
from pathlib import Path

import structlog

from distro_audit.domain.repositories import StagingIdentity
from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.shared.exceptions import IdentityError

logger = structlog.get_logger(__name__)


def parse_id_file(text: str) -> dict[int, str]:
    """``name:x:id:...`` lines to ``{id: name}``; the first name per id wins."""
    names: dict[int, str] = {}
    for line in text.splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        fields = line.split(":")
        if len(fields) < 3:
            raise IdentityError(f"Malformed account line: {line!r}")
        try:
            numeric = int(fields[2])
        except ValueError:
            raise IdentityError(f"Malformed id in account line: {line!r}") from None
        names.setdefault(numeric, fields[0])
    return names


class StagingIdentityResolver(StagingIdentity):
    """Resolves ids against ``<staging>/<variant>/etc/{passwd,group}``.

    Caches are per resolver instance; a resolver is bound to one staging
    root and must not be reused for another.
    """

    def __init__(self, staging_root: Path | str) -> None:
        self._root = str(staging_root).rstrip("/")
        self._users: dict[OsVariant, dict[int, str]] = {}
        self._groups: dict[OsVariant, dict[int, str]] = {}
        self._users_lock = threading.Lock()
        self._groups_lock = threading.Lock()

    def _load(self, variant: OsVariant, filename: str) -> dict[int, str]:
        path = Path(f"{self._root}{variant.staging_prefix}/etc/{filename}")
        try:
            text = path.read_text(encoding="utf-8", errors="surrogateescape")
        except OSError as exc:
            raise IdentityError(
                f"Unable to read {path}: {exc}",
                context={"variant": variant.label},
            ) from exc
        names = parse_id_file(text)
        logger.debug("identity.loaded", variant=variant.label, file=filename, entries=len(names))
        return names

    def username_for_uid(self, variant: OsVariant, uid: int) -> str:
        with self._users_lock:
            names = self._users.get(variant)
            if names is None:
                names = self._users[variant] = self._load(variant, "passwd")
        try:
            return names[uid]
        except KeyError:
            raise IdentityError(
                f"Unable to find username: {uid} for variant {variant.label}",
                context={"variant": variant.label, "uid": uid},
            ) from None

    def groupname_for_gid(self, variant: OsVariant, gid: int) -> str:
        with self._groups_lock:
            names = self._groups.get(variant)
            if names is None:
                names = self._groups[variant] = self._load(variant, "group")
        try:
            return names[gid]
        except KeyError:
            raise IdentityError(
                f"Unable to find group name: {gid} for variant {variant.label}",
                context={"variant": variant.label, "gid": gid},
            ) from None
