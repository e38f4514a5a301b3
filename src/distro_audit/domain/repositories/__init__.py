"""Domain ports -- abstract contracts for the collaborators the engine consumes."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from distro_audit.domain.entities.snapshot_entry import SnapshotEntry
from distro_audit.domain.value_objects.os_variant import OsVariant


class SnapshotStore(ABC):
    """Persistence of snapshot entries keyed by (variant, path).

    Generation writes into a staging area between ``begin_generation`` and
    ``commit_generation``; only the commit makes the new snapshot visible to
    ``load_all``, replacing the previous one wholesale.
    """

    @abstractmethod
    def load_all(self, variant: OsVariant) -> list[SnapshotEntry]:
        """Every committed entry of *variant*, ordered by (path, variant)."""

    @abstractmethod
    def begin_generation(self) -> None: ...

    @abstractmethod
    def bulk_insert(self, entries: Iterable[SnapshotEntry]) -> None: ...

    @abstractmethod
    def find_owner_orphans(self, variant: OsVariant) -> list[SnapshotEntry]:
        """Staged entries of *variant* whose owner or group name has no known account."""

    @abstractmethod
    def commit_generation(self) -> None: ...

    @abstractmethod
    def discard_generation(self) -> None: ...


class StagingIdentity(ABC):
    """Names for numeric ids as defined by a variant's own account files."""

    @abstractmethod
    def username_for_uid(self, variant: OsVariant, uid: int) -> str:
        """Raise ``IdentityError`` when the variant has no such user."""

    @abstractmethod
    def groupname_for_gid(self, variant: OsVariant, gid: int) -> str:
        """Raise ``IdentityError`` when the variant has no such group."""


class ServerIdentity(ABC):
    """Account lookups on the server being verified; ``None`` means unknown."""

    @abstractmethod
    def username_for_uid(self, uid: int) -> str | None: ...

    @abstractmethod
    def groupname_for_gid(self, gid: int) -> str | None: ...

    @abstractmethod
    def uid_for_username(self, username: str) -> int | None: ...

    @abstractmethod
    def gid_for_groupname(self, groupname: str) -> int | None: ...


__all__ = ["ServerIdentity", "SnapshotStore", "StagingIdentity"]
