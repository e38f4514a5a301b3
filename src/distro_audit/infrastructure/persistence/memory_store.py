"""In-memory ``SnapshotStore`` for dry runs and tests."""
from __future__ import annotations

import threading
from collections.abc import Iterable

from distro_audit.domain.entities.snapshot_entry import SnapshotEntry
from distro_audit.domain.repositories import SnapshotStore
from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.shared.exceptions import GenerationError


class MemorySnapshotStore(SnapshotStore):
    """Same lifecycle as ``SqlSnapshotStore``, kept in process memory.

    Until ``register_accounts`` is called every owner and group name is
    accepted, so ``find_owner_orphans`` returns nothing.
    """

    def __init__(self, entries: Iterable[SnapshotEntry] = ()) -> None:
        self._lock = threading.Lock()
        self._committed: list[SnapshotEntry] = list(entries)
        self._staged: list[SnapshotEntry] | None = None
        self._accounts: set[str] | None = None
        self._groups: set[str] | None = None
        self.batches: list[int] = []

    def load_all(self, variant: OsVariant) -> list[SnapshotEntry]:
        with self._lock:
            selected = [e for e in self._committed if e.os_variant is variant]
        return sorted(selected, key=lambda e: e.sort_key)

    def begin_generation(self) -> None:
        with self._lock:
            self._staged = []
            self.batches = []

    def bulk_insert(self, entries: Iterable[SnapshotEntry]) -> None:
        batch = list(entries)
        with self._lock:
            if self._staged is None:
                raise GenerationError("bulk_insert called outside a generation run")
            self._staged.extend(batch)
            self.batches.append(len(batch))

    def find_owner_orphans(self, variant: OsVariant) -> list[SnapshotEntry]:
        with self._lock:
            staged = list(self._staged or [])
            accounts, groups = self._accounts, self._groups
        if accounts is None or groups is None:
            return []
        return sorted(
            (
                e for e in staged
                if e.os_variant is variant and (e.owner_account not in accounts or e.owner_group not in groups)
            ),
            key=lambda e: e.path,
        )

    def commit_generation(self) -> None:
        with self._lock:
            if self._staged is None:
                raise GenerationError("commit_generation called outside a generation run")
            self._committed = self._staged
            self._staged = None

    def discard_generation(self) -> None:
        with self._lock:
            self._staged = None

    def register_accounts(self, usernames: Iterable[str], groupnames: Iterable[str]) -> tuple[int, int]:
        with self._lock:
            accounts = self._accounts if self._accounts is not None else set()
            groups = self._groups if self._groups is not None else set()
            new_users = set(usernames) - accounts
            new_groups = set(groupnames) - groups
            self._accounts = accounts | new_users
            self._groups = groups | new_groups
        return len(new_users), len(new_groups)

    @property
    def staged(self) -> list[SnapshotEntry]:
        with self._lock:
            return list(self._staged or [])
