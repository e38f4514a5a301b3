"""Unit tests for the in-memory snapshot store lifecycle."""
from __future__ import annotations

import stat

import pytest

from distro_audit.domain.entities.snapshot_entry import SnapshotEntry
from distro_audit.domain.value_objects.file_category import FileCategory
from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.infrastructure.persistence.memory_store import MemorySnapshotStore
from distro_audit.shared.exceptions import GenerationError

C7 = OsVariant.CENTOS_7_X86_64
R9 = OsVariant.ROCKY_9_X86_64


def _entry(path: str, variant: OsVariant = C7, owner: str = "root", group: str = "root") -> SnapshotEntry:
    return SnapshotEntry(
        os_variant=variant,
        path=path,
        category=FileCategory.SYSTEM,
        mode=stat.S_IFDIR | 0o755,
        owner_account=owner,
        owner_group=group,
    )


class TestLifecycle:
    def test_load_all_filters_and_sorts(self) -> None:
        store = MemorySnapshotStore([_entry("/b"), _entry("/a", R9), _entry("/a")])
        assert [e.path for e in store.load_all(C7)] == ["/a", "/b"]
        assert [e.path for e in store.load_all(R9)] == ["/a"]

    def test_staged_entries_invisible_until_commit(self) -> None:
        store = MemorySnapshotStore([_entry("/old")])
        store.begin_generation()
        store.bulk_insert([_entry("/new")])
        assert [e.path for e in store.load_all(C7)] == ["/old"]
        store.commit_generation()
        assert [e.path for e in store.load_all(C7)] == ["/new"]
        assert store.staged == []

    def test_discard_keeps_previous(self) -> None:
        store = MemorySnapshotStore([_entry("/old")])
        store.begin_generation()
        store.bulk_insert([_entry("/new")])
        store.discard_generation()
        assert [e.path for e in store.load_all(C7)] == ["/old"]

    def test_writes_outside_a_run_rejected(self) -> None:
        store = MemorySnapshotStore()
        with pytest.raises(GenerationError):
            store.bulk_insert([_entry("/x")])
        with pytest.raises(GenerationError):
            store.commit_generation()


class TestAccounts:
    def test_everything_accepted_before_registration(self) -> None:
        store = MemorySnapshotStore()
        store.begin_generation()
        store.bulk_insert([_entry("/x", owner="nobody-known")])
        assert store.find_owner_orphans(C7) == []

    def test_orphans_after_registration(self) -> None:
        store = MemorySnapshotStore()
        assert store.register_accounts(["root", "root"], ["root", "wheel"]) == (1, 2)
        assert store.register_accounts(["root", "apache"], ["wheel"]) == (1, 0)
        store.begin_generation()
        store.bulk_insert([
            _entry("/ok"),
            _entry("/srv/www", owner="apache"),
            _entry("/opt/app", owner="app"),
            _entry("/opt/data", group="data"),
            _entry("/opt/app", R9, owner="app"),
        ])
        assert [e.path for e in store.find_owner_orphans(C7)] == ["/opt/app", "/opt/data"]
