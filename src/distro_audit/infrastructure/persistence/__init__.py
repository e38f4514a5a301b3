"""Snapshot store adapters."""
from __future__ import annotations

from distro_audit.infrastructure.persistence.memory_store import MemorySnapshotStore
from distro_audit.infrastructure.persistence.snapshot_store import SnapshotStoreError, SqlSnapshotStore

__all__ = ["MemorySnapshotStore", "SnapshotStoreError", "SqlSnapshotStore"]
