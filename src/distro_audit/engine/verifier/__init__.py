"""Drift verification of a live server against its snapshot."""
from __future__ import annotations

from distro_audit.engine.verifier.drift_verifier import DriftVerifier, missing_records
from distro_audit.engine.verifier.names import is_hidden_name
from distro_audit.engine.verifier.snapshot_index import SnapshotIndex
from distro_audit.engine.verifier.user_directory import UserDirectoryChecker

__all__ = [
    "DriftVerifier",
    "SnapshotIndex",
    "UserDirectoryChecker",
    "is_hidden_name",
    "missing_records",
]
