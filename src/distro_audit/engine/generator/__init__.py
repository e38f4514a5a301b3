"""Snapshot generation from a staging tree."""
from __future__ import annotations

from distro_audit.engine.generator.classification import classify, descends_into
from distro_audit.engine.generator.cursor import CursorItem, TraversalCursor
from distro_audit.engine.generator.identity import StagingIdentityResolver, parse_id_file
from distro_audit.engine.generator.snapshot_generator import SnapshotGenerator

__all__ = [
    "CursorItem",
    "SnapshotGenerator",
    "StagingIdentityResolver",
    "TraversalCursor",
    "classify",
    "descends_into",
    "parse_id_file",
]
