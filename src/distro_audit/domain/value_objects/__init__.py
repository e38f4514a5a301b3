"""Immutable value objects shared across the domain."""
from __future__ import annotations

from distro_audit.domain.value_objects.file_category import FileCategory
from distro_audit.domain.value_objects.os_variant import OsVariant, StagingPath, split_staging_path

__all__ = ["FileCategory", "OsVariant", "StagingPath", "split_staging_path"]
