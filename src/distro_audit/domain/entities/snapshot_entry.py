"""Snapshot entry entity -- the recorded expected state of one path.

A snapshot is the full set of entries generated for every OS variant from a
staging tree.  Entries are created once by the generator and never updated;
a new generation run replaces the whole snapshot.
"""
from __future__ import annotations

import re
import stat

from pydantic import BaseModel, Field, field_validator, model_validator

from distro_audit.domain.value_objects.file_category import FileCategory
from distro_audit.domain.value_objects.os_variant import OsVariant

_HEX_DIGEST = re.compile(r"^[0-9a-f]{32}$")

SYMLINK_TARGET_SEPARATOR = "|"


class SnapshotEntry(BaseModel):
    """Expected state of a single path in a single OS variant.

    Attributes:
        os_variant: Variant the entry belongs to.
        path: Absolute, normalised server path (``/`` for the root).
        optional: Whether a missing path is tolerated.
        category: How generation and verification treat the path.
        mode: Raw POSIX mode, type bits included.
        owner_account: Owner name (names are portable across servers, ids are not).
        owner_group: Group name.
        size: Byte size; only for regular files that are not ``CONFIG``.
        content_digest: 32-char lowercase hex MD5; only for regular
            ``SYSTEM`` (and ``PRELINK``) files.
        symlink_target: Link target for symlinks; ``|`` separates alternatives.
    """

    os_variant: OsVariant
    path: str = Field(min_length=1)
    optional: bool = False
    category: FileCategory
    mode: int = Field(ge=0)
    owner_account: str = Field(min_length=1)
    owner_group: str = Field(min_length=1)
    size: int | None = Field(default=None, ge=0)
    content_digest: str | None = None
    symlink_target: str | None = None

    model_config = {"frozen": True}

    # -- validation ----------------------------------------------------------

    @field_validator("path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"path must be absolute: {value!r}")
        return value

    @field_validator("content_digest")
    @classmethod
    def _hex_digest(cls, value: str | None) -> str | None:
        if value is not None and not _HEX_DIGEST.match(value):
            raise ValueError(f"content_digest must be 32 lowercase hex characters: {value!r}")
        return value

    @model_validator(mode="after")
    def _consistent_with_mode(self) -> SnapshotEntry:
        regular = stat.S_ISREG(self.mode)
        if (self.size is not None or self.content_digest is not None) and not regular:
            raise ValueError(f"size/digest recorded for non-regular file {self.path}")
        if self.symlink_target is not None and not stat.S_ISLNK(self.mode):
            raise ValueError(f"symlink_target recorded for non-symlink {self.path}")
        return self

    # -- convenience ---------------------------------------------------------

    @property
    def sort_key(self) -> tuple[str, int]:
        """Lookup ordering: path first, then variant."""
        return (self.path, int(self.os_variant))

    @property
    def symlink_alternatives(self) -> list[str]:
        """Every acceptable link target."""
        if self.symlink_target is None:
            return []
        return self.symlink_target.split(SYMLINK_TARGET_SEPARATOR)
