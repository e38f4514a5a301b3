"""How a snapshot path is treated by generation and verification."""
from __future__ import annotations

import enum


class FileCategory(str, enum.Enum):
    """Closed set of path categories.

    * ``SYSTEM``     -- must match exactly, content digest included.
    * ``CONFIG``     -- ownership, type and permissions only; content varies per server.
    * ``USER``       -- a home-directory tree, checked by the user directory rules.
    * ``NO_RECURSE`` -- the directory itself is checked, its children are not.
    * ``PRELINK``    -- a prelinked binary; its digest comes from ``prelink --verify``.
    """

    SYSTEM = "system"
    CONFIG = "config"
    USER = "user"
    NO_RECURSE = "no_recurse"
    PRELINK = "prelink"

    @property
    def records_size(self) -> bool:
        """Whether regular files of this category keep their size."""
        return self is not FileCategory.CONFIG

    @property
    def records_digest(self) -> bool:
        """Whether regular files of this category keep a content digest."""
        return self in (FileCategory.SYSTEM, FileCategory.PRELINK)
