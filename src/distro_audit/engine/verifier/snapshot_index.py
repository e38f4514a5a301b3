"""Sorted, immutable view of one variant's snapshot for a single verification run."""
from __future__ import annotations

import bisect
from collections.abc import Iterable, Iterator

from distro_audit.domain.entities.snapshot_entry import SnapshotEntry
from distro_audit.domain.value_objects.os_variant import OsVariant


class SnapshotIndex:
    """Entries ordered by (path, variant), searched by binary search.

    Each entry carries a "found" flag set when the live walk visits its path;
    whatever is still unflagged after the walk is missing from the server.
    The index is built once per run and never re-read mid-walk.
    """

    def __init__(self, entries: Iterable[SnapshotEntry]) -> None:
        self._entries: tuple[SnapshotEntry, ...] = tuple(sorted(entries, key=lambda e: e.sort_key))
        self._keys: list[tuple[str, int]] = [e.sort_key for e in self._entries]
        self._found: list[bool] = [False] * len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def index_of(self, path: str, variant: OsVariant) -> int | None:
        key = (path, int(variant))
        pos = bisect.bisect_left(self._keys, key)
        if pos < len(self._keys) and self._keys[pos] == key:
            return pos
        return None

    def find(self, path: str, variant: OsVariant) -> SnapshotEntry | None:
        """The entry for (path, variant), flagged as found; ``None`` if absent."""
        pos = self.index_of(path, variant)
        if pos is None:
            return None
        self._found[pos] = True
        return self._entries[pos]

    def is_found(self, path: str, variant: OsVariant) -> bool:
        pos = self.index_of(path, variant)
        return pos is not None and self._found[pos]

    def unfound(self) -> Iterator[SnapshotEntry]:
        """Entries never flagged, in index order."""
        for entry, found in zip(self._entries, self._found):
            if not found:
                yield entry

    def reset(self) -> None:
        self._found = [False] * len(self._entries)
