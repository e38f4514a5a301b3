"""Shared depth-first traversal cursor for the snapshot generator.

The cursor is an explicit stack of (directory, sorted children, next index)
frames.  Every worker pulls its next path from the same cursor under one
mutex; everything expensive (classification, hashing, emission) happens
outside that lock.
"""
from __future__ import annotations

import os
import stat
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from distro_audit.shared.exceptions import GenerationError
from distro_audit.shared.walk import DirectoryFrame

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CursorItem:
    """A path handed to a worker, with the ``lstat`` taken while it was visited."""

    path: str
    stat: os.stat_result = field(compare=False)


class TraversalCursor:
    """Walks every path under *root* exactly once, in sorted depth-first order.

    Args:
        root: Staging root directory.
        should_descend: Called with the root-relative path of each real
            directory; return False to list the directory itself but none of
            its children.
    """

    def __init__(self, root: Path | str, should_descend: Callable[[str], bool]) -> None:
        self._root = str(root).rstrip("/")
        self._should_descend = should_descend
        self._lock = threading.Lock()
        # The root itself is the single child of a pseudo-frame, yielding "/".
        self._frames: list[DirectoryFrame] = [DirectoryFrame(directory="", children=[""])]
        self._done = False

    @property
    def done(self) -> bool:
        with self._lock:
            return self._done

    def full_path(self, path: str) -> str:
        return self._root + path

    def next_path(self) -> CursorItem | None:
        """The next path to classify, or ``None`` once the walk is exhausted.

        A path that vanished between its parent's listing and its ``lstat``
        is skipped; any other ``OSError`` is fatal.
        """
        with self._lock:
            while not self._done:
                while self._frames and self._frames[-1].exhausted:
                    self._frames.pop()
                if not self._frames:
                    self._done = True
                    break

                frame = self._frames[-1]
                _, path = frame.advance()

                full = self.full_path(path)
                try:
                    st = os.lstat(full)
                except FileNotFoundError:
                    logger.warning("cursor.path_vanished", path=full)
                    continue
                except OSError as exc:
                    raise GenerationError(
                        f"Error trying to access file: {full}: {exc}",
                        context={"path": full},
                    ) from exc

                if stat.S_ISDIR(st.st_mode) and self._should_descend(path):
                    self._frames.append(DirectoryFrame(directory=path, children=self._list(full)))
                return CursorItem(path=path, stat=st)
            return None

    @staticmethod
    def _list(full: str) -> list[str]:
        try:
            return sorted(os.listdir(full))
        except FileNotFoundError:
            logger.warning("cursor.directory_vanished", path=full)
            return []
        except OSError as exc:
            raise GenerationError(
                f"Unable to list directory: {full}: {exc}",
                context={"path": full},
            ) from exc
