"""Explicit-stack depth-first walking.

Every directory walk in distro-audit keeps its own stack of frames instead
of recursing, so tree depth is bounded by memory rather than by the
interpreter's recursion limit.
"""
from __future__ import annotations

from dataclasses import dataclass


def child_path(parent: str, name: str) -> str:
    return "/" + name if parent == "/" else f"{parent}/{name}"


@dataclass(slots=True)
class DirectoryFrame:
    """One directory being walked: its sorted child names and the next one to visit."""

    directory: str
    children: list[str]
    index: int = 0

    @property
    def exhausted(self) -> bool:
        return self.index >= len(self.children)

    def advance(self) -> tuple[str, str]:
        """(name, path) of the next child; the frame must not be exhausted."""
        name = self.children[self.index]
        self.index += 1
        return name, child_path(self.directory, name)
