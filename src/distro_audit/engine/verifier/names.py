"""Names that are commonly used to hide content from a casual ``ls``."""
from __future__ import annotations


def _blank(ch: str) -> bool:
    return ch <= " " or ch.isspace()


def is_all_space(name: str) -> bool:
    return bool(name) and all(_blank(ch) for ch in name)


def is_hidden_name(name: str) -> bool:
    """``...``, ``..`` followed by a blank or control character, or only blanks."""
    if name.startswith("..."):
        return True
    if name.startswith("..") and len(name) > 2 and _blank(name[2]):
        return True
    return is_all_space(name)
