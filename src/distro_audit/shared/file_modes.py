"""Raw POSIX mode helpers used by both the generator and the verifier."""
from __future__ import annotations

import stat

PERMISSION_MASK = 0o7777

_TYPE_NAMES: dict[int, str] = {
    stat.S_IFDIR: "directory",
    stat.S_IFREG: "regular file",
    stat.S_IFLNK: "symbolic link",
    stat.S_IFBLK: "block device",
    stat.S_IFCHR: "character device",
    stat.S_IFIFO: "fifo",
    stat.S_IFSOCK: "socket",
}


def file_type(mode: int) -> int:
    return stat.S_IFMT(mode)


def permissions(mode: int) -> int:
    return mode & PERMISSION_MASK


def describe_type(mode: int) -> str:
    """Human name of the type bits of *mode* (``"regular file"``, ``"symbolic link"`` ...)."""
    return _TYPE_NAMES.get(stat.S_IFMT(mode), f"unknown({stat.S_IFMT(mode):o})")


def is_special(mode: int) -> bool:
    """Devices, fifos and sockets: never size- or content-checked."""
    return (
        stat.S_ISBLK(mode)
        or stat.S_ISCHR(mode)
        or stat.S_ISFIFO(mode)
        or stat.S_ISSOCK(mode)
    )
