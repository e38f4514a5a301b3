"""Discrepancy records produced by drift verification.

The two-letter codes and the advisory command words are consumed by
downstream report parsers and must not change.
"""
from __future__ import annotations

import enum
import shlex
from dataclasses import dataclass
from typing import Any


class DiscrepancyCode(str, enum.Enum):
    """Stable report codes."""

    WEIRD_NAME = "3D"
    BIG_DIRECTORY = "BD"
    TYPE_MISMATCH = "TY"
    OWNER_MISMATCH = "chown"
    GROUP_MISMATCH = "chgrp"
    PERMISSIONS = "chmod"
    DIGEST_MISMATCH = "M5"
    LENGTH_MISMATCH = "LE"
    MISSING = "MI"
    NO_OWNER = "NO"
    NO_GROUP = "NG"
    SETUID = "SU"
    EXTRA = "rm"
    SYMLINK = "ln"


@dataclass(frozen=True, slots=True)
class DiscrepancyRecord:
    """One observed difference between a live server and its snapshot.

    Attributes:
        code: Report code.
        path: Server path the record is about.
        detail: Short ``actual!=expected`` style detail, may be empty.
        action: Advisory shell command that would undo the drift, may be empty.
    """

    code: DiscrepancyCode
    path: str
    detail: str = ""
    action: str = ""

    def render(self) -> str:
        """Single report line."""
        if self.action:
            return f"{self.action} # {self.detail}" if self.detail else self.action
        line = f"{self.code.value} {shlex.quote(self.path)}"
        return f"{line} {self.detail}" if self.detail else line

    def __str__(self) -> str:
        return self.render()

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "path": self.path,
            "detail": self.detail,
            "action": self.action,
        }


# ---------------------------------------------------------------------------
# Factories -- one per check so the wording lives in one place
# ---------------------------------------------------------------------------

def _mismatch(actual: object, expected: object) -> str:
    return f"{actual}!={expected}"


def weird_name(path: str) -> DiscrepancyRecord:
    return DiscrepancyRecord(DiscrepancyCode.WEIRD_NAME, path)


def big_directory(path: str, count: int, threshold: int) -> DiscrepancyRecord:
    return DiscrepancyRecord(DiscrepancyCode.BIG_DIRECTORY, path, f"{count}>={threshold}")


def type_mismatch(path: str, actual: str, expected: str) -> DiscrepancyRecord:
    return DiscrepancyRecord(DiscrepancyCode.TYPE_MISMATCH, path, _mismatch(actual, expected))


def owner_mismatch(path: str, actual: str, expected: str) -> DiscrepancyRecord:
    return DiscrepancyRecord(
        DiscrepancyCode.OWNER_MISMATCH,
        path,
        _mismatch(actual, expected),
        f"chown {shlex.quote(expected)} {shlex.quote(path)}",
    )


def group_mismatch(path: str, actual: str, expected: str) -> DiscrepancyRecord:
    return DiscrepancyRecord(
        DiscrepancyCode.GROUP_MISMATCH,
        path,
        _mismatch(actual, expected),
        f"chgrp {shlex.quote(expected)} {shlex.quote(path)}",
    )


def permissions_mismatch(path: str, actual: int, expected: int) -> DiscrepancyRecord:
    return DiscrepancyRecord(
        DiscrepancyCode.PERMISSIONS,
        path,
        _mismatch(f"{actual:o}", f"{expected:o}"),
        f"chmod {expected:o} {shlex.quote(path)}",
    )


def symlink_mismatch(path: str, actual: str, expected: str) -> DiscrepancyRecord:
    # First alternative is the canonical target to restore.
    target = expected.split("|", 1)[0]
    return DiscrepancyRecord(
        DiscrepancyCode.SYMLINK,
        path,
        _mismatch(actual, expected),
        f"rm -f {shlex.quote(path)}; ln -s {shlex.quote(target)} {shlex.quote(path)}",
    )


def digest_mismatch(path: str, actual: str, expected: str | None) -> DiscrepancyRecord:
    return DiscrepancyRecord(DiscrepancyCode.DIGEST_MISMATCH, path, _mismatch(actual, expected))


def length_mismatch(path: str, actual: int, expected: int | None) -> DiscrepancyRecord:
    return DiscrepancyRecord(DiscrepancyCode.LENGTH_MISMATCH, path, _mismatch(actual, expected))


def missing(path: str) -> DiscrepancyRecord:
    return DiscrepancyRecord(DiscrepancyCode.MISSING, path)


def no_owner(path: str, uid: int) -> DiscrepancyRecord:
    return DiscrepancyRecord(DiscrepancyCode.NO_OWNER, path, str(uid))


def no_group(path: str, gid: int) -> DiscrepancyRecord:
    return DiscrepancyRecord(DiscrepancyCode.NO_GROUP, path, str(gid))


def setuid_violation(path: str, mode: int) -> DiscrepancyRecord:
    return DiscrepancyRecord(DiscrepancyCode.SETUID, path, f"{mode:o}")


def extra(path: str, is_directory: bool) -> DiscrepancyRecord:
    flag = "-rf" if is_directory else "-f"
    return DiscrepancyRecord(DiscrepancyCode.EXTRA, path, action=f"rm {flag} {shlex.quote(path)}")
