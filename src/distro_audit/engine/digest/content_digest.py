"""Content digests for snapshot generation and verification.

Regular files are digested with MD5 read in fixed-size chunks.  Prelinked
binaries cannot be digested directly (prelinking rewrites them in place), so
their digest is whatever ``prelink --verify --md5`` reports for the original,
pre-prelink content.
"""
from __future__ import annotations

import hashlib
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from distro_audit.shared.exceptions import PrelinkVerifyError

logger = structlog.get_logger(__name__)

_CHUNK_SIZE: int = 64 * 1024
_HEX_LENGTH: int = 32

Runner = Callable[..., subprocess.CompletedProcess]


@dataclass(frozen=True, slots=True)
class FileDigest:
    """Hex digest of a file plus the number of bytes that produced it."""

    hex_digest: str
    length: int


def digest_file(path: Path | str) -> FileDigest:
    """MD5 of the file at *path*.

    ``OSError`` propagates: a file that cannot be read mid-run is not a
    discrepancy, it is a failed run.
    """
    digest = hashlib.md5()
    length = 0
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
            length += len(chunk)
    return FileDigest(hex_digest=digest.hexdigest(), length=length)


def parse_helper_digest(output: str) -> str:
    """First 32 characters of the helper's first output line, lower-cased."""
    line = output.splitlines()[0] if output else ""
    if len(line) < _HEX_LENGTH:
        raise PrelinkVerifyError(f"Line too short, must be at least {_HEX_LENGTH} characters: {line!r}")
    candidate = line[:_HEX_LENGTH].lower()
    try:
        int(candidate, 16)
    except ValueError:
        raise PrelinkVerifyError(f"Not a hex digest: {candidate!r}") from None
    return candidate


class PrelinkVerifier:
    """Runs the prelink verification helper.

    Attributes:
        prelink_path: The ``prelink`` executable.
        chroot_path: The ``chroot`` executable, used when verifying inside a
            staging tree.
    """

    def __init__(
        self,
        prelink_path: str = "/usr/sbin/prelink",
        chroot_path: str = "/usr/sbin/chroot",
        runner: Runner = subprocess.run,
    ) -> None:
        self.prelink_path = prelink_path
        self.chroot_path = chroot_path
        self._run = runner

    def _command(self, path: str, chroot: str | None, *args: str) -> list[str]:
        command = [self.prelink_path, *args, path]
        if chroot is not None:
            command = [self.chroot_path, chroot, *command]
        return command

    def _execute(self, command: Sequence[str]) -> str:
        try:
            completed = self._run(
                list(command),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise PrelinkVerifyError(f"Unable to run {' '.join(command)}: {exc}") from exc
        if completed.returncode != 0:
            raise PrelinkVerifyError(
                f"Non-zero response from command: {' '.join(command)}",
                context={"returncode": completed.returncode, "stderr": completed.stderr},
            )
        return parse_helper_digest(completed.stdout)

    def verify(self, path: str, chroot: str | None = None) -> str:
        """Digest of the original content of *path*; raises ``PrelinkVerifyError``."""
        return self._execute(self._command(path, chroot, "--verify", "--md5"))

    def verify_or_undo(self, path: str, chroot: str) -> str:
        """Like ``verify``; on failure undo the prelinking once and verify again.

        Used during generation, where the staging tree may hold a binary that
        was prelinked against libraries that have since changed.
        """
        try:
            return self.verify(path, chroot)
        except PrelinkVerifyError as exc:
            logger.warning("prelink.undo", path=path, chroot=chroot, error=exc.message)
            undo = self._command(path, chroot, "--undo")
            completed = self._run(undo, stdin=subprocess.DEVNULL, capture_output=True, text=True, check=False)
            if completed.returncode != 0:
                raise PrelinkVerifyError(f"Non-zero response from command: {' '.join(undo)}") from exc
            return self.verify(path, chroot)


__all__ = ["FileDigest", "PrelinkVerifier", "digest_file", "parse_helper_digest"]
