"""Checks for home-directory style trees that no snapshot describes.

Anything may live under a user directory, so only a handful of hygiene rules
apply: names used to hide content, files owned by ids the server does not
know, and set-id bits on files owned by system accounts.  These trees change
under our feet; an entry that disappears mid-walk is skipped without a
record.
"""
from __future__ import annotations

import os
import stat
from collections.abc import Callable

import structlog

from distro_audit.domain.entities import discrepancy
from distro_audit.domain.entities.discrepancy import DiscrepancyRecord
from distro_audit.domain.entities.run_report import VerificationStats
from distro_audit.domain.repositories import ServerIdentity
from distro_audit.engine.verifier.names import is_hidden_name
from distro_audit.shared.exceptions import PathVanishedError, VerificationError
from distro_audit.shared.walk import DirectoryFrame

logger = structlog.get_logger(__name__)

_SET_ID_BITS = stat.S_ISUID | stat.S_ISGID

# Mailing-list wrapper shipped set-uid root by the list manager package.
_MAJORDOMO_PREFIX = "/etc/mail/majordomo/"
_MAJORDOMO_WRAPPER = "wrapper"
_MAJORDOMO_MODE = 0o4750
_MAJORDOMO_GROUP = "mail"


class UserDirectoryChecker:
    """Walks a user tree below a ``USER`` directory.

    Args:
        identity: Account lookups on the verified server.
        emit: Receives each discrepancy as it is found.
        stats: Counters shared with the calling verifier.
        live_root: Filesystem prefix of the server's ``/``.
        recurse: Descend into subdirectories.
        uid_min / gid_min: First non-system user and group ids.
        big_directory_threshold: Child count at which ``BD`` is reported.
        should_stop: Polled before each entry.
    """

    def __init__(
        self,
        identity: ServerIdentity,
        emit: Callable[[DiscrepancyRecord], None],
        stats: VerificationStats,
        live_root: str = "/",
        recurse: bool = True,
        uid_min: int = 1000,
        gid_min: int = 1000,
        big_directory_threshold: int = 100_000,
        should_stop: Callable[[], None] | None = None,
    ) -> None:
        self.identity = identity
        self._emit = emit
        self.stats = stats
        self._root = live_root.rstrip("/")
        self.recurse = recurse
        self.uid_min = uid_min
        self.gid_min = gid_min
        self.big_directory_threshold = big_directory_threshold
        self._should_stop = should_stop or (lambda: None)

    def check(self, directory: str) -> None:
        """Check every entry below *directory* (a server path).

        The walk keeps an explicit frame stack; nesting depth inside a user
        tree is unbounded and user-controlled.
        """
        names = self._list(directory)
        if names is None:
            return
        frames = [DirectoryFrame(directory, names)]
        while frames:
            frame = frames[-1]
            if frame.exhausted:
                frames.pop()
                continue
            self._should_stop()
            name, path = frame.advance()
            try:
                st = self._lstat(path)
            except PathVanishedError as exc:
                logger.debug("user_directory.vanished", **exc.to_dict())
                continue
            if self._check_entry(path, name, st):
                children = self._list(path)
                if children is not None:
                    frames.append(DirectoryFrame(path, children))

    def _list(self, directory: str) -> list[str] | None:
        """Sorted child names, ``None`` if the directory vanished; reports ``BD``."""
        full = self._root + directory
        try:
            names = sorted(os.listdir(full))
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise VerificationError(f"Unable to list directory: {full}: {exc}", context={"path": full}) from exc

        if len(names) >= self.big_directory_threshold:
            self._emit(discrepancy.big_directory(directory, len(names), self.big_directory_threshold))
        return names

    def _lstat(self, path: str) -> os.stat_result:
        full = self._root + path
        try:
            return os.lstat(full)
        except FileNotFoundError as exc:
            raise PathVanishedError(path) from exc
        except OSError as exc:
            raise VerificationError(f"Unable to stat: {full}: {exc}", context={"path": full}) from exc

    def _check_entry(self, path: str, name: str, st: os.stat_result) -> bool:
        """Record hygiene problems of one entry; True if its children should be walked."""
        self.stats.scanned += 1
        self.stats.user_count += 1

        if is_hidden_name(name):
            self._emit(discrepancy.weird_name(path))

        if self.identity.username_for_uid(st.st_uid) is None:
            self._emit(discrepancy.no_owner(path, st.st_uid))
        if self.identity.groupname_for_gid(st.st_gid) is None:
            self._emit(discrepancy.no_group(path, st.st_gid))

        mode = stat.S_IMODE(st.st_mode)
        if mode & _SET_ID_BITS and (st.st_uid < self.uid_min or st.st_gid < self.gid_min):
            if not self._is_majordomo_wrapper(path, mode, st):
                self._emit(discrepancy.setuid_violation(path, mode))

        if not stat.S_ISDIR(st.st_mode):
            return False
        if not self.recurse:
            self.stats.user_count -= 1
            self.stats.no_recurse_count += 1
        return self.recurse

    def _is_majordomo_wrapper(self, path: str, mode: int, st: os.stat_result) -> bool:
        """``/etc/mail/majordomo/<list>/wrapper``, mode 4750, owned by root:mail."""
        if not path.startswith(_MAJORDOMO_PREFIX):
            return False
        rest = path[len(_MAJORDOMO_PREFIX):]
        _, sep, filename = rest.partition("/")
        return (
            bool(sep)
            and filename == _MAJORDOMO_WRAPPER
            and mode == _MAJORDOMO_MODE
            and st.st_uid == 0
            and self.identity.groupname_for_gid(st.st_gid) == _MAJORDOMO_GROUP
        )
