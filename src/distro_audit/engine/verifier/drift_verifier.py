"""
Drift Verifier -- compare a live filesystem against its variant's snapshot.

The walk is single-threaded and depth-first from ``/``, children in sorted
order.  Each path is looked up in a ``SnapshotIndex``; a path with no entry
is reported for removal and not descended into, a path with an entry runs
the ordered check battery (ownership, type, permissions, symlink target,
content).  After the walk, entries never visited are reported missing.

Every difference is a ``DiscrepancyRecord``; only conditions that make the
walk itself impossible raise.
"""
from __future__ import annotations

import os
import stat
import threading
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from distro_audit.domain.entities import discrepancy
from distro_audit.domain.entities.discrepancy import DiscrepancyRecord
from distro_audit.domain.entities.run_report import VerificationReport
from distro_audit.domain.entities.snapshot_entry import SnapshotEntry
from distro_audit.domain.repositories import ServerIdentity, SnapshotStore
from distro_audit.domain.value_objects.file_category import FileCategory
from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.engine.digest.content_digest import PrelinkVerifier, digest_file
from distro_audit.engine.digest.throttle import Throttle
from distro_audit.engine.verifier.names import is_hidden_name
from distro_audit.engine.verifier.snapshot_index import SnapshotIndex
from distro_audit.engine.verifier.user_directory import UserDirectoryChecker
from distro_audit.shared.exceptions import DigestError, RunCancelledError, VerificationError
from distro_audit.shared.file_modes import describe_type, file_type, is_special, permissions
from distro_audit.shared.walk import DirectoryFrame

logger = structlog.get_logger(__name__)

HOSTNAME_TOKEN = "$h"
DEFAULT_BIG_DIRECTORY_THRESHOLD = 100_000
DEFAULT_OWNERSHIP_EXEMPT_PATH = "/etc/opt/distro-audit/distro-audit.env"


def missing_records(entries: list[SnapshotEntry]) -> list[DiscrepancyRecord]:
    """``MI`` records for unvisited entries, topmost missing ancestor only.

    *entries* must be in index order.  Optional entries are never reported.
    """
    records: list[DiscrepancyRecord] = []
    last: str | None = None
    for entry in entries:
        if entry.optional:
            continue
        if last is None or not entry.path.startswith(last + "/"):
            records.append(discrepancy.missing(entry.path))
            last = entry.path
    return records


class DriftVerifier:
    """Verifies one live server against the stored snapshot of its variant.

    Usage::

        verifier = DriftVerifier(store, OsVariant.CENTOS_7_X86_64, LocalServerIdentity(), hostname="www1")
        report = verifier.run()
        for record in report.discrepancies:
            print(record)

    Args:
        store: Source of the snapshot; read once per run.
        variant: The server's own variant.
        identity: Account lookups on the server.
        hostname: Replaced by ``$h`` when a literal lookup fails.
        live_root: Filesystem prefix of the server's ``/`` (``/`` in production).
        throttle: Sleeps after each digest check.
        prelink: Helper for ``PRELINK`` entries.
        include_user_trees: Walk below ``USER`` directories.
        big_directory_threshold: Child count at which ``BD`` is reported.
        uid_min / gid_min: First non-system ids, for the set-id rule in user trees.
        ownership_exempt_path: Path whose owner, group and permissions are not checked.
        on_record: Called with each record as soon as it is produced.
    """

    def __init__(
        self,
        store: SnapshotStore,
        variant: OsVariant,
        identity: ServerIdentity,
        hostname: str = "",
        live_root: str = "/",
        throttle: Throttle | None = None,
        prelink: PrelinkVerifier | None = None,
        include_user_trees: bool = True,
        big_directory_threshold: int = DEFAULT_BIG_DIRECTORY_THRESHOLD,
        uid_min: int = 1000,
        gid_min: int = 1000,
        ownership_exempt_path: str = DEFAULT_OWNERSHIP_EXEMPT_PATH,
        on_record: Callable[[DiscrepancyRecord], None] | None = None,
    ) -> None:
        self.store = store
        self.variant = variant
        self.identity = identity
        self.hostname = hostname
        self.live_root = live_root.rstrip("/")
        self.throttle = throttle or Throttle()
        self.prelink = prelink or PrelinkVerifier()
        self.include_user_trees = include_user_trees
        self.big_directory_threshold = big_directory_threshold
        self.uid_min = uid_min
        self.gid_min = gid_min
        self.ownership_exempt_path = ownership_exempt_path
        self._on_record = on_record
        self._stop = threading.Event()
        self._report: VerificationReport | None = None
        self._index: SnapshotIndex | None = None

    # -- public API ---------------------------------------------------------

    def request_stop(self) -> None:
        """Stop before the next path; ``run`` then raises ``RunCancelledError``."""
        self._stop.set()

    def run(self) -> VerificationReport:
        self._stop.clear()
        report = VerificationReport(os_variant=int(self.variant), hostname=self.hostname)
        report.stats.started_at = datetime.now(timezone.utc)
        self._report = report
        self._index = SnapshotIndex(self.store.load_all(self.variant))

        structlog.contextvars.bind_contextvars(run_id=report.run_id)
        logger.info(
            "verification.start",
            variant=self.variant.label,
            entries=len(self._index),
            live_root=self.live_root or "/",
        )
        try:
            root_stat = self._lstat("/")
            if root_stat is None:
                raise VerificationError(f"Live root does not exist: {self.live_root or '/'}")
            self._walk(root_stat)

            for record in missing_records(list(self._index.unfound())):
                self._record(record)

            stats = report.stats
            stats.finished_at = datetime.now(timezone.utc)
            if not stats.is_balanced:
                raise VerificationError(
                    "Path counters do not balance",
                    context=stats.model_dump(mode="json"),
                )
            logger.info(
                "verification.complete",
                discrepancies=len(report.discrepancies),
                scanned=stats.scanned,
                digest_files=stats.digest_files,
                throttled_seconds=round(self.throttle.total_slept, 3),
                duration_seconds=round(stats.duration_seconds, 3),
            )
            return report
        finally:
            structlog.contextvars.unbind_contextvars("run_id")
            self._report = None
            self._index = None

    # -- walk ---------------------------------------------------------------

    def _checkpoint(self) -> None:
        if self._stop.is_set():
            raise RunCancelledError("Verification stopped before the walk completed")

    def _record(self, record: DiscrepancyRecord) -> None:
        assert self._report is not None
        self._report.add(record)
        if self._on_record is not None:
            self._on_record(record)

    def _full(self, path: str) -> str:
        return self.live_root + path if self.live_root else path

    def _lstat(self, path: str) -> os.stat_result | None:
        full = self._full(path)
        try:
            return os.lstat(full)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise VerificationError(f"Unable to stat: {full}: {exc}", context={"path": full}) from exc

    def _lookup(self, path: str) -> SnapshotEntry | None:
        """Literal path first, then the path with the hostname replaced by ``$h``."""
        assert self._index is not None
        entry = self._index.find(path, self.variant)
        if entry is None and self.hostname and self.hostname in path:
            entry = self._index.find(path.replace(self.hostname, HOSTNAME_TOKEN, 1), self.variant)
        return entry

    def _walk(self, root_stat: os.stat_result) -> None:
        """Depth-first from ``/``, children in sorted order, on an explicit frame stack."""
        frames: list[DirectoryFrame] = []
        children = self._check_path("/", root_stat)
        if children is not None:
            frames.append(DirectoryFrame("/", children))
        while frames:
            frame = frames[-1]
            if frame.exhausted:
                frames.pop()
                continue
            _, path = frame.advance()
            st = self._lstat(path)
            if st is None:
                logger.warning("verification.path_vanished", path=path)
                continue
            children = self._check_path(path, st)
            if children is not None:
                frames.append(DirectoryFrame(path, children))

    def _check_path(self, path: str, st: os.stat_result) -> list[str] | None:
        """Run the check battery on one path; the children to walk next, if any."""
        self._checkpoint()
        stats = self._report.stats
        stats.scanned += 1
        stats.system_count += 1

        if path != "/" and is_hidden_name(path.rsplit("/", 1)[1]):
            self._record(discrepancy.weird_name(path))

        entry = self._lookup(path)
        if entry is None:
            self._record(discrepancy.extra(path, stat.S_ISDIR(st.st_mode)))
            return None

        exempt = path == self.ownership_exempt_path
        if not exempt:
            self._check_ownership(path, st, entry)

        if file_type(st.st_mode) != file_type(entry.mode):
            self._record(discrepancy.type_mismatch(path, describe_type(st.st_mode), describe_type(entry.mode)))
        else:
            if not exempt and permissions(st.st_mode) != permissions(entry.mode):
                self._record(discrepancy.permissions_mismatch(path, permissions(st.st_mode), permissions(entry.mode)))
            if stat.S_ISLNK(st.st_mode):
                self._check_symlink(path, entry)
            elif stat.S_ISREG(st.st_mode):
                self._check_content(path, st, entry)

        if stat.S_ISDIR(st.st_mode):
            return self._descend(path, entry.category)
        return None

    def _check_ownership(self, path: str, st: os.stat_result, entry: SnapshotEntry) -> None:
        owner = self.identity.username_for_uid(st.st_uid) or str(st.st_uid)
        if owner != entry.owner_account:
            self._record(discrepancy.owner_mismatch(path, owner, entry.owner_account))
        group = self.identity.groupname_for_gid(st.st_gid) or str(st.st_gid)
        if group != entry.owner_group:
            self._record(discrepancy.group_mismatch(path, group, entry.owner_group))

    def _check_symlink(self, path: str, entry: SnapshotEntry) -> None:
        if entry.symlink_target is None:
            return
        full = self._full(path)
        try:
            target = os.readlink(full)
        except OSError as exc:
            raise VerificationError(f"Unable to read link: {full}: {exc}", context={"path": full}) from exc
        if target not in entry.symlink_alternatives:
            self._record(discrepancy.symlink_mismatch(path, target, entry.symlink_target))

    def _check_content(self, path: str, st: os.stat_result, entry: SnapshotEntry) -> None:
        if is_special(st.st_mode):
            return
        stats = self._report.stats
        full = self._full(path)
        category = entry.category
        if category in (FileCategory.CONFIG, FileCategory.USER, FileCategory.NO_RECURSE):
            return
        if category is FileCategory.PRELINK:
            with self.throttle.measured():
                chroot = self.live_root or None
                actual = self.prelink.verify(path if chroot else full, chroot=chroot)
                stats.prelink_files += 1
                stats.prelink_bytes += st.st_size
                if actual != entry.content_digest:
                    self._record(discrepancy.digest_mismatch(path, actual, entry.content_digest))
            return
        if category is FileCategory.SYSTEM:
            if st.st_size != entry.size:
                self._record(discrepancy.length_mismatch(path, st.st_size, entry.size))
                return
            with self.throttle.measured():
                try:
                    digest = digest_file(full)
                except OSError as exc:
                    raise DigestError(f"Unable to digest: {full}: {exc}", context={"path": full}) from exc
                stats.digest_files += 1
                stats.digest_bytes += digest.length
                if digest.hex_digest != entry.content_digest:
                    self._record(discrepancy.digest_mismatch(path, digest.hex_digest, entry.content_digest))
            return
        raise VerificationError(f"Unexpected category for {path}: {category!r}")

    def _descend(self, path: str, category: FileCategory) -> list[str] | None:
        """Sorted children of a system directory; user and no-recurse directories yield ``None``."""
        stats = self._report.stats
        if category is FileCategory.USER:
            stats.system_count -= 1
            if self.include_user_trees:
                stats.user_count += 1
                UserDirectoryChecker(
                    self.identity,
                    self._record,
                    stats,
                    live_root=self.live_root or "/",
                    recurse=True,
                    uid_min=self.uid_min,
                    gid_min=self.gid_min,
                    big_directory_threshold=self.big_directory_threshold,
                    should_stop=self._checkpoint,
                ).check(path)
            else:
                stats.no_recurse_count += 1
            return None
        if category is FileCategory.NO_RECURSE:
            stats.system_count -= 1
            stats.no_recurse_count += 1
            return None

        full = self._full(path)
        try:
            names = sorted(os.listdir(full))
        except OSError as exc:
            raise VerificationError(f"Unable to list directory: {full}: {exc}", context={"path": full}) from exc
        if len(names) >= self.big_directory_threshold:
            self._record(discrepancy.big_directory(path, len(names), self.big_directory_threshold))
        return names
