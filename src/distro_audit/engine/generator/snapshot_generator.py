"""
Snapshot Generator -- build the expected-state snapshot of every OS variant
from a staging tree laid out as ``<root>/<name>/<version>/<arch>/...``.

A fixed pool of worker threads shares one ``TraversalCursor``.  Each worker
takes the next path, classifies it against the rule sets, gathers ownership,
size, digest and link target, and emits one ``SnapshotEntry``.  Entries reach
the store in batches behind an output lock that is independent of the
traversal lock.

A run either succeeds completely or fails: any fatal error in any worker
stops the other workers at their next path and discards everything staged.
"""
from __future__ import annotations

import os
import stat
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

import structlog

from distro_audit.domain.entities.run_report import GenerationResult
from distro_audit.domain.entities.snapshot_entry import SnapshotEntry
from distro_audit.domain.repositories import SnapshotStore, StagingIdentity
from distro_audit.domain.value_objects.file_category import FileCategory
from distro_audit.domain.value_objects.os_variant import OsVariant, split_staging_path
from distro_audit.engine.digest.content_digest import PrelinkVerifier, digest_file
from distro_audit.engine.generator.classification import classify, descends_into
from distro_audit.engine.generator.cursor import CursorItem, TraversalCursor
from distro_audit.engine.generator.identity import StagingIdentityResolver
from distro_audit.engine.rules.rule_sets import RuleSetName, RuleSetRegistry
from distro_audit.shared.exceptions import (
    DistroAuditError,
    ForbiddenPathError,
    GenerationError,
    RunCancelledError,
)

logger = structlog.get_logger(__name__)

DEFAULT_WORKERS = min(4, (os.cpu_count() or 1) * 2)
DEFAULT_BATCH_SIZE = 1000

# Rule sets reported as stale at the end of a run.  Nevers are not: any
# never that exists already failed the run.
_REPORTED_RULE_SETS = (
    RuleSetName.CONFIGS,
    RuleSetName.NO_RECURSES,
    RuleSetName.OPTIONALS,
    RuleSetName.PRELINKS,
    RuleSetName.USERS,
)


class _RunState:
    """Mutable state of one generation run, shared by its workers."""

    def __init__(self, cursor: TraversalCursor, workers: int, batch_size: int) -> None:
        self.cursor = cursor
        self.batch_size = batch_size
        self.failed = threading.Event()
        self.errors: list[BaseException] = []
        self.result = GenerationResult()

        self._state_lock = threading.Lock()
        self._active_workers = workers

        self.output_lock = threading.Lock()
        self._batch: list[SnapshotEntry] = []

    def fail(self, exc: BaseException) -> None:
        with self._state_lock:
            self.errors.append(exc)
        self.failed.set()

    def worker_finished(self) -> bool:
        """Count a worker out; True only for the last one."""
        with self._state_lock:
            self._active_workers -= 1
            return self._active_workers == 0

    def emit(self, store: SnapshotStore, entry: SnapshotEntry) -> None:
        with self.output_lock:
            self._batch.append(entry)
            self.result.entries_written += 1
            key = int(entry.os_variant)
            self.result.entries_by_variant[key] = self.result.entries_by_variant.get(key, 0) + 1
            if len(self._batch) >= self.batch_size:
                store.bulk_insert(self._batch)
                self._batch = []

    def flush(self, store: SnapshotStore) -> None:
        with self.output_lock:
            if self._batch:
                store.bulk_insert(self._batch)
                self._batch = []


class SnapshotGenerator:
    """Generates a complete snapshot from a staging tree.

    Usage::

        generator = SnapshotGenerator(Path("/distro"), RuleSetRegistry.from_resources(), store)
        result = generator.run()
    """

    def __init__(
        self,
        staging_root: Path | str,
        rules: RuleSetRegistry,
        store: SnapshotStore,
        identity: StagingIdentity | None = None,
        prelink: PrelinkVerifier | None = None,
        worker_count: int = DEFAULT_WORKERS,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if worker_count < 1:
            raise ValueError(f"worker_count must be positive, got {worker_count}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.staging_root = str(staging_root).rstrip("/")
        self.rules = rules
        self.store = store
        self.identity = identity or StagingIdentityResolver(self.staging_root)
        self.prelink = prelink or PrelinkVerifier()
        self.worker_count = worker_count
        self.batch_size = batch_size
        self._stop = threading.Event()

    # -- public API ---------------------------------------------------------

    def request_stop(self) -> None:
        """Ask the workers to stop before their next path; the run then fails."""
        self._stop.set()

    def find_forbidden_paths(self) -> list[str]:
        """Staging paths that exist although listed in ``nevers``."""
        found: list[str] = []
        for rule in self.rules.get(RuleSetName.NEVERS).rules():
            path = self._variant_root(rule.os_variant) + rule.relative_path
            if os.path.lexists(path):
                found.append(path)
        return found

    def run(self) -> GenerationResult:
        """Walk the staging tree and replace the stored snapshot.

        Raises:
            ForbiddenPathError: a ``nevers`` path exists; nothing was written.
            DistroAuditError: any other fatal condition; the staged rows are
                discarded and the previous snapshot stays in place.
        """
        self._stop.clear()
        self.rules.load_all()
        self.rules.reset_matches()

        forbidden = self.find_forbidden_paths()
        if forbidden:
            logger.error("generation.forbidden_paths", paths=forbidden)
            raise ForbiddenPathError(forbidden)

        cursor = TraversalCursor(self.staging_root, self._should_descend)
        state = _RunState(cursor, self.worker_count, self.batch_size)
        structlog.contextvars.bind_contextvars(run_id=state.result.run_id)
        logger.info(
            "generation.start",
            staging_root=self.staging_root,
            workers=self.worker_count,
            batch_size=self.batch_size,
        )
        try:
            self.store.begin_generation()
            with ThreadPoolExecutor(max_workers=self.worker_count, thread_name_prefix="distro-gen") as pool:
                futures = [pool.submit(self._work, state, n) for n in range(self.worker_count)]
            for future in futures:
                # Workers record their own failures; this only surfaces bugs in _work itself.
                future.result()

            if state.errors:
                self.store.discard_generation()
                error = state.errors[0]
                logger.error("generation.failed", error=str(error), errors=len(state.errors))
                if isinstance(error, DistroAuditError):
                    raise error
                raise GenerationError(f"Generation failed: {error}") from error

            self.store.commit_generation()
            state.result.finished_at = datetime.now(timezone.utc)
            logger.info(
                "generation.complete",
                entries=state.result.entries_written,
                variants=len(state.result.entries_by_variant),
                orphans=len(state.result.owner_orphans),
            )
            return state.result
        finally:
            structlog.contextvars.unbind_contextvars("run_id")

    # -- workers ------------------------------------------------------------

    def _work(self, state: _RunState, worker_id: int) -> None:
        log = logger.bind(worker=worker_id)
        try:
            while not state.failed.is_set():
                if self._stop.is_set():
                    raise RunCancelledError("Generation stopped before the walk completed")
                item = state.cursor.next_path()
                if item is None:
                    break
                entry = self._build_entry(item)
                if entry is not None:
                    state.emit(self.store, entry)
        except Exception as exc:
            log.error("generation.worker_failed", error=str(exc))
            state.fail(exc)
        finally:
            if state.worker_finished() and not state.failed.is_set():
                try:
                    self._complete(state)
                except Exception as exc:
                    log.error("generation.completion_failed", error=str(exc))
                    state.fail(exc)

    def _complete(self, state: _RunState) -> None:
        """Run once, by the last worker out, after the cursor is exhausted."""
        state.flush(self.store)
        for key in sorted(state.result.entries_by_variant):
            variant = OsVariant(key)
            orphans = self.store.find_owner_orphans(variant)
            for orphan in orphans:
                logger.warning(
                    "generation.owner_orphan",
                    variant=variant.label,
                    path=orphan.path,
                    owner=orphan.owner_account,
                    group=orphan.owner_group,
                )
            state.result.owner_orphans.extend(orphans)
        for name in _REPORTED_RULE_SETS:
            unmatched = self.rules.report_unmatched(name)
            if unmatched:
                state.result.unmatched_rules[name.value] = [rule.label for rule in unmatched]

    # -- per path -----------------------------------------------------------

    def _should_descend(self, path: str) -> bool:
        staging = split_staging_path(path)
        return descends_into(self.rules, staging.variant, staging.relative_path)

    def _variant_root(self, variant: OsVariant) -> str:
        return self.staging_root + variant.staging_prefix

    def _build_entry(self, item: CursorItem) -> SnapshotEntry | None:
        staging = split_staging_path(item.path)
        if not staging.is_classifiable:
            return None
        variant = staging.variant
        relative = staging.relative_path
        assert variant is not None and relative is not None
        full = self.staging_root + item.path

        if self.rules.is_never(variant, relative):
            raise ForbiddenPathError([full])

        category = classify(self.rules, variant, relative)
        st = item.stat
        mode = st.st_mode
        regular = stat.S_ISREG(mode)

        try:
            digest = self._digest(category, variant, relative, full) if regular else None
            target = os.readlink(full) if stat.S_ISLNK(mode) else None
        except FileNotFoundError:
            logger.warning("generation.path_vanished", path=full)
            return None
        except OSError as exc:
            raise GenerationError(f"Error on file: {full}: {exc}", context={"path": full}) from exc

        return SnapshotEntry(
            os_variant=variant,
            path=relative,
            optional=self.rules.is_optional(variant, relative),
            category=category,
            mode=mode,
            owner_account=self.identity.username_for_uid(variant, st.st_uid),
            owner_group=self.identity.groupname_for_gid(variant, st.st_gid),
            size=st.st_size if regular and category.records_size else None,
            content_digest=digest,
            symlink_target=target,
        )

    def _digest(self, category: FileCategory, variant: OsVariant, relative: str, full: str) -> str | None:
        if category is FileCategory.SYSTEM:
            return digest_file(full).hex_digest
        if category is FileCategory.PRELINK:
            return self.prelink.verify_or_undo(relative, chroot=self._variant_root(variant))
        return None
