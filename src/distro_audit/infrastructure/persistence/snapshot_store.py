"""SQLAlchemy implementation of the ``SnapshotStore`` port.

Converts between ORM rows and ``SnapshotEntry`` entities.  Each public call
is its own unit of work; the generation lifecycle maps onto the staging
table:

* ``begin_generation``  -- empty the staging table
* ``bulk_insert``       -- append a batch to the staging table
* ``commit_generation`` -- replace the committed snapshot with the staged rows
* ``discard_generation`` -- empty the staging table again
"""
from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import structlog
from sqlalchemy import Engine, delete, insert, or_, select
from sqlalchemy.exc import SQLAlchemyError

from distro_audit.domain.entities.snapshot_entry import SnapshotEntry
from distro_audit.domain.repositories import SnapshotStore
from distro_audit.domain.value_objects.file_category import FileCategory
from distro_audit.domain.value_objects.os_variant import OsVariant
from distro_audit.infrastructure.persistence.database import init_db, make_engine, make_session_factory
from distro_audit.infrastructure.persistence.models import (
    ENTRY_COLUMNS,
    LinuxAccountModel,
    LinuxGroupModel,
    SnapshotEntryModel,
    StagingSnapshotEntryModel,
)
from distro_audit.shared.exceptions import DistroAuditError

logger = structlog.get_logger(__name__)


class SnapshotStoreError(DistroAuditError):
    """Raised when the snapshot database rejects an operation."""

    def __init__(self, message: str = "Snapshot store failure", **kwargs: Any) -> None:
        super().__init__(message, error_code=kwargs.pop("error_code", "DA_STORE_ERROR"), **kwargs)


def _to_entity(model: SnapshotEntryModel | StagingSnapshotEntryModel) -> SnapshotEntry:
    return SnapshotEntry(
        os_variant=OsVariant(model.os_variant),
        path=model.path,
        optional=model.optional,
        category=FileCategory(model.category),
        mode=model.mode,
        owner_account=model.owner_account,
        owner_group=model.owner_group,
        size=model.size,
        content_digest=model.content_digest,
        symlink_target=model.symlink_target,
    )


def _to_row(entry: SnapshotEntry) -> dict[str, Any]:
    return {
        "os_variant": int(entry.os_variant),
        "path": entry.path,
        "optional": entry.optional,
        "category": entry.category.value,
        "mode": entry.mode,
        "owner_account": entry.owner_account,
        "owner_group": entry.owner_group,
        "size": entry.size,
        "content_digest": entry.content_digest,
        "symlink_target": entry.symlink_target,
    }


class SqlSnapshotStore(SnapshotStore):
    """Snapshot store backed by a relational database.

    Args:
        engine: SQLAlchemy engine; see ``from_url``.
        create_schema: Create missing tables on construction.
    """

    def __init__(self, engine: Engine, create_schema: bool = True) -> None:
        self._engine = engine
        self._sessions = make_session_factory(engine)
        if create_schema:
            init_db(engine)

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> SqlSnapshotStore:
        return cls(make_engine(url, echo=echo))

    def _fail(self, operation: str, exc: SQLAlchemyError) -> SnapshotStoreError:
        logger.error("snapshot_store.failed", operation=operation, error=str(exc))
        return SnapshotStoreError(f"{operation} failed: {exc}", context={"operation": operation})

    # -- reads --------------------------------------------------------------

    def load_all(self, variant: OsVariant) -> list[SnapshotEntry]:
        stmt = select(SnapshotEntryModel).where(SnapshotEntryModel.os_variant == int(variant))
        try:
            with self._sessions() as session:
                rows = session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise self._fail("load_all", exc) from exc
        # Database collation may differ from the lookup ordering; sort here.
        entries = sorted((_to_entity(row) for row in rows), key=lambda e: e.sort_key)
        logger.debug("snapshot_store.loaded", variant=variant.label, entries=len(entries))
        return entries

    def find_owner_orphans(self, variant: OsVariant) -> list[SnapshotEntry]:
        staged = StagingSnapshotEntryModel
        stmt = (
            select(staged)
            .outerjoin(LinuxAccountModel, staged.owner_account == LinuxAccountModel.username)
            .outerjoin(LinuxGroupModel, staged.owner_group == LinuxGroupModel.name)
            .where(staged.os_variant == int(variant))
            .where(or_(LinuxAccountModel.username.is_(None), LinuxGroupModel.name.is_(None)))
            .order_by(staged.path)
        )
        try:
            with self._sessions() as session:
                rows = session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise self._fail("find_owner_orphans", exc) from exc
        return [_to_entity(row) for row in rows]

    # -- generation lifecycle -----------------------------------------------

    def begin_generation(self) -> None:
        try:
            with self._sessions.begin() as session:
                session.execute(delete(StagingSnapshotEntryModel))
        except SQLAlchemyError as exc:
            raise self._fail("begin_generation", exc) from exc

    def bulk_insert(self, entries: Iterable[SnapshotEntry]) -> None:
        rows = [_to_row(entry) for entry in entries]
        if not rows:
            return
        try:
            with self._sessions.begin() as session:
                session.execute(insert(StagingSnapshotEntryModel), rows)
        except SQLAlchemyError as exc:
            raise self._fail("bulk_insert", exc) from exc
        logger.debug("snapshot_store.batch_inserted", rows=len(rows))

    def commit_generation(self) -> None:
        staged = StagingSnapshotEntryModel
        columns = [getattr(staged, name) for name in ENTRY_COLUMNS]
        try:
            with self._sessions.begin() as session:
                session.execute(delete(SnapshotEntryModel))
                session.execute(
                    insert(SnapshotEntryModel).from_select(list(ENTRY_COLUMNS), select(*columns))
                )
                session.execute(delete(staged))
        except SQLAlchemyError as exc:
            raise self._fail("commit_generation", exc) from exc
        logger.info("snapshot_store.committed")

    def discard_generation(self) -> None:
        try:
            with self._sessions.begin() as session:
                session.execute(delete(StagingSnapshotEntryModel))
        except SQLAlchemyError as exc:
            raise self._fail("discard_generation", exc) from exc
        logger.info("snapshot_store.discarded")

    # -- accounts -----------------------------------------------------------

    def register_accounts(self, usernames: Iterable[str], groupnames: Iterable[str]) -> tuple[int, int]:
        """Add account and group names the integrity query accepts.

        Returns the number of new (accounts, groups).
        """
        users = set(usernames)
        groups = set(groupnames)
        try:
            with self._sessions.begin() as session:
                known_users = set(session.scalars(select(LinuxAccountModel.username)).all())
                known_groups = set(session.scalars(select(LinuxGroupModel.name)).all())
                new_users = sorted(users - known_users)
                new_groups = sorted(groups - known_groups)
                session.add_all(LinuxAccountModel(username=name) for name in new_users)
                session.add_all(LinuxGroupModel(name=name) for name in new_groups)
        except SQLAlchemyError as exc:
            raise self._fail("register_accounts", exc) from exc
        logger.info("snapshot_store.accounts_registered", accounts=len(new_users), groups=len(new_groups))
        return len(new_users), len(new_groups)
