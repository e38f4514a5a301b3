"""SQLAlchemy ORM models for the snapshot store.

``snapshot_entries`` holds the committed snapshot; generation writes into
``snapshot_entries_staging`` and replaces the committed rows in one
transaction.  ``linux_accounts`` and ``linux_groups`` list the names the
end-of-generation integrity query accepts as owners.
"""
from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from distro_audit.infrastructure.persistence.database import Base


class _EntryColumns:
    """Columns shared by the committed and staging entry tables."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    os_variant: Mapped[int] = mapped_column(Integer, nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    optional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    mode: Mapped[int] = mapped_column(BigInteger, nullable=False)
    owner_account: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_group: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    content_digest: Mapped[str | None] = mapped_column(String(32), nullable=True)
    symlink_target: Mapped[str | None] = mapped_column(Text, nullable=True)


class SnapshotEntryModel(_EntryColumns, Base):
    """``snapshot_entries`` -- the committed snapshot."""

    __tablename__ = "snapshot_entries"
    __table_args__ = (
        UniqueConstraint("os_variant", "path", name="uq_snapshot_entries_variant_path"),
        Index("ix_snapshot_entries_variant", "os_variant"),
    )

    def __repr__(self) -> str:
        return f"<SnapshotEntryModel variant={self.os_variant} path={self.path!r}>"


class StagingSnapshotEntryModel(_EntryColumns, Base):
    """``snapshot_entries_staging`` -- rows of the generation run in progress."""

    __tablename__ = "snapshot_entries_staging"
    __table_args__ = (
        UniqueConstraint("os_variant", "path", name="uq_snapshot_entries_staging_variant_path"),
    )


class LinuxAccountModel(Base):
    """``linux_accounts`` -- account names known to the fleet."""

    __tablename__ = "linux_accounts"

    username: Mapped[str] = mapped_column(String(255), primary_key=True)


class LinuxGroupModel(Base):
    """``linux_groups`` -- group names known to the fleet."""

    __tablename__ = "linux_groups"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)


ENTRY_COLUMNS = (
    "os_variant",
    "path",
    "optional",
    "category",
    "mode",
    "owner_account",
    "owner_group",
    "size",
    "content_digest",
    "symlink_target",
)
