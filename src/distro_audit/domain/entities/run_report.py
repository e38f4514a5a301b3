"""Run-level results for generation and verification.

``VerificationReport`` wraps the discrepancy list a verification run returns
together with the walk statistics; ``GenerationResult`` summarises what a
generation run wrote and which rules it never exercised.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, Field

from distro_audit.domain.entities.discrepancy import DiscrepancyCode, DiscrepancyRecord
from distro_audit.domain.entities.snapshot_entry import SnapshotEntry

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class VerificationStats(BaseModel):
    """Counters collected while walking a live filesystem.

    Every scanned path is counted exactly once as system, user or
    no-recurse, so ``scanned == system_count + user_count + no_recurse_count``
    holds at the end of a run.
    """

    started_at: datetime | None = None
    finished_at: datetime | None = None
    scanned: int = 0
    system_count: int = 0
    user_count: int = 0
    no_recurse_count: int = 0
    prelink_files: int = 0
    prelink_bytes: int = 0
    digest_files: int = 0
    digest_bytes: int = 0

    @property
    def is_balanced(self) -> bool:
        return self.scanned == self.system_count + self.user_count + self.no_recurse_count

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()


class VerificationReport(BaseModel):
    """Outcome of one verification run.

    Attributes:
        run_id: Unique identifier (UUID-4 string).
        os_variant: Variant the live server was compared against.
        hostname: Hostname used for ``$h`` substitution.
        discrepancies: Every recorded difference, in walk order, followed by
            the missing-entry sweep.
        stats: Walk statistics.
    """

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    os_variant: int
    hostname: str = ""
    discrepancies: list[DiscrepancyRecord] = Field(default_factory=list)
    stats: VerificationStats = Field(default_factory=VerificationStats)

    model_config = {"arbitrary_types_allowed": True}

    def add(self, record: DiscrepancyRecord) -> None:
        self.discrepancies.append(record)
        logger.debug("discrepancy_recorded", code=record.code.value, path=record.path)

    def count_by_code(self) -> dict[str, int]:
        """Number of records per report code."""
        counts: dict[str, int] = {}
        for record in self.discrepancies:
            counts[record.code.value] = counts.get(record.code.value, 0) + 1
        return counts

    def by_code(self, code: DiscrepancyCode) -> list[DiscrepancyRecord]:
        return [r for r in self.discrepancies if r.code is code]

    @property
    def is_clean(self) -> bool:
        return not self.discrepancies

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "os_variant": self.os_variant,
            "hostname": self.hostname,
            "discrepancies": [r.to_dict() for r in self.discrepancies],
            "stats": self.stats.model_dump(mode="json"),
        }


class GenerationResult(BaseModel):
    """Outcome of one successful generation run.

    Attributes:
        run_id: Unique identifier (UUID-4 string).
        entries_written: Total snapshot entries emitted.
        entries_by_variant: Entries emitted per variant id.
        owner_orphans: Entries whose owner or group has no known account.
        unmatched_rules: Per rule-set name, the ``variant,path`` rules that
            no staging path exercised.
    """

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = Field(default_factory=_now)
    finished_at: datetime | None = None
    entries_written: int = 0
    entries_by_variant: dict[int, int] = Field(default_factory=dict)
    owner_orphans: list[SnapshotEntry] = Field(default_factory=list)
    unmatched_rules: dict[str, list[str]] = Field(default_factory=dict)
