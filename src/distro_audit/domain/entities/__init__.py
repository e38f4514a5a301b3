"""Domain entities: snapshot entries, discrepancy records and run reports."""
from __future__ import annotations

from distro_audit.domain.entities.discrepancy import DiscrepancyCode, DiscrepancyRecord
from distro_audit.domain.entities.run_report import (
    GenerationResult,
    VerificationReport,
    VerificationStats,
)
from distro_audit.domain.entities.snapshot_entry import SnapshotEntry

__all__ = [
    "DiscrepancyCode",
    "DiscrepancyRecord",
    "GenerationResult",
    "SnapshotEntry",
    "VerificationReport",
    "VerificationStats",
]
