"""Master data graph: snapshots, copy-on-write edits, consistency and repair."""

from __future__ import annotations

from .consistency import (
    ConsistencySummary,
    SnapshotStatistics,
    Violation,
    ViolationType,
    check_consistency,
    exit_code,
    new_violations,
    snapshot_statistics,
    summarize,
)
from .editor import SnapshotEditor
from .graph import ConsistencyGateError, MasterDataGraph, SnapshotSource, UnknownVersionError
from .repair import RepairResult, repair_snapshot
from .snapshot import EMPTY_SNAPSHOT, MalformedSnapshotError, MasterDataSnapshot, TaxonomyNode
from .store import SeedResult, change_status, load_snapshot, seed_master_data

__all__ = [
    "EMPTY_SNAPSHOT",
    "ConsistencyGateError",
    "ConsistencySummary",
    "MalformedSnapshotError",
    "MasterDataGraph",
    "MasterDataSnapshot",
    "RepairResult",
    "SeedResult",
    "SnapshotEditor",
    "SnapshotSource",
    "SnapshotStatistics",
    "TaxonomyNode",
    "UnknownVersionError",
    "Violation",
    "ViolationType",
    "change_status",
    "check_consistency",
    "exit_code",
    "load_snapshot",
    "new_violations",
    "repair_snapshot",
    "seed_master_data",
    "snapshot_statistics",
    "summarize",
]
