"""Cross-store synchronisation between the operational store and the mirror."""

from __future__ import annotations

from .report import (
    EntityTypeComparison,
    EntityTypeSyncReport,
    StoreComparison,
    SyncFailure,
    SyncReport,
)
from .synchronizer import SYNC_ORDER, CrossStoreSynchronizer, SyncAbortedError, SyncInProgressError

__all__ = [
    "SYNC_ORDER",
    "CrossStoreSynchronizer",
    "EntityTypeComparison",
    "EntityTypeSyncReport",
    "StoreComparison",
    "SyncAbortedError",
    "SyncFailure",
    "SyncInProgressError",
    "SyncReport",
]
