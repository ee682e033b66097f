"""Ports (protocols) implemented by adapters."""

from __future__ import annotations

from .locking import AdvisoryLock, LockUnavailableError
from .persistence import StoreUnavailableError, UnresolvedReferenceError
from .replication import ReplicaRow, ReplicaStore, RowKey
from .sessions import ImportSessionRepository
from .unit_of_work import (
    RepositoryCollection,
    TaxonomyRepositories,
    TaxonomyUnitOfWork,
    UnitOfWork,
)
from .versions import SnapshotVersion, SnapshotVersionLog

__all__ = [
    "AdvisoryLock",
    "ImportSessionRepository",
    "LockUnavailableError",
    "ReplicaRow",
    "ReplicaStore",
    "RepositoryCollection",
    "RowKey",
    "SnapshotVersion",
    "SnapshotVersionLog",
    "StoreUnavailableError",
    "TaxonomyRepositories",
    "TaxonomyUnitOfWork",
    "UnitOfWork",
    "UnresolvedReferenceError",
]
