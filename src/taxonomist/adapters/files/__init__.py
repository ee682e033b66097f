"""File-backed adapters: master data documents, import sessions and the sync lock."""

from __future__ import annotations

from .locking import FileAdvisoryLock
from .master_data import (
    MasterDataDocument,
    read_master_data,
    snapshot_from_payload,
    snapshot_to_payload,
    write_master_data,
)
from .sessions import FileImportSessionRepository

__all__ = [
    "FileAdvisoryLock",
    "FileImportSessionRepository",
    "MasterDataDocument",
    "read_master_data",
    "snapshot_from_payload",
    "snapshot_to_payload",
    "write_master_data",
]
