"""Session-staged import pipeline: upload, validate, review, commit."""

from __future__ import annotations

from .manager import CleanupResult, ImportSessionManager, SessionStats
from .session import (
    CommitError,
    CommitNotAllowedError,
    CommitProgress,
    CommitReport,
    ImportFailedError,
    ImportSession,
    InvalidTransitionError,
    SessionExpiredError,
    SessionNotFoundError,
    UploadedFile,
    new_session_id,
)

__all__ = [
    "CleanupResult",
    "CommitError",
    "CommitNotAllowedError",
    "CommitProgress",
    "CommitReport",
    "ImportFailedError",
    "ImportSession",
    "ImportSessionManager",
    "InvalidTransitionError",
    "SessionExpiredError",
    "SessionNotFoundError",
    "SessionStats",
    "UploadedFile",
    "new_session_id",
]
