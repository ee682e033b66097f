"""Import session state: Uploaded -> Validated -> (Reviewed) -> Committed, or Failed.

A session owns the raw uploaded rows, the issues found when they were last
validated and, once committed, the commit report. Transitions are checked
here; the orchestration (validation, reconciliation, writes) lives in
:mod:`taxonomist.domain.imports.manager`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final
from uuid import uuid4

from taxonomist.domain.model import SessionStatus

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import timedelta

    from taxonomist.domain.reconciliation import CreatedNode
    from taxonomist.domain.validation import Issue, ValidationSummary


_TRANSITIONS: Final[Mapping[SessionStatus, frozenset[SessionStatus]]] = {
    SessionStatus.UPLOADED: frozenset({SessionStatus.VALIDATED, SessionStatus.FAILED}),
    SessionStatus.VALIDATED: frozenset(
        {
            SessionStatus.VALIDATED,
            SessionStatus.REVIEWED,
            SessionStatus.COMMITTED,
            SessionStatus.FAILED,
        }
    ),
    SessionStatus.REVIEWED: frozenset(
        {
            SessionStatus.VALIDATED,
            SessionStatus.REVIEWED,
            SessionStatus.COMMITTED,
            SessionStatus.FAILED,
        }
    ),
    # a committed session may be committed again; the replay is idempotent
    SessionStatus.COMMITTED: frozenset({SessionStatus.COMMITTED}),
    SessionStatus.FAILED: frozenset(),
}

COMMITTABLE: Final[frozenset[SessionStatus]] = frozenset(
    {SessionStatus.VALIDATED, SessionStatus.REVIEWED, SessionStatus.COMMITTED}
)


def new_session_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class InvalidTransitionError(ValueError):
    def __init__(
        self,
        *,
        session_id: str,
        current: SessionStatus,
        requested: SessionStatus,
    ) -> None:
        self.session_id = session_id
        self.current = current
        self.requested = requested
        super().__init__(f"Session {session_id} cannot move from {current} to {requested}")


class SessionNotFoundError(LookupError):
    def __init__(self, *, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Import session {session_id} not found")


class SessionExpiredError(LookupError):
    def __init__(self, *, session_id: str, expired_at: datetime) -> None:
        self.session_id = session_id
        self.expired_at = expired_at
        super().__init__(f"Import session {session_id} expired at {expired_at.isoformat()}")


class CommitNotAllowedError(ValueError):
    def __init__(self, *, session_id: str, reason: str) -> None:
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Import session {session_id} cannot be committed: {reason}")


class ImportFailedError(RuntimeError):
    """Raised when a session moves to Failed; ``reason`` is the recorded cause."""

    def __init__(self, *, session_id: str, reason: str) -> None:
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Import session {session_id} failed: {reason}")


@dataclass(frozen=True, slots=True, kw_only=True)
class UploadedFile:
    name: str
    size: int = 0
    uploaded_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True, kw_only=True)
class CommitError:
    row: int
    reason: str
    field: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {"row": self.row, "field": self.field, "reason": self.reason}


@dataclass(frozen=True, slots=True, kw_only=True)
class CommitReport:
    imported: int
    skipped: int
    total: int
    errors: tuple[CommitError, ...] = ()
    created: tuple[CreatedNode, ...] = ()

    @property
    def created_count(self) -> int:
        return len(self.created)

    def to_dict(self) -> dict[str, object]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "total": self.total,
            "errors": [error.to_dict() for error in self.errors],
            "created": [node.to_dict() for node in self.created],
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class CommitProgress:
    total: int
    processed: int = 0
    imported: int = 0
    skipped: int = 0
    finished: bool = False
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 100 if self.finished else 0
        return min(100, (self.processed * 100) // self.total)

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "processed": self.processed,
            "imported": self.imported,
            "skipped": self.skipped,
            "percentage": self.percentage,
            "finished": self.finished,
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(eq=False, kw_only=True)
class ImportSession:
    business_unit: str
    schema_name: str
    file: UploadedFile
    records: list[dict[str, str]] = field(default_factory=list[dict[str, str]])
    auto_create: bool = True
    session_id: str = field(default_factory=new_session_id)
    status: SessionStatus = SessionStatus.UPLOADED
    issues: list[Issue] = field(default_factory=list["Issue"])
    summary: ValidationSummary | None = None
    can_import: bool = False
    progress: CommitProgress | None = None
    commit_report: CommitReport | None = None
    imported_at: datetime | None = None
    imported_records: int = 0
    failure_reason: str | None = None
    reviewed_by: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    expires_at: datetime | None = None

    @property
    def total_records(self) -> int:
        return len(self.records)

    @property
    def can_commit(self) -> bool:
        return self.status in COMMITTABLE and self.can_import

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def touch(self, now: datetime, timeout: timedelta) -> None:
        """Record an access; expiry slides forward from ``now``."""
        self.updated_at = now
        self.expires_at = now + timeout

    def transition(self, status: SessionStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                session_id=self.session_id,
                current=self.status,
                requested=status,
            )
        self.status = status

    def record_validation(self, issues: Sequence[Issue], summary: ValidationSummary) -> None:
        self.transition(SessionStatus.VALIDATED)
        self.issues = list(issues)
        self.summary = summary
        self.can_import = summary.can_import
        self.reviewed_by = None

    def record_review(
        self,
        issues: Sequence[Issue],
        summary: ValidationSummary,
        *,
        reviewer: str | None,
    ) -> None:
        self.transition(SessionStatus.REVIEWED)
        self.issues = list(issues)
        self.summary = summary
        self.can_import = summary.can_import
        self.reviewed_by = reviewer

    def record_commit(self, report: CommitReport, *, at: datetime) -> None:
        self.transition(SessionStatus.COMMITTED)
        self.commit_report = report
        self.imported_at = at
        self.imported_records = report.imported

    def record_failure(self, reason: str) -> None:
        self.transition(SessionStatus.FAILED)
        self.failure_reason = reason
