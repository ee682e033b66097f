"""Import sessions persisted as one JSON document per session.

Documents are camelCase and written through a temp file plus rename, so a
crash mid-write leaves the previous version readable and sessions survive
process restarts.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from taxonomist.adapters.files.master_data import write_json_atomic
from taxonomist.domain.imports.session import (
    CommitError,
    CommitProgress,
    CommitReport,
    ImportSession,
    UploadedFile,
)
from taxonomist.domain.model import EntityType, SessionStatus, Severity
from taxonomist.domain.reconciliation import CreatedNode
from taxonomist.domain.validation import Issue, IssueResolution, RuleType, ValidationSummary

log = logging.getLogger(__name__)

_SESSION_ID: Final = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_SUFFIX: Final[str] = ".json"


class SessionDocumentModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class UploadedFileDocument(SessionDocumentModel):
    name: str
    size: int = 0
    uploaded_at: datetime


class IssueDocument(SessionDocumentModel):
    row_index: int
    column_name: str
    severity: Severity
    message: str
    rule: RuleType
    current_value: str | None = None
    resolution: IssueResolution | None = None

    def to_domain(self) -> Issue:
        return Issue(
            row_index=self.row_index,
            column_name=self.column_name,
            severity=self.severity,
            message=self.message,
            rule=self.rule,
            current_value=self.current_value,
            resolution=self.resolution,
        )


class SummaryDocument(SessionDocumentModel):
    total: int
    critical: int = 0
    warning: int = 0
    suggestion: int = 0
    blocking: int = 0
    rows_with_issues: int = 0

    def to_domain(self) -> ValidationSummary:
        return ValidationSummary(
            total_rows=self.total,
            critical=self.critical,
            warning=self.warning,
            suggestion=self.suggestion,
            blocking=self.blocking,
            rows_with_issues=self.rows_with_issues,
        )


class ProgressDocument(SessionDocumentModel):
    total: int
    processed: int = 0
    imported: int = 0
    skipped: int = 0
    finished: bool = False
    updated_at: datetime


class CommitErrorDocument(SessionDocumentModel):
    row: int
    reason: str
    field: str | None = None


class CreatedNodeDocument(SessionDocumentModel):
    entity_type: EntityType = Field(alias="type")
    name: str
    session_id: str
    parent: str | None = None


class CommitReportDocument(SessionDocumentModel):
    imported: int
    skipped: int
    total: int
    errors: list[CommitErrorDocument] = Field(default_factory=list[CommitErrorDocument])
    created: list[CreatedNodeDocument] = Field(default_factory=list[CreatedNodeDocument])

    def to_domain(self) -> CommitReport:
        return CommitReport(
            imported=self.imported,
            skipped=self.skipped,
            total=self.total,
            errors=tuple(
                CommitError(row=error.row, reason=error.reason, field=error.field)
                for error in self.errors
            ),
            created=tuple(
                CreatedNode(
                    entity_type=node.entity_type,
                    name=node.name,
                    session_id=node.session_id,
                    parent=node.parent,
                )
                for node in self.created
            ),
        )


class SessionDocument(SessionDocumentModel):
    session_id: str
    status: SessionStatus
    business_unit: str
    schema_name: str = Field(alias="schema")
    auto_create: bool = True
    file: UploadedFileDocument
    records: list[dict[str, str]] = Field(default_factory=list[dict[str, str]])
    issues: list[IssueDocument] = Field(default_factory=list[IssueDocument])
    summary: SummaryDocument | None = None
    can_import: bool = False
    progress: ProgressDocument | None = None
    commit_report: CommitReportDocument | None = None
    imported_at: datetime | None = None
    imported_records: int = 0
    failure_reason: str | None = None
    reviewed_by: str | None = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None = None

    def to_domain(self) -> ImportSession:
        return ImportSession(
            session_id=self.session_id,
            status=self.status,
            business_unit=self.business_unit,
            schema_name=self.schema_name,
            auto_create=self.auto_create,
            file=UploadedFile(
                name=self.file.name,
                size=self.file.size,
                uploaded_at=_aware(self.file.uploaded_at),
            ),
            records=[dict(row) for row in self.records],
            issues=[issue.to_domain() for issue in self.issues],
            summary=self.summary.to_domain() if self.summary is not None else None,
            can_import=self.can_import,
            progress=(
                CommitProgress(
                    total=self.progress.total,
                    processed=self.progress.processed,
                    imported=self.progress.imported,
                    skipped=self.progress.skipped,
                    finished=self.progress.finished,
                    updated_at=_aware(self.progress.updated_at),
                )
                if self.progress is not None
                else None
            ),
            commit_report=(
                self.commit_report.to_domain() if self.commit_report is not None else None
            ),
            imported_at=_aware(self.imported_at) if self.imported_at is not None else None,
            imported_records=self.imported_records,
            failure_reason=self.failure_reason,
            reviewed_by=self.reviewed_by,
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at),
            expires_at=_aware(self.expires_at) if self.expires_at is not None else None,
        )

    @classmethod
    def from_domain(cls, session: ImportSession) -> SessionDocument:
        return cls.model_validate(
            {
                "sessionId": session.session_id,
                "status": session.status,
                "businessUnit": session.business_unit,
                "schema": session.schema_name,
                "autoCreate": session.auto_create,
                "file": {
                    "name": session.file.name,
                    "size": session.file.size,
                    "uploadedAt": session.file.uploaded_at,
                },
                "records": session.records,
                "issues": [issue.to_dict() for issue in session.issues],
                "summary": session.summary.to_dict() if session.summary is not None else None,
                "canImport": session.can_import,
                "progress": session.progress.to_dict() if session.progress is not None else None,
                "commitReport": (
                    session.commit_report.to_dict() if session.commit_report is not None else None
                ),
                "importedAt": session.imported_at,
                "importedRecords": session.imported_records,
                "failureReason": session.failure_reason,
                "reviewedBy": session.reviewed_by,
                "createdAt": session.created_at,
                "updatedAt": session.updated_at,
                "expiresAt": session.expires_at,
            }
        )


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class FileImportSessionRepository:
    """Stores each session as ``<directory>/<session_id>.json``."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def save(self, session: ImportSession) -> None:
        document = SessionDocument.from_domain(session)
        payload = document.model_dump(mode="json", by_alias=True)
        write_json_atomic(self._path(session.session_id), payload)
        log.debug("Saved import session %s (%s)", session.session_id, session.status)

    def get(self, session_id: str) -> ImportSession | None:
        if not _SESSION_ID.match(session_id):
            return None
        path = self._path(session_id)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return SessionDocument.model_validate(payload).to_domain()
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ValueError(f"Corrupt import session document {path}: {exc}") from exc

    def delete(self, session_id: str) -> bool:
        if not _SESSION_ID.match(session_id):
            return False
        path = self._path(session_id)
        if not path.exists():
            return False
        path.unlink()
        log.debug("Deleted import session %s", session_id)
        return True

    def list_ids(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(
            path.stem
            for path in self.directory.glob(f"*{_SUFFIX}")
            if _SESSION_ID.match(path.stem)
        )

    def _path(self, session_id: str) -> Path:
        if not _SESSION_ID.match(session_id):
            raise ValueError(f"Invalid import session id {session_id!r}")
        return self.directory / f"{session_id}{_SUFFIX}"


if TYPE_CHECKING:
    from taxonomist.domain.ports.sessions import ImportSessionRepository

    _repository_check: ImportSessionRepository = FileImportSessionRepository(Path())
