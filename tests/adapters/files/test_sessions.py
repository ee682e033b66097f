from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from taxonomist.adapters.files import FileImportSessionRepository
from taxonomist.domain.imports import (
    CommitError,
    CommitProgress,
    CommitReport,
    ImportSession,
    UploadedFile,
)
from taxonomist.domain.model import EntityType, SessionStatus, Severity
from taxonomist.domain.reconciliation import CreatedNode
from taxonomist.domain.validation import Issue, IssueResolution, RuleType, ValidationSummary
from tests.helpers.master_data import FIXED_TIME

if TYPE_CHECKING:
    from pathlib import Path


def _committed_session() -> ImportSession:
    issue = Issue(
        row_index=0,
        column_name="Range",
        severity=Severity.CRITICAL,
        message="Range 'Dermopure RL' is not valid for Derma business unit",
        rule=RuleType.RELATIONSHIP,
        current_value="Dermopure RL",
        resolution=IssueResolution.AUTO_CREATE,
    )
    session = ImportSession(
        business_unit="Derma",
        schema_name="media_sufficiency",
        file=UploadedFile(name="derma.json", size=64, uploaded_at=FIXED_TIME),
        records=[{"Category": "Acne", "Range": "Dermopure RL", "Campaign": "Triple Effect"}],
        created_at=FIXED_TIME,
        updated_at=FIXED_TIME,
    )
    session.touch(FIXED_TIME, timedelta(hours=6))
    session.record_validation([issue], ValidationSummary.from_issues([issue], total_rows=1))
    session.progress = CommitProgress(
        total=1, processed=1, imported=1, finished=True, updated_at=FIXED_TIME
    )
    session.record_commit(
        CommitReport(
            imported=1,
            skipped=0,
            total=1,
            errors=(CommitError(row=2, field="Range", reason="Unknown range 'X'"),),
            created=(
                CreatedNode(
                    entity_type=EntityType.RANGE,
                    name="Dermopure RL",
                    session_id=session.session_id,
                    parent="Acne",
                ),
            ),
        ),
        at=FIXED_TIME,
    )
    return session


def test_round_trip_preserves_the_session(tmp_path: Path) -> None:
    repository = FileImportSessionRepository(tmp_path / "sessions")
    session = _committed_session()

    repository.save(session)
    loaded = repository.get(session.session_id)

    assert loaded is not None
    assert loaded.status is SessionStatus.COMMITTED
    assert loaded.business_unit == "Derma"
    assert loaded.schema_name == "media_sufficiency"
    assert loaded.file == session.file
    assert loaded.records == session.records
    assert loaded.issues == session.issues
    assert loaded.summary == session.summary
    assert loaded.can_import
    assert loaded.progress == session.progress
    assert loaded.commit_report == session.commit_report
    assert loaded.imported_at == FIXED_TIME
    assert loaded.expires_at == FIXED_TIME + timedelta(hours=6)
    assert repository.list_ids() == [session.session_id]


def test_document_is_camel_case_json(tmp_path: Path) -> None:
    repository = FileImportSessionRepository(tmp_path)
    session = _committed_session()

    repository.save(session)

    text = (tmp_path / f"{session.session_id}.json").read_text(encoding="utf-8")
    assert '"businessUnit": "Derma"' in text
    assert '"schema": "media_sufficiency"' in text
    assert '"commitReport"' in text


def test_missing_and_invalid_ids(tmp_path: Path) -> None:
    repository = FileImportSessionRepository(tmp_path)

    assert repository.get("does-not-exist") is None
    assert repository.get("../etc/passwd") is None
    assert not repository.delete("../etc/passwd")
    assert repository.list_ids() == []


def test_delete_removes_the_document(tmp_path: Path) -> None:
    repository = FileImportSessionRepository(tmp_path)
    session = _committed_session()
    repository.save(session)

    assert repository.delete(session.session_id)
    assert not repository.delete(session.session_id)
    assert repository.get(session.session_id) is None


def test_corrupt_document_raises_value_error(tmp_path: Path) -> None:
    repository = FileImportSessionRepository(tmp_path)
    (tmp_path / "broken.json").write_text("{", encoding="utf-8")
    (tmp_path / "partial.json").write_text('{"sessionId": "partial"}', encoding="utf-8")

    with pytest.raises(ValueError, match="Corrupt import session document"):
        repository.get("broken")
    with pytest.raises(ValueError, match="Corrupt import session document"):
        repository.get("partial")
    assert repository.list_ids() == ["broken", "partial"]
