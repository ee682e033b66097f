from __future__ import annotations

from datetime import timedelta

import pytest

from taxonomist.domain.imports import (
    CommitError,
    CommitProgress,
    CommitReport,
    ImportSession,
    InvalidTransitionError,
    UploadedFile,
)
from taxonomist.domain.model import EntityType, SessionStatus
from taxonomist.domain.reconciliation import CreatedNode
from taxonomist.domain.validation import ValidationSummary
from tests.helpers.master_data import FIXED_TIME


def _session() -> ImportSession:
    return ImportSession(
        business_unit="Derma",
        schema_name="media_sufficiency",
        file=UploadedFile(name="derma.json", size=120, uploaded_at=FIXED_TIME),
        records=[{"Category": "Acne"}],
        created_at=FIXED_TIME,
    )


def _summary(*, blocking: int = 0) -> ValidationSummary:
    return ValidationSummary(
        total_rows=1,
        critical=blocking,
        warning=0,
        suggestion=0,
        blocking=blocking,
        rows_with_issues=blocking,
    )


def _report() -> CommitReport:
    return CommitReport(imported=1, skipped=0, total=1)


def test_happy_path_transitions() -> None:
    session = _session()

    session.record_validation([], _summary())
    assert session.status is SessionStatus.VALIDATED
    assert session.can_commit

    session.record_review([], _summary(), reviewer="ana")
    assert session.status is SessionStatus.REVIEWED
    assert session.reviewed_by == "ana"

    session.record_commit(_report(), at=FIXED_TIME)
    assert session.status is SessionStatus.COMMITTED
    assert session.imported_records == 1
    assert session.imported_at == FIXED_TIME


def test_committed_session_may_be_committed_again() -> None:
    session = _session()
    session.record_validation([], _summary())
    session.record_commit(_report(), at=FIXED_TIME)

    session.record_commit(_report(), at=FIXED_TIME + timedelta(minutes=5))

    assert session.status is SessionStatus.COMMITTED
    with pytest.raises(InvalidTransitionError):
        session.record_validation([], _summary())


def test_upload_cannot_skip_validation() -> None:
    session = _session()

    with pytest.raises(InvalidTransitionError) as excinfo:
        session.record_commit(_report(), at=FIXED_TIME)

    assert excinfo.value.current is SessionStatus.UPLOADED
    assert excinfo.value.requested is SessionStatus.COMMITTED
    assert not session.can_commit


def test_failed_is_terminal() -> None:
    session = _session()
    session.record_failure("Store unavailable: disk full")

    for status in SessionStatus:
        with pytest.raises(InvalidTransitionError):
            session.transition(status)
    assert session.failure_reason == "Store unavailable: disk full"


def test_blocking_issues_prevent_commit() -> None:
    session = _session()

    session.record_validation([], _summary(blocking=2))

    assert not session.can_import
    assert not session.can_commit


def test_touch_slides_expiry() -> None:
    session = _session()
    session.touch(FIXED_TIME, timedelta(hours=6))

    assert not session.is_expired(FIXED_TIME + timedelta(hours=6))
    assert session.is_expired(FIXED_TIME + timedelta(hours=6, seconds=1))

    session.touch(FIXED_TIME + timedelta(hours=5), timedelta(hours=6))
    assert not session.is_expired(FIXED_TIME + timedelta(hours=10))


def test_progress_percentage() -> None:
    assert CommitProgress(total=8, processed=2).percentage == 25
    assert CommitProgress(total=3, processed=3).percentage == 100
    assert CommitProgress(total=0).percentage == 0
    assert CommitProgress(total=0, finished=True).percentage == 100


def test_commit_report_serialises_errors_and_created_nodes() -> None:
    report = CommitReport(
        imported=1,
        skipped=1,
        total=2,
        errors=(CommitError(row=2, field="Range", reason="Unknown range 'X'"),),
        created=(
            CreatedNode(
                entity_type=EntityType.CAMPAIGN,
                name="Triple Effect",
                session_id="s-1",
                parent="Dermopure RL",
            ),
        ),
    )

    assert report.created_count == 1
    assert report.to_dict() == {
        "imported": 1,
        "skipped": 1,
        "total": 2,
        "errors": [{"row": 2, "field": "Range", "reason": "Unknown range 'X'"}],
        "created": [
            {
                "type": "campaign",
                "name": "Triple Effect",
                "sessionId": "s-1",
                "parent": "Dermopure RL",
            }
        ],
    }
