from __future__ import annotations

from typing import TYPE_CHECKING

from taxonomist.domain.model import Severity
from taxonomist.domain.validation import (
    MEDIA_SUFFICIENCY,
    Issue,
    IssueResolution,
    RuleType,
    ValidationContext,
    ValidationSummary,
    map_rows,
    validate_batch,
)
from taxonomist.domain.validation import validator as validator_module
from tests.helpers.master_data import make_snapshot, media_row

if TYPE_CHECKING:
    from collections.abc import Iterable

    import pytest

    from taxonomist.domain.validation import InputRecord, RecordSchema, ValidationBatch


def _context(*, auto_create: bool = False) -> ValidationContext:
    return ValidationContext(
        snapshot=make_snapshot(),
        business_unit="Derma",
        schema=MEDIA_SUFFICIENCY,
        auto_create=auto_create,
    )


def _mixed_rows(count: int) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for index in range(count):
        if index % 3 == 0:
            rows.append(media_row("Acne", "Dermopure", f"Campaign {index}"))
        elif index % 3 == 1:
            rows.append(media_row("Acne", "Dermopure", f"Promo {index}", budget=f"x{index}"))
        else:
            rows.append(media_row("Body Milk", f"Range {index}", ""))
    return rows


def test_parallel_validation_keeps_row_order() -> None:
    records = map_rows(_mixed_rows(30), MEDIA_SUFFICIENCY)

    sequential = validate_batch(records, _context())
    parallel = validate_batch(records, _context(), max_workers=4)

    assert parallel.issues == sequential.issues
    assert parallel.summary == sequential.summary
    rows = [issue.row_index for issue in parallel.issues]
    assert rows == sorted(rows)


def test_summary_counts_rows_and_severities() -> None:
    records = map_rows(_mixed_rows(6), MEDIA_SUFFICIENCY)

    result = validate_batch(records, _context(auto_create=True))

    assert result.summary.total_rows == 6
    assert result.summary.warning == 2
    assert result.summary.rows_with_issues == 6
    # rows 2 and 5 miss their campaign; unknown ranges and campaigns are auto-created
    assert result.summary.blocking == 2
    assert not result.can_import


class ExplodingRule:
    rule_type = RuleType.RELATIONSHIP
    column_name = "Range"

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]:
        _ = (batch, context)
        raise RuntimeError(f"lookup failed for {record.range_}")


def test_rule_failure_becomes_a_critical_issue(monkeypatch: pytest.MonkeyPatch) -> None:
    def exploding_rules(schema: RecordSchema) -> tuple[ExplodingRule]:
        _ = schema
        return (ExplodingRule(),)

    monkeypatch.setattr(validator_module, "build_rules", exploding_rules)
    records = map_rows([media_row("Acne", "Dermopure", "Clear Skin")], MEDIA_SUFFICIENCY)

    result = validate_batch(records, _context())

    (issue,) = result.issues
    assert issue.severity is Severity.CRITICAL
    assert issue.column_name == "Range"
    assert issue.message == "Validation error: lookup failed for Dermopure"
    assert not result.can_import


def test_issue_serialises_with_camel_case_keys() -> None:
    issue = Issue(
        row_index=2,
        column_name="Range",
        severity=Severity.CRITICAL,
        message="Range 'X' is not valid",
        rule=RuleType.RELATIONSHIP,
        current_value="X",
    ).resolve(IssueResolution.AUTO_CREATE)

    assert issue.row_number == 3
    assert not issue.is_blocking
    assert issue.to_dict() == {
        "rowIndex": 2,
        "columnName": "Range",
        "severity": "critical",
        "message": "Range 'X' is not valid",
        "currentValue": "X",
        "rule": "relationship",
        "resolution": "auto_create",
    }


def test_summary_serialises_counts() -> None:
    summary = ValidationSummary.from_issues([], total_rows=3)

    assert summary.can_import
    assert summary.to_dict() == {
        "total": 3,
        "critical": 0,
        "warning": 0,
        "suggestion": 0,
        "blocking": 0,
        "rowsWithIssues": 0,
    }
