"""Issue records produced by row validation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING

from taxonomist.domain.model import Severity

if TYPE_CHECKING:
    from collections.abc import Iterable


class RuleType(StrEnum):
    REQUIRED = "required"
    FORMAT = "format"
    RELATIONSHIP = "relationship"
    UNIQUENESS = "uniqueness"
    CONSISTENCY = "consistency"


class IssueResolution(StrEnum):
    """How a critical issue stops blocking a commit."""

    AUTO_CREATE = "auto_create"
    OVERRIDDEN = "overridden"


@dataclass(frozen=True, slots=True, kw_only=True)
class Issue:
    row_index: int
    column_name: str
    severity: Severity
    message: str
    rule: RuleType
    current_value: str | None = None
    resolution: IssueResolution | None = None

    @property
    def row_number(self) -> int:
        """1-based row number as shown to operators."""
        return self.row_index + 1

    @property
    def is_blocking(self) -> bool:
        return self.severity is Severity.CRITICAL and self.resolution is None

    def resolve(self, resolution: IssueResolution) -> Issue:
        return replace(self, resolution=resolution)

    def to_dict(self) -> dict[str, object]:
        return {
            "rowIndex": self.row_index,
            "columnName": self.column_name,
            "severity": self.severity.value,
            "message": self.message,
            "currentValue": self.current_value,
            "rule": self.rule.value,
            "resolution": self.resolution.value if self.resolution is not None else None,
        }


@dataclass(frozen=True, slots=True)
class ValidationSummary:
    total_rows: int
    critical: int
    warning: int
    suggestion: int
    blocking: int
    rows_with_issues: int

    @property
    def can_import(self) -> bool:
        return self.blocking == 0

    @classmethod
    def from_issues(cls, issues: Iterable[Issue], *, total_rows: int) -> ValidationSummary:
        critical = warning = suggestion = blocking = 0
        rows: set[int] = set()
        for issue in issues:
            rows.add(issue.row_index)
            if issue.severity is Severity.CRITICAL:
                critical += 1
            elif issue.severity is Severity.WARNING:
                warning += 1
            else:
                suggestion += 1
            if issue.is_blocking:
                blocking += 1
        return cls(
            total_rows=total_rows,
            critical=critical,
            warning=warning,
            suggestion=suggestion,
            blocking=blocking,
            rows_with_issues=len(rows),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total_rows,
            "critical": self.critical,
            "warning": self.warning,
            "suggestion": self.suggestion,
            "blocking": self.blocking,
            "rowsWithIssues": self.rows_with_issues,
        }
