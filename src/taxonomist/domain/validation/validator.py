"""Record validation against a master data snapshot.

Validation is a pure function of (record, batch, context). The only rule that
needs the whole batch, uniqueness, reads an index built once per batch in
:meth:`ValidationBatch.from_records`; afterwards the batch is read-only, so
records can be validated in any order or in parallel.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import TYPE_CHECKING

from taxonomist.domain.model import Severity, normalize_name
from taxonomist.domain.validation.issues import Issue, RuleType, ValidationSummary
from taxonomist.domain.validation.rules import build_rules
from taxonomist.domain.validation.schema import RecordField

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from taxonomist.domain.master_data.snapshot import MasterDataSnapshot
    from taxonomist.domain.validation.rules import Rule
    from taxonomist.domain.validation.schema import InputRecord, RecordSchema

log = logging.getLogger(__name__)

type DuplicateKey = tuple[str, ...]


@dataclass(frozen=True, kw_only=True)
class ValidationContext:
    snapshot: MasterDataSnapshot
    business_unit: str
    schema: RecordSchema
    auto_create: bool = False

    @cached_property
    def _business_unit_categories(self) -> dict[str, str]:
        return {
            normalize_name(name): name
            for name in self.snapshot.categories_for_business_unit(self.business_unit)
        }

    def resolve_category(self, name: str) -> str | None:
        """Canonical category name if it exists within the declared business unit."""
        if not name:
            return None
        return self._business_unit_categories.get(normalize_name(name))

    @cached_property
    def rules(self) -> tuple[Rule, ...]:
        return build_rules(self.schema)


@dataclass(frozen=True, kw_only=True)
class ValidationBatch:
    records: tuple[InputRecord, ...]
    duplicate_index: Mapping[DuplicateKey, tuple[int, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    first_row_by_category: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    categories_with_brand_row: frozenset[str] = frozenset()
    key_fields: tuple[RecordField, ...] = ()

    @classmethod
    def from_records(
        cls,
        records: Sequence[InputRecord],
        *,
        schema: RecordSchema,
        business_unit: str,
    ) -> ValidationBatch:
        rows_by_key: defaultdict[DuplicateKey, list[int]] = defaultdict(list)
        first_row: dict[str, int] = {}
        brand_rows: set[str] = set()
        brand = normalize_name(business_unit)

        for record in records:
            key = _duplicate_key(record, schema.uniqueness_key)
            if key is not None:
                rows_by_key[key].append(record.row_index)
            category = normalize_name(record.category)
            if category:
                first_row.setdefault(category, record.row_index)
                if normalize_name(record.company) == brand:
                    brand_rows.add(category)

        duplicates = {key: tuple(rows) for key, rows in rows_by_key.items() if len(rows) > 1}
        return cls(
            records=tuple(records),
            duplicate_index=MappingProxyType(duplicates),
            first_row_by_category=MappingProxyType(first_row),
            categories_with_brand_row=frozenset(brand_rows),
            key_fields=schema.uniqueness_key,
        )

    def duplicates_of(self, record: InputRecord) -> tuple[int, ...]:
        key = _duplicate_key(record, self.key_fields)
        if key is None:
            return ()
        rows = self.duplicate_index.get(key, ())
        return tuple(index for index in rows if index != record.row_index)

    def is_first_row_of_category(self, record: InputRecord) -> bool:
        category = normalize_name(record.category)
        return self.first_row_by_category.get(category) == record.row_index

    def has_brand_row(self, category: str) -> bool:
        return normalize_name(category) in self.categories_with_brand_row


def _duplicate_key(record: InputRecord, fields: Sequence[RecordField]) -> DuplicateKey | None:
    if not fields:
        return None
    key = tuple(normalize_name(record.value(record_field)) for record_field in fields)
    if not any(key):
        return None
    return key


def validate_record(
    record: InputRecord,
    batch: ValidationBatch,
    context: ValidationContext,
) -> list[Issue]:
    issues: list[Issue] = []
    for rule in context.rules:
        try:
            issues.extend(rule.check(record, batch, context))
        except Exception as exc:
            log.exception(
                "Rule %s on %s failed for row %s",
                rule.rule_type,
                rule.column_name,
                record.row_index + 1,
            )
            issues.append(
                Issue(
                    row_index=record.row_index,
                    column_name=rule.column_name,
                    severity=Severity.CRITICAL,
                    rule=rule.rule_type,
                    message=f"Validation error: {exc}",
                )
            )
    return issues


@dataclass(frozen=True, slots=True)
class ValidationResult:
    issues: tuple[Issue, ...]
    summary: ValidationSummary

    @property
    def can_import(self) -> bool:
        return self.summary.can_import

    def issues_for_row(self, row_index: int) -> tuple[Issue, ...]:
        return tuple(issue for issue in self.issues if issue.row_index == row_index)

    def by_rule(self, rule: RuleType) -> tuple[Issue, ...]:
        return tuple(issue for issue in self.issues if issue.rule is rule)


def validate_batch(
    records: Sequence[InputRecord],
    context: ValidationContext,
    *,
    max_workers: int = 1,
) -> ValidationResult:
    """Validate every record; issues come back in row order whatever the worker count."""

    batch = ValidationBatch.from_records(
        records,
        schema=context.schema,
        business_unit=context.business_unit,
    )

    def run(record: InputRecord) -> list[Issue]:
        return validate_record(record, batch, context)

    per_record: Iterable[list[Issue]]
    if max_workers > 1 and len(records) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            per_record = list(executor.map(run, records))
    else:
        per_record = [run(record) for record in records]

    issues = tuple(issue for record_issues in per_record for issue in record_issues)
    summary = ValidationSummary.from_issues(issues, total_rows=len(records))
    log.info(
        "Validated %s rows for %s: critical=%s warning=%s suggestion=%s blocking=%s",
        summary.total_rows,
        context.business_unit,
        summary.critical,
        summary.warning,
        summary.suggestion,
        summary.blocking,
    )
    return ValidationResult(issues=issues, summary=summary)
