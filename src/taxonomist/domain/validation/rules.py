"""Row rules.

Each rule is a small object with a ``check`` method returning the issues for
one record. Rules only read the record, the precomputed batch index and the
snapshot held by the validation context, which keeps them deterministic and
safe to evaluate from several threads at once.
"""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING, Final, Protocol

from taxonomist.domain.model import Severity, normalize_name
from taxonomist.domain.validation.issues import Issue, IssueResolution, RuleType
from taxonomist.domain.validation.schema import RecordField

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from taxonomist.domain.validation.schema import InputRecord, RecordSchema
    from taxonomist.domain.validation.validator import ValidationBatch, ValidationContext

MAX_LISTED_CAMPAIGNS: Final[int] = 5
_COMPETITOR_PATTERN: Final[re.Pattern[str]] = re.compile(r"^Competitor\s*[1-5]$", re.IGNORECASE)


def parse_number(raw: str) -> float | None:
    """Parse a spreadsheet number; empty and ``-`` mean "no value".

    Thousands separators are stripped. Raises ``ValueError`` for anything else
    that is not a finite number.
    """

    text = raw.strip()
    if text in ("", "-"):
        return None
    value = float(text.replace(",", ""))
    if not math.isfinite(value):
        raise ValueError(f"not a finite number: {raw!r}")
    return value


def _listing(names: Sequence[str], *, limit: int | None = None) -> str:
    if not names:
        return "none"
    shown = list(names if limit is None else names[:limit])
    text = ", ".join(shown)
    if limit is not None and len(names) > limit:
        text += ", ..."
    return text


class Rule(Protocol):
    rule_type: RuleType
    column_name: str

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]: ...


class RequiredRule:
    rule_type = RuleType.REQUIRED

    def __init__(self, record_field: RecordField, column_name: str) -> None:
        self.record_field = record_field
        self.column_name = column_name

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]:
        _ = (batch, context)
        value = record.value(self.record_field)
        if value.strip():
            return ()
        return (
            Issue(
                row_index=record.row_index,
                column_name=self.column_name,
                severity=Severity.CRITICAL,
                rule=self.rule_type,
                message=f"{self.column_name} is required",
                current_value=value,
            ),
        )


class NumericFormatRule:
    rule_type = RuleType.FORMAT

    def __init__(self, column_name: str) -> None:
        self.column_name = column_name

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]:
        _ = (batch, context)
        value = record.metrics.get(self.column_name, "")
        try:
            parse_number(value)
        except ValueError:
            return (
                Issue(
                    row_index=record.row_index,
                    column_name=self.column_name,
                    severity=Severity.WARNING,
                    rule=self.rule_type,
                    message=f"{self.column_name} must be a number (got {value!r})",
                    current_value=value,
                ),
            )
        return ()


class CategoryRelationshipRule:
    rule_type = RuleType.RELATIONSHIP

    def __init__(self, column_name: str) -> None:
        self.column_name = column_name

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]:
        _ = batch
        value = record.category
        if not value:
            return ()
        if context.resolve_category(value) is not None:
            return ()
        valid = context.snapshot.categories_for_business_unit(context.business_unit)
        return (
            Issue(
                row_index=record.row_index,
                column_name=self.column_name,
                severity=Severity.CRITICAL,
                rule=self.rule_type,
                message=(
                    f"Category '{value}' is not valid for {context.business_unit} business unit. "
                    f"Valid categories: {_listing(valid)}"
                ),
                current_value=value,
            ),
        )


class RangeRelationshipRule:
    rule_type = RuleType.RELATIONSHIP

    def __init__(self, column_name: str) -> None:
        self.column_name = column_name

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]:
        _ = batch
        value = record.range_
        if not value:
            return ()
        snapshot = context.snapshot
        category = context.resolve_category(record.category)
        resolved = snapshot.find_range(value)

        if resolved is None:
            valid = (
                sorted(snapshot.ranges_of(category), key=normalize_name)
                if category is not None
                else list(snapshot.ranges_for_business_unit(context.business_unit))
            )
            message = (
                f"Range '{value}' is not valid for {context.business_unit} business unit. "
                f"Valid ranges: {_listing(valid)}"
            )
            return (self._issue(record, value, message, auto_creatable=True, context=context),)

        if resolved not in snapshot.ranges_for_business_unit(context.business_unit):
            valid = snapshot.ranges_for_business_unit(context.business_unit)
            message = (
                f"Range '{value}' is not valid for {context.business_unit} business unit. "
                f"Valid ranges: {_listing(valid)}"
            )
            return (self._issue(record, value, message, auto_creatable=False, context=context),)

        if category is not None and resolved not in snapshot.ranges_of(category):
            valid = sorted(snapshot.ranges_of(category), key=normalize_name)
            message = (
                f"Range '{value}' is not valid for Category '{category}'. "
                f"Valid ranges: {_listing(valid)}"
            )
            return (self._issue(record, value, message, auto_creatable=False, context=context),)
        return ()

    def _issue(
        self,
        record: InputRecord,
        value: str,
        message: str,
        *,
        auto_creatable: bool,
        context: ValidationContext,
    ) -> Issue:
        resolution = IssueResolution.AUTO_CREATE if auto_creatable and context.auto_create else None
        if resolution is not None:
            message += ". Range will be auto-created for review"
        return Issue(
            row_index=record.row_index,
            column_name=self.column_name,
            severity=Severity.CRITICAL,
            rule=self.rule_type,
            message=message,
            current_value=value,
            resolution=resolution,
        )


class CampaignRelationshipRule:
    rule_type = RuleType.RELATIONSHIP

    def __init__(self, column_name: str) -> None:
        self.column_name = column_name

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]:
        _ = batch
        value = record.campaign
        if not value:
            return ()
        snapshot = context.snapshot
        range_ = snapshot.find_range(record.range_) if record.range_ else None
        resolved = snapshot.find_campaign(value)

        if resolved is None:
            valid = (
                sorted(snapshot.campaigns_of(range_), key=normalize_name)
                if range_ is not None
                else list(snapshot.campaigns_for_business_unit(context.business_unit))
            )
            message = (
                f"Campaign '{value}' is not valid for {context.business_unit} business unit. "
                f"Valid campaigns: {_listing(valid, limit=MAX_LISTED_CAMPAIGNS)}"
            )
            resolution = IssueResolution.AUTO_CREATE if context.auto_create else None
            if resolution is not None:
                message += ". Campaign will be auto-created for review"
            return (
                Issue(
                    row_index=record.row_index,
                    column_name=self.column_name,
                    severity=Severity.CRITICAL,
                    rule=self.rule_type,
                    message=message,
                    current_value=value,
                    resolution=resolution,
                ),
            )

        compatible = snapshot.compatible_ranges(resolved)
        if not compatible or not record.range_:
            return ()
        if range_ is not None and range_ in compatible:
            return ()
        valid = sorted(snapshot.campaigns_of(range_), key=normalize_name) if range_ else []
        return (
            Issue(
                row_index=record.row_index,
                column_name=self.column_name,
                severity=Severity.CRITICAL,
                rule=self.rule_type,
                message=(
                    f"Campaign '{value}' is not valid for Range '{record.range_}'. "
                    f"Valid campaigns: {_listing(valid, limit=MAX_LISTED_CAMPAIGNS)}"
                ),
                current_value=value,
            ),
        )


class UniquenessRule:
    rule_type = RuleType.UNIQUENESS

    def __init__(self, schema: RecordSchema) -> None:
        self.schema = schema
        self.column_name = schema.uniqueness_label

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]:
        _ = context
        others = batch.duplicates_of(record)
        if not others:
            return ()
        columns = [self.schema.column(record_field) for record_field in self.schema.uniqueness_key]
        rows = ", ".join(str(index + 1) for index in others)
        return (
            Issue(
                row_index=record.row_index,
                column_name=self.column_name,
                severity=Severity.CRITICAL,
                rule=self.rule_type,
                message=(
                    f"Duplicate combination: same {' and '.join(columns)} combination already "
                    f"exists in this upload. Found duplicates at rows: {rows}"
                ),
                current_value=" + ".join(
                    record.value(record_field) for record_field in self.schema.uniqueness_key
                ),
            ),
        )


class BrandPresenceRule:
    """Every category in a share-of-voice upload needs a row for the declared unit itself."""

    rule_type = RuleType.CONSISTENCY

    def __init__(self, column_name: str) -> None:
        self.column_name = column_name

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]:
        category = record.category
        if not category or not batch.is_first_row_of_category(record):
            return ()
        if batch.has_brand_row(category):
            return ()
        return (
            Issue(
                row_index=record.row_index,
                column_name=self.column_name,
                severity=Severity.CRITICAL,
                rule=self.rule_type,
                message=(
                    f"Category '{category}' has no {context.business_unit} entry; each category "
                    f"must include a row where Company is {context.business_unit}"
                ),
                current_value=category,
            ),
        )


class CompanyConventionRule:
    rule_type = RuleType.FORMAT

    def __init__(self, column_name: str) -> None:
        self.column_name = column_name

    def check(
        self,
        record: InputRecord,
        batch: ValidationBatch,
        context: ValidationContext,
    ) -> Iterable[Issue]:
        _ = batch
        company = record.company
        if not company:
            return ()
        if context.snapshot.find_business_unit(company) is not None:
            return ()
        if normalize_name(company) == normalize_name(context.business_unit):
            return ()
        if _COMPETITOR_PATTERN.match(company):
            return ()
        return (
            Issue(
                row_index=record.row_index,
                column_name=self.column_name,
                severity=Severity.SUGGESTION,
                rule=self.rule_type,
                message=(
                    f"Company '{company}' does not follow the naming convention: use "
                    f"{context.business_unit} or Competitor 1-5"
                ),
                current_value=company,
            ),
        )


def build_rules(schema: RecordSchema) -> tuple[Rule, ...]:
    rules: list[Rule] = [
        RequiredRule(record_field, schema.column(record_field)) for record_field in schema.required
    ]
    rules.extend(NumericFormatRule(column) for column in schema.metric_columns)
    if schema.has(RecordField.CATEGORY):
        rules.append(CategoryRelationshipRule(schema.column(RecordField.CATEGORY)))
    if schema.has(RecordField.RANGE):
        rules.append(RangeRelationshipRule(schema.column(RecordField.RANGE)))
    if schema.has(RecordField.CAMPAIGN):
        rules.append(CampaignRelationshipRule(schema.column(RecordField.CAMPAIGN)))
    if schema.uniqueness_key:
        rules.append(UniquenessRule(schema))
    if schema.brand_presence and schema.has(RecordField.COMPANY):
        rules.append(BrandPresenceRule(schema.column(RecordField.CATEGORY)))
    if schema.company_convention and schema.has(RecordField.COMPANY):
        rules.append(CompanyConventionRule(schema.column(RecordField.COMPANY)))
    return tuple(rules)
