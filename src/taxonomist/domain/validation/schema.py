"""Explicit row schemas and the mapping step from raw upload rows.

Uploads arrive as string-keyed mappings with spreadsheet headers. ``map_row``
turns each into an :class:`InputRecord` so rules never read arbitrary
columns; headers are matched exactly first, then ignoring case and
surrounding whitespace.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING

from taxonomist.domain.model import normalize_name

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class RecordField(StrEnum):
    CATEGORY = "category"
    COMPANY = "company"
    RANGE = "range"
    CAMPAIGN = "campaign"


class UnknownSchemaError(LookupError):
    def __init__(self, name: str) -> None:
        self.name = name
        known = ", ".join(sorted(SCHEMAS))
        super().__init__(f"Unknown record schema {name!r} (known: {known})")


@dataclass(frozen=True, slots=True, kw_only=True)
class RecordSchema:
    name: str
    columns: Mapping[RecordField, str]
    required: tuple[RecordField, ...]
    uniqueness_key: tuple[RecordField, ...]
    metric_columns: tuple[str, ...] = ()
    brand_presence: bool = False
    company_convention: bool = False

    def has(self, record_field: RecordField) -> bool:
        return record_field in self.columns

    def column(self, record_field: RecordField) -> str:
        return self.columns[record_field]

    @property
    def uniqueness_label(self) -> str:
        return " + ".join(self.column(record_field) for record_field in self.uniqueness_key)


@dataclass(frozen=True, slots=True, kw_only=True)
class InputRecord:
    row_index: int
    values: Mapping[RecordField, str] = field(default_factory=dict[RecordField, str])
    metrics: Mapping[str, str] = field(default_factory=dict[str, str])
    extra: Mapping[str, str] = field(default_factory=dict[str, str])

    def value(self, record_field: RecordField) -> str:
        return self.values.get(record_field, "")

    @property
    def category(self) -> str:
        return self.value(RecordField.CATEGORY)

    @property
    def company(self) -> str:
        return self.value(RecordField.COMPANY)

    @property
    def range_(self) -> str:
        return self.value(RecordField.RANGE)

    @property
    def campaign(self) -> str:
        return self.value(RecordField.CAMPAIGN)


def _cell(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def map_row(raw: Mapping[str, object], schema: RecordSchema, *, row_index: int) -> InputRecord:
    by_header = {normalize_name(header): header for header in raw}

    def lookup(column: str) -> tuple[str | None, str]:
        if column in raw:
            return column, _cell(raw[column])
        header = by_header.get(normalize_name(column))
        if header is None:
            return None, ""
        return header, _cell(raw[header])

    consumed: set[str] = set()
    values: dict[RecordField, str] = {}
    for record_field, column in schema.columns.items():
        header, value = lookup(column)
        if header is not None:
            consumed.add(header)
        values[record_field] = value

    metrics: dict[str, str] = {}
    for column in schema.metric_columns:
        header, value = lookup(column)
        if header is not None:
            consumed.add(header)
        metrics[column] = value

    extra = {header: _cell(value) for header, value in raw.items() if header not in consumed}
    return InputRecord(
        row_index=row_index,
        values=MappingProxyType(values),
        metrics=MappingProxyType(metrics),
        extra=MappingProxyType(extra),
    )


def map_rows(rows: Sequence[Mapping[str, object]], schema: RecordSchema) -> list[InputRecord]:
    return [map_row(raw, schema, row_index=index) for index, raw in enumerate(rows)]


_SHARE_OF_VOICE_COLUMNS = MappingProxyType(
    {RecordField.CATEGORY: "Category", RecordField.COMPANY: "Company"}
)
_MEDIA_COLUMNS = MappingProxyType(
    {
        RecordField.CATEGORY: "Category",
        RecordField.RANGE: "Range",
        RecordField.CAMPAIGN: "Campaign",
    }
)

SHARE_OF_VOICE_TV = RecordSchema(
    name="share_of_voice_tv",
    columns=_SHARE_OF_VOICE_COLUMNS,
    required=(RecordField.CATEGORY, RecordField.COMPANY),
    uniqueness_key=(RecordField.CATEGORY, RecordField.COMPANY),
    metric_columns=("Total TV Investment", "Total TV TRPs"),
    brand_presence=True,
    company_convention=True,
)

SHARE_OF_VOICE_DIGITAL = RecordSchema(
    name="share_of_voice_digital",
    columns=_SHARE_OF_VOICE_COLUMNS,
    required=(RecordField.CATEGORY, RecordField.COMPANY),
    uniqueness_key=(RecordField.CATEGORY, RecordField.COMPANY),
    metric_columns=("Total Digital Spend", "Total Digital Impressions"),
    brand_presence=True,
    company_convention=True,
)

MEDIA_SUFFICIENCY = RecordSchema(
    name="media_sufficiency",
    columns=_MEDIA_COLUMNS,
    required=(RecordField.CATEGORY, RecordField.RANGE, RecordField.CAMPAIGN),
    uniqueness_key=(RecordField.CATEGORY, RecordField.RANGE, RecordField.CAMPAIGN),
    metric_columns=(
        "Total Budget",
        "Total TRPs",
        "Total R1+ (%)",
        "Total R3+ (%)",
        "Total WOA",
        "Total WOFF",
    ),
)

SCHEMAS: Mapping[str, RecordSchema] = MappingProxyType(
    {
        schema.name: schema
        for schema in (SHARE_OF_VOICE_TV, SHARE_OF_VOICE_DIGITAL, MEDIA_SUFFICIENCY)
    }
)


def get_schema(name: str) -> RecordSchema:
    try:
        return SCHEMAS[name]
    except KeyError as exc:
        raise UnknownSchemaError(name) from exc
