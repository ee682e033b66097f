"""Row validation: schemas, rules and the batch validator."""

from __future__ import annotations

from .issues import Issue, IssueResolution, RuleType, ValidationSummary
from .rules import parse_number
from .schema import (
    MEDIA_SUFFICIENCY,
    SCHEMAS,
    SHARE_OF_VOICE_DIGITAL,
    SHARE_OF_VOICE_TV,
    InputRecord,
    RecordField,
    RecordSchema,
    UnknownSchemaError,
    get_schema,
    map_row,
    map_rows,
)
from .validator import (
    ValidationBatch,
    ValidationContext,
    ValidationResult,
    validate_batch,
    validate_record,
)

__all__ = [
    "MEDIA_SUFFICIENCY",
    "SCHEMAS",
    "SHARE_OF_VOICE_DIGITAL",
    "SHARE_OF_VOICE_TV",
    "InputRecord",
    "Issue",
    "IssueResolution",
    "RecordField",
    "RecordSchema",
    "RuleType",
    "UnknownSchemaError",
    "ValidationBatch",
    "ValidationContext",
    "ValidationResult",
    "ValidationSummary",
    "get_schema",
    "map_row",
    "map_rows",
    "parse_number",
    "validate_batch",
    "validate_record",
]
