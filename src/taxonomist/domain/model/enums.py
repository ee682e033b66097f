"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityType(StrEnum):
    """Typed-reference discriminator for taxonomy nodes and committed rows."""

    BUSINESS_UNIT = "business_unit"
    CATEGORY = "category"
    RANGE = "range"
    CAMPAIGN = "campaign"

    SPEND_RECORD = "spend_record"


class EntityStatus(StrEnum):
    ACTIVE = "active"
    PENDING_REVIEW = "pending_review"
    ARCHIVED = "archived"


class Severity(StrEnum):
    """Issue severity shared by record validation and graph consistency checks."""

    CRITICAL = "critical"
    WARNING = "warning"
    SUGGESTION = "suggestion"


class SessionStatus(StrEnum):
    UPLOADED = "uploaded"
    VALIDATED = "validated"
    REVIEWED = "reviewed"
    COMMITTED = "committed"
    FAILED = "failed"
