"""Public domain model surface."""

from __future__ import annotations

from taxonomist.domain.model.entity import Entity, NamedEntity, new_id, normalize_name
from taxonomist.domain.model.enums import EntityStatus, EntityType, SessionStatus, Severity
from taxonomist.domain.model.provenance import (
    AUTO_CREATE_AUTHOR,
    Provenance,
    ProvenanceTrackedMixin,
)
from taxonomist.domain.model.records import SpendRecord
from taxonomist.domain.model.taxonomy import (
    BusinessUnit,
    Campaign,
    Category,
    InvalidStatusChangeError,
    Range,
    ReviewableEntity,
)

__all__ = [
    "AUTO_CREATE_AUTHOR",
    "BusinessUnit",
    "Campaign",
    "Category",
    "Entity",
    "EntityStatus",
    "EntityType",
    "InvalidStatusChangeError",
    "NamedEntity",
    "Provenance",
    "ProvenanceTrackedMixin",
    "Range",
    "ReviewableEntity",
    "SessionStatus",
    "Severity",
    "SpendRecord",
    "new_id",
    "normalize_name",
]
