"""Committed spend rows written by the import pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from taxonomist.domain.model.entity import Entity
from taxonomist.domain.model.enums import EntityType

if TYPE_CHECKING:
    from taxonomist.domain.model.taxonomy import Campaign, Category, Range


@dataclass(eq=False, kw_only=True)
class SpendRecord(Entity):
    """One imported row, keyed by the session that produced it and its row number."""

    ENTITY_TYPE: ClassVar[EntityType] = EntityType.SPEND_RECORD

    session_id: str
    row_number: int
    business_unit: str
    category: Category
    range_: Range | None = None
    campaign: Campaign | None = None
    company: str | None = None
    metrics: dict[str, float | None] = field(default_factory=dict[str, "float | None"])
