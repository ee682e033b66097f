"""Taxonomy entities: business unit -> category <-> range -> campaign.

Category and Range are linked many-to-many; both sides hold the edge and the
link helpers keep the two projections identical. Relationship collections are
private lists exposed as tuples. When the SQLAlchemy mappers are active the
ORM mirrors one side of a link onto the other, so every helper appends only
when the member is still missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from taxonomist.domain.model.entity import NamedEntity
from taxonomist.domain.model.enums import EntityStatus, EntityType
from taxonomist.domain.model.provenance import ProvenanceTrackedMixin


class InvalidStatusChangeError(ValueError):
    """Raised when an administrative status change is not allowed."""

    def __init__(
        self,
        *,
        entity_type: EntityType,
        name: str,
        current: EntityStatus,
        requested: EntityStatus,
    ) -> None:
        self.entity_type = entity_type
        self.name = name
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot change {entity_type} {name!r} from {current} to {requested}"
        )


@dataclass(eq=False, kw_only=True)
class BusinessUnit(NamedEntity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.BUSINESS_UNIT

    _categories: list[Category] = field(default_factory=list["Category"], repr=False)

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(self._categories)


@dataclass(eq=False, kw_only=True)
class ReviewableEntity(NamedEntity, ProvenanceTrackedMixin):
    """Node that may be auto-created and later promoted or archived."""

    status: EntityStatus = EntityStatus.ACTIVE

    @property
    def is_live(self) -> bool:
        return self.status is not EntityStatus.ARCHIVED

    def change_status(self, status: EntityStatus) -> bool:
        """Apply an administrative status change; returns False when nothing changed."""
        if status == self.status:
            return False
        if self.status is EntityStatus.ARCHIVED and status is EntityStatus.PENDING_REVIEW:
            raise InvalidStatusChangeError(
                entity_type=self.ENTITY_TYPE,
                name=self.name,
                current=self.status,
                requested=status,
            )
        self.status = status
        return True


@dataclass(eq=False, kw_only=True)
class Category(NamedEntity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.CATEGORY

    _business_unit: BusinessUnit | None = field(default=None, init=False, repr=False)
    _ranges: list[Range] = field(default_factory=list["Range"], repr=False)

    @property
    def business_unit(self) -> BusinessUnit | None:
        return self._business_unit

    @property
    def ranges(self) -> tuple[Range, ...]:
        return tuple(self._ranges)

    def assign_business_unit(self, business_unit: BusinessUnit) -> None:
        previous = self._business_unit
        if previous is business_unit:
            return
        self._business_unit = business_unit
        if previous is not None and self in previous._categories:  # noqa: SLF001
            previous._categories.remove(self)  # noqa: SLF001
        if self not in business_unit._categories:  # noqa: SLF001
            business_unit._categories.append(self)  # noqa: SLF001

    def link_range(self, range_: Range) -> bool:
        """Link both projections of the edge; returns True when the edge is new."""
        created = False
        if range_ not in self._ranges:
            self._ranges.append(range_)
            created = True
        if self not in range_._categories:  # noqa: SLF001
            range_._categories.append(self)  # noqa: SLF001
            created = True
        return created

    def unlink_range(self, range_: Range) -> bool:
        removed = False
        if range_ in self._ranges:
            self._ranges.remove(range_)
            removed = True
        if self in range_._categories:  # noqa: SLF001
            range_._categories.remove(self)  # noqa: SLF001
            removed = True
        return removed


@dataclass(eq=False, kw_only=True)
class Range(ReviewableEntity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.RANGE

    _categories: list[Category] = field(default_factory=list["Category"], repr=False)
    _campaigns: list[Campaign] = field(default_factory=list["Campaign"], repr=False)

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(self._categories)

    @property
    def campaigns(self) -> tuple[Campaign, ...]:
        return tuple(self._campaigns)


@dataclass(eq=False, kw_only=True)
class Campaign(ReviewableEntity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.CAMPAIGN

    _range: Range | None = field(default=None, init=False, repr=False)

    @property
    def range(self) -> Range | None:
        return self._range

    def assign_range(self, range_: Range | None) -> None:
        previous = self._range
        if previous is range_:
            return
        self._range = range_
        if previous is not None and self in previous._campaigns:  # noqa: SLF001
            previous._campaigns.remove(self)  # noqa: SLF001
        if range_ is not None and self not in range_._campaigns:  # noqa: SLF001
            range_._campaigns.append(self)  # noqa: SLF001
