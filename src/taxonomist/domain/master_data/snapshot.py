"""Immutable, versioned view of the taxonomy used as validation context.

A snapshot stores names, not entities. Every relational projection is kept as
it was produced (forward and reverse maps are separate) so the consistency
checker can detect drift between them; lookups are case-insensitive and skip
archived nodes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from functools import cached_property
from types import MappingProxyType
from typing import TYPE_CHECKING

from taxonomist.domain.model import EntityStatus, EntityType, normalize_name

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from taxonomist.domain.model import Provenance


def freeze_links(links: Mapping[str, Iterable[str]]) -> Mapping[str, frozenset[str]]:
    return MappingProxyType({key: frozenset(values) for key, values in links.items()})


def freeze_map[TValue](values: Mapping[str, TValue]) -> Mapping[str, TValue]:
    return MappingProxyType(dict(values))


def _empty_links() -> Mapping[str, frozenset[str]]:
    return MappingProxyType({})


def _empty_names() -> Mapping[str, str]:
    return MappingProxyType({})


def _empty_nodes() -> Mapping[str, TaxonomyNode]:
    return MappingProxyType({})


class MalformedSnapshotError(ValueError):
    """Raised when a master data document cannot be turned into a snapshot."""


@dataclass(frozen=True, slots=True, kw_only=True)
class TaxonomyNode:
    """Lifecycle metadata for a range or campaign."""

    name: str
    status: EntityStatus = EntityStatus.ACTIVE
    provenance: Provenance | None = None


@dataclass(frozen=True, eq=False, kw_only=True)
class MasterDataSnapshot:
    version: int = 0
    categories: tuple[str, ...] = ()
    ranges: tuple[str, ...] = ()
    campaigns: tuple[str, ...] = ()
    category_to_ranges: Mapping[str, frozenset[str]] = field(default_factory=_empty_links)
    range_to_categories: Mapping[str, frozenset[str]] = field(default_factory=_empty_links)
    range_to_campaigns: Mapping[str, frozenset[str]] = field(default_factory=_empty_links)
    campaign_to_range: Mapping[str, str] = field(default_factory=_empty_names)
    category_to_business_unit: Mapping[str, str] = field(default_factory=_empty_names)
    business_unit_rosters: Mapping[str, frozenset[str]] = field(default_factory=_empty_links)
    campaign_compatibility: Mapping[str, frozenset[str]] = field(default_factory=_empty_links)
    range_nodes: Mapping[str, TaxonomyNode] = field(default_factory=_empty_nodes)
    campaign_nodes: Mapping[str, TaxonomyNode] = field(default_factory=_empty_nodes)

    def with_version(self, version: int) -> MasterDataSnapshot:
        return replace(self, version=version)

    def same_content(self, other: MasterDataSnapshot) -> bool:
        """Compare everything except the version number."""
        return (
            set(self.categories) == set(other.categories)
            and set(self.ranges) == set(other.ranges)
            and set(self.campaigns) == set(other.campaigns)
            and dict(self.category_to_ranges) == dict(other.category_to_ranges)
            and dict(self.range_to_categories) == dict(other.range_to_categories)
            and dict(self.range_to_campaigns) == dict(other.range_to_campaigns)
            and dict(self.campaign_to_range) == dict(other.campaign_to_range)
            and dict(self.category_to_business_unit) == dict(other.category_to_business_unit)
            and dict(self.business_unit_rosters) == dict(other.business_unit_rosters)
            and dict(self.campaign_compatibility) == dict(other.campaign_compatibility)
            and dict(self.range_nodes) == dict(other.range_nodes)
            and dict(self.campaign_nodes) == dict(other.campaign_nodes)
        )

    # Name universes -----------------------------------------------------------

    @cached_property
    def all_category_names(self) -> frozenset[str]:
        names = set(self.categories)
        names.update(self.category_to_ranges)
        names.update(self.category_to_business_unit)
        for members in self.range_to_categories.values():
            names.update(members)
        for members in self.business_unit_rosters.values():
            names.update(members)
        return frozenset(names)

    @cached_property
    def all_range_names(self) -> frozenset[str]:
        names = set(self.ranges)
        names.update(self.range_to_categories)
        names.update(self.range_to_campaigns)
        names.update(self.range_nodes)
        for members in self.category_to_ranges.values():
            names.update(members)
        names.update(self.campaign_to_range.values())
        return frozenset(names)

    @cached_property
    def all_campaign_names(self) -> frozenset[str]:
        names = set(self.campaigns)
        names.update(self.campaign_to_range)
        names.update(self.campaign_nodes)
        for members in self.range_to_campaigns.values():
            names.update(members)
        return frozenset(names)

    @cached_property
    def business_units(self) -> tuple[str, ...]:
        names = set(self.category_to_business_unit.values())
        names.update(self.business_unit_rosters)
        return tuple(sorted(names, key=normalize_name))

    # Case-insensitive indexes -------------------------------------------------

    @cached_property
    def _category_index(self) -> dict[str, str]:
        return _index(self.all_category_names)

    @cached_property
    def _range_index(self) -> dict[str, str]:
        live = (name for name in self.all_range_names if self.is_live(EntityType.RANGE, name))
        return _index(live)

    @cached_property
    def _campaign_index(self) -> dict[str, str]:
        live = (
            name
            for name in self.all_campaign_names
            if self.is_live(EntityType.CAMPAIGN, name)
        )
        return _index(live)

    @cached_property
    def _business_unit_index(self) -> dict[str, str]:
        return _index(self.business_units)

    def find_category(self, name: str) -> str | None:
        return self._category_index.get(normalize_name(name))

    def find_range(self, name: str) -> str | None:
        return self._range_index.get(normalize_name(name))

    def find_campaign(self, name: str) -> str | None:
        return self._campaign_index.get(normalize_name(name))

    def find_business_unit(self, name: str) -> str | None:
        return self._business_unit_index.get(normalize_name(name))

    def exists_anywhere(self, entity_type: EntityType, name: str) -> bool:
        """True if the name is known in any status, archived included."""
        key = normalize_name(name)
        universe = {
            EntityType.CATEGORY: self.all_category_names,
            EntityType.RANGE: self.all_range_names,
            EntityType.CAMPAIGN: self.all_campaign_names,
            EntityType.BUSINESS_UNIT: frozenset(self.business_units),
        }[entity_type]
        return any(normalize_name(candidate) == key for candidate in universe)

    def node(self, entity_type: EntityType, name: str) -> TaxonomyNode:
        nodes = self.range_nodes if entity_type is EntityType.RANGE else self.campaign_nodes
        return nodes.get(name) or TaxonomyNode(name=name)

    def is_live(self, entity_type: EntityType, name: str) -> bool:
        if entity_type not in (EntityType.RANGE, EntityType.CAMPAIGN):
            return True
        return self.node(entity_type, name).status is not EntityStatus.ARCHIVED

    # Relationship lookups -------------------------------------------------------

    def ranges_of(self, category: str) -> frozenset[str]:
        resolved = self.find_category(category)
        if resolved is None:
            return frozenset()
        return self._live(EntityType.RANGE, self.category_to_ranges.get(resolved, frozenset()))

    def categories_of(self, range_: str) -> frozenset[str]:
        resolved = self.find_range(range_)
        if resolved is None:
            return frozenset()
        return self.range_to_categories.get(resolved, frozenset())

    def campaigns_of(self, range_: str) -> frozenset[str]:
        resolved = self.find_range(range_)
        if resolved is None:
            return frozenset()
        return self._live(EntityType.CAMPAIGN, self.range_to_campaigns.get(resolved, frozenset()))

    def range_of(self, campaign: str) -> str | None:
        resolved = self.find_campaign(campaign)
        if resolved is None:
            return None
        return self.campaign_to_range.get(resolved)

    def compatible_ranges(self, campaign: str) -> frozenset[str]:
        """Ranges a campaign may be reported under (owning range plus compatibility)."""
        resolved = self.find_campaign(campaign)
        if resolved is None:
            return frozenset()
        ranges = set(self.campaign_compatibility.get(resolved, frozenset()))
        owner = self.campaign_to_range.get(resolved)
        if owner is not None:
            ranges.add(owner)
        return frozenset(ranges)

    def resolve_business_unit(
        self,
        name: str,
        entity_type: EntityType | None = None,
    ) -> str | None:
        """Return the business unit owning a category, range or campaign.

        Without ``entity_type`` the name is tried as a category, then a range,
        then a campaign. A range spanning categories of several business units
        resolves to ``None`` (unknown).
        """

        if entity_type in (None, EntityType.CATEGORY):
            category = self.find_category(name)
            if category is not None:
                return self.category_to_business_unit.get(category)
            if entity_type is EntityType.CATEGORY:
                return None
        if entity_type in (None, EntityType.RANGE):
            range_ = self.find_range(name)
            if range_ is not None:
                return self._business_unit_of_range(range_)
            if entity_type is EntityType.RANGE:
                return None
        if entity_type in (None, EntityType.CAMPAIGN):
            owner = self.range_of(name)
            if owner is not None:
                return self._business_unit_of_range(owner)
        return None

    def _business_unit_of_range(self, range_: str) -> str | None:
        units = {
            unit
            for category in self.range_to_categories.get(range_, frozenset())
            if (unit := self.category_to_business_unit.get(category)) is not None
        }
        if len(units) == 1:
            return next(iter(units))
        return None

    # Business-unit filters ------------------------------------------------------

    def categories_for_business_unit(self, business_unit: str) -> tuple[str, ...]:
        key = normalize_name(business_unit)
        names = {
            category
            for category, unit in self.category_to_business_unit.items()
            if normalize_name(unit) == key
        }
        for unit, members in self.business_unit_rosters.items():
            if normalize_name(unit) == key:
                names.update(members)
        return tuple(sorted(names, key=normalize_name))

    def ranges_for_business_unit(self, business_unit: str) -> tuple[str, ...]:
        names: set[str] = set()
        for category in self.categories_for_business_unit(business_unit):
            names.update(self.ranges_of(category))
        return tuple(sorted(names, key=normalize_name))

    def ranges_for_category(self, category: str) -> tuple[str, ...]:
        return tuple(sorted(self.ranges_of(category), key=normalize_name))

    def campaigns_for_business_unit(self, business_unit: str) -> tuple[str, ...]:
        names: set[str] = set()
        for range_ in self.ranges_for_business_unit(business_unit):
            names.update(self.campaigns_of(range_))
        return tuple(sorted(names, key=normalize_name))

    def _live(self, entity_type: EntityType, names: frozenset[str]) -> frozenset[str]:
        return frozenset(name for name in names if self.is_live(entity_type, name))


def _index(names: Iterable[str]) -> dict[str, str]:
    index: dict[str, str] = {}
    for name in sorted(names):
        index.setdefault(normalize_name(name), name)
    return index


EMPTY_SNAPSHOT = MasterDataSnapshot()
