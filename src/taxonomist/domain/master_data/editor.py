"""Copy-on-write drafts of a master data snapshot."""

from __future__ import annotations

from typing import TYPE_CHECKING

from taxonomist.domain.master_data.snapshot import (
    EMPTY_SNAPSHOT,
    MasterDataSnapshot,
    TaxonomyNode,
    freeze_links,
    freeze_map,
)
from taxonomist.domain.model import EntityStatus, EntityType, normalize_name

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from taxonomist.domain.model import Provenance


class SnapshotEditor:
    """Mutable draft seeded from a snapshot; ``build()`` yields the next version.

    Names passed to the editor are resolved case-insensitively against names
    already present, so ``link("acne", "body milk")`` reuses "Acne" and
    "Body Milk". Links are always written in both directions.
    """

    def __init__(self, base: MasterDataSnapshot | None = None) -> None:
        source = base or EMPTY_SNAPSHOT
        self._base_version = source.version
        self._categories = list(source.categories)
        self._ranges = list(source.ranges)
        self._campaigns = list(source.campaigns)
        self._category_to_ranges = _thaw(source.category_to_ranges)
        self._range_to_categories = _thaw(source.range_to_categories)
        self._range_to_campaigns = _thaw(source.range_to_campaigns)
        self._campaign_to_range = dict(source.campaign_to_range)
        self._category_to_business_unit = dict(source.category_to_business_unit)
        self._business_unit_rosters = _thaw(source.business_unit_rosters)
        self._campaign_compatibility = _thaw(source.campaign_compatibility)
        self._range_nodes = dict(source.range_nodes)
        self._campaign_nodes = dict(source.campaign_nodes)
        self.changes: list[str] = []

    # Name resolution ------------------------------------------------------------

    def _resolve(self, names: Iterable[str], name: str) -> str | None:
        key = normalize_name(name)
        for candidate in names:
            if normalize_name(candidate) == key:
                return candidate
        return None

    def _category_name(self, name: str) -> str:
        known = [
            *self._categories,
            *self._category_to_ranges,
            *self._category_to_business_unit,
        ]
        return self._resolve(known, name) or name.strip()

    def _range_name(self, name: str) -> str:
        known = [
            candidate
            for candidate in (*self._ranges, *self._range_to_categories, *self._range_nodes)
            if self._node_status(self._range_nodes, candidate) is not EntityStatus.ARCHIVED
        ]
        return self._resolve(known, name) or name.strip()

    def _campaign_name(self, name: str) -> str:
        known = [
            candidate
            for candidate in (*self._campaigns, *self._campaign_to_range, *self._campaign_nodes)
            if self._node_status(self._campaign_nodes, candidate) is not EntityStatus.ARCHIVED
        ]
        return self._resolve(known, name) or name.strip()

    @staticmethod
    def _node_status(nodes: Mapping[str, TaxonomyNode], name: str) -> EntityStatus:
        node = nodes.get(name)
        return node.status if node is not None else EntityStatus.ACTIVE

    # Mutations ------------------------------------------------------------------

    def add_business_unit(self, name: str) -> str:
        existing = self._resolve(self._business_unit_rosters, name)
        if existing is not None:
            return existing
        existing = self._resolve(self._category_to_business_unit.values(), name)
        canonical = existing or name.strip()
        self._business_unit_rosters.setdefault(canonical, set())
        return canonical

    def add_category(self, name: str, *, business_unit: str) -> str:
        category = self._category_name(name)
        unit = self.add_business_unit(business_unit)
        if category not in self._categories:
            self._categories.append(category)
            self.changes.append(f"added category {category!r}")
        self._category_to_ranges.setdefault(category, set())
        previous = self._category_to_business_unit.get(category)
        if previous is not None and previous != unit:
            self._business_unit_rosters.get(previous, set()).discard(category)
        self._category_to_business_unit[category] = unit
        self._business_unit_rosters[unit].add(category)
        return category

    def add_range(
        self,
        name: str,
        *,
        categories: Iterable[str] = (),
        status: EntityStatus = EntityStatus.ACTIVE,
        provenance: Provenance | None = None,
    ) -> str:
        range_ = self._range_name(name)
        if range_ not in self._ranges:
            self._ranges.append(range_)
            self.changes.append(f"added range {range_!r} ({status})")
        self._range_to_categories.setdefault(range_, set())
        if range_ not in self._range_nodes or provenance is not None:
            self._range_nodes[range_] = TaxonomyNode(
                name=range_,
                status=status,
                provenance=provenance,
            )
        for category in categories:
            self.link(category, range_)
        return range_

    def add_campaign(
        self,
        name: str,
        *,
        range_: str | None = None,
        status: EntityStatus = EntityStatus.ACTIVE,
        provenance: Provenance | None = None,
    ) -> str:
        campaign = self._campaign_name(name)
        if campaign not in self._campaigns:
            self._campaigns.append(campaign)
            self.changes.append(f"added campaign {campaign!r} ({status})")
        if campaign not in self._campaign_nodes or provenance is not None:
            self._campaign_nodes[campaign] = TaxonomyNode(
                name=campaign,
                status=status,
                provenance=provenance,
            )
        if range_ is not None:
            self.assign_campaign(campaign, range_)
        return campaign

    def assign_campaign(self, campaign: str, range_: str) -> None:
        campaign_name = self._campaign_name(campaign)
        range_name = self._range_name(range_)
        previous = self._campaign_to_range.get(campaign_name)
        if previous == range_name:
            return
        if previous is not None:
            self._range_to_campaigns.get(previous, set()).discard(campaign_name)
        self._campaign_to_range[campaign_name] = range_name
        self._range_to_campaigns.setdefault(range_name, set()).add(campaign_name)
        self.changes.append(f"assigned campaign {campaign_name!r} to range {range_name!r}")

    def add_compatibility(self, campaign: str, range_: str) -> None:
        campaign_name = self._campaign_name(campaign)
        range_name = self._range_name(range_)
        self._campaign_compatibility.setdefault(campaign_name, set()).add(range_name)

    def link(self, category: str, range_: str) -> bool:
        category_name = self._category_name(category)
        range_name = self._range_name(range_)
        forward = self._category_to_ranges.setdefault(category_name, set())
        reverse = self._range_to_categories.setdefault(range_name, set())
        if range_name in forward and category_name in reverse:
            return False
        forward.add(range_name)
        reverse.add(category_name)
        self.changes.append(f"linked category {category_name!r} <-> range {range_name!r}")
        return True

    def unlink(self, category: str, range_: str) -> bool:
        category_name = self._category_name(category)
        range_name = self._range_name(range_)
        forward = self._category_to_ranges.get(category_name, set())
        reverse = self._range_to_categories.get(range_name, set())
        if range_name not in forward and category_name not in reverse:
            return False
        forward.discard(range_name)
        reverse.discard(category_name)
        self.changes.append(f"unlinked category {category_name!r} <-> range {range_name!r}")
        return True

    def set_status(self, entity_type: EntityType, name: str, status: EntityStatus) -> None:
        if entity_type is EntityType.RANGE:
            resolved = self._resolve(self._range_nodes, name) or self._range_name(name)
            nodes = self._range_nodes
        elif entity_type is EntityType.CAMPAIGN:
            resolved = self._resolve(self._campaign_nodes, name) or self._campaign_name(name)
            nodes = self._campaign_nodes
        else:
            raise ValueError(f"{entity_type} does not carry a status")
        current = nodes.get(resolved) or TaxonomyNode(name=resolved)
        nodes[resolved] = TaxonomyNode(
            name=resolved,
            status=status,
            provenance=current.provenance,
        )
        self.changes.append(f"set {entity_type} {resolved!r} to {status}")

    # Raw index maintenance, used by repair ----------------------------------------

    def ensure_indexed(self, entity_type: EntityType, name: str) -> bool:
        target = {
            EntityType.CATEGORY: self._categories,
            EntityType.RANGE: self._ranges,
            EntityType.CAMPAIGN: self._campaigns,
        }[entity_type]
        if name in target:
            return False
        target.append(name)
        self.changes.append(f"indexed {entity_type} {name!r}")
        return True

    def add_reverse_edge(self, category: str, range_: str) -> bool:
        reverse = self._range_to_categories.setdefault(range_, set())
        if category in reverse:
            return False
        reverse.add(category)
        self.changes.append(f"added reverse edge range {range_!r} -> category {category!r}")
        return True

    def add_forward_edge(self, category: str, range_: str) -> bool:
        forward = self._category_to_ranges.setdefault(category, set())
        if range_ in forward:
            return False
        forward.add(range_)
        self.changes.append(f"added forward edge category {category!r} -> range {range_!r}")
        return True

    def build(self, *, version: int | None = None) -> MasterDataSnapshot:
        return MasterDataSnapshot(
            version=self._base_version + 1 if version is None else version,
            categories=tuple(sorted(self._categories, key=normalize_name)),
            ranges=tuple(sorted(self._ranges, key=normalize_name)),
            campaigns=tuple(sorted(self._campaigns, key=normalize_name)),
            category_to_ranges=freeze_links(self._category_to_ranges),
            range_to_categories=freeze_links(self._range_to_categories),
            range_to_campaigns=freeze_links(self._range_to_campaigns),
            campaign_to_range=freeze_map(self._campaign_to_range),
            category_to_business_unit=freeze_map(self._category_to_business_unit),
            business_unit_rosters=freeze_links(self._business_unit_rosters),
            campaign_compatibility=freeze_links(self._campaign_compatibility),
            range_nodes=freeze_map(self._range_nodes),
            campaign_nodes=freeze_map(self._campaign_nodes),
        )


def _thaw(links: Mapping[str, frozenset[str]]) -> dict[str, set[str]]:
    return {key: set(values) for key, values in links.items()}
