"""Bridges between snapshots and the taxonomy repositories."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from taxonomist.domain.master_data.editor import SnapshotEditor
from taxonomist.domain.model import (
    BusinessUnit,
    Campaign,
    Category,
    EntityType,
    Range,
)
from taxonomist.domain.ports.persistence import UnresolvedReferenceError

if TYPE_CHECKING:
    from collections.abc import Callable

    from taxonomist.domain.master_data.snapshot import MasterDataSnapshot
    from taxonomist.domain.model import EntityStatus, ReviewableEntity
    from taxonomist.domain.ports.unit_of_work import TaxonomyRepositories, TaxonomyUnitOfWork

log = logging.getLogger(__name__)


def load_snapshot(unit_of_work_factory: Callable[[], TaxonomyUnitOfWork]) -> MasterDataSnapshot:
    """Build an unversioned snapshot of everything in the store, archived nodes included."""

    editor = SnapshotEditor()
    with unit_of_work_factory() as uow:
        repositories = uow.repositories
        for unit in repositories.business_units.list_all():
            editor.add_business_unit(unit.name)
        for category in repositories.categories.list_all():
            if category.business_unit is None:
                editor.ensure_indexed(EntityType.CATEGORY, category.name)
                continue
            editor.add_category(category.name, business_unit=category.business_unit.name)
        for range_ in repositories.ranges.list_all():
            editor.add_range(
                range_.name,
                categories=[category.name for category in range_.categories],
                status=range_.status,
                provenance=range_.provenance,
            )
        for campaign in repositories.campaigns.list_all():
            owner = campaign.range
            editor.add_campaign(
                campaign.name,
                range_=owner.name if owner is not None else None,
                status=campaign.status,
                provenance=campaign.provenance,
            )
    return editor.build(version=0)


@dataclass(slots=True)
class SeedResult:
    created: Counter[EntityType] = field(default_factory=Counter[EntityType])
    links: int = 0
    skipped: list[str] = field(default_factory=list[str])


def seed_master_data(
    snapshot: MasterDataSnapshot,
    *,
    unit_of_work_factory: Callable[[], TaxonomyUnitOfWork],
) -> SeedResult:
    """Write a master data document into the store.

    Existing nodes are matched case-insensitively and reused, so seeding the
    same document twice is a no-op.
    """

    result = SeedResult()
    with unit_of_work_factory() as uow:
        repositories = uow.repositories
        units = {
            name: _ensure_business_unit(repositories, name, result)
            for name in snapshot.business_units
        }

        categories: dict[str, Category] = {}
        for name in sorted(snapshot.all_category_names):
            unit_name = snapshot.category_to_business_unit.get(name)
            if unit_name is None:
                result.skipped.append(f"category {name!r} has no business unit")
                log.warning("Skipping category %r: no business unit assigned", name)
                continue
            category = repositories.categories.get_by_name(name)
            if category is None:
                category = Category(name=name)
                repositories.categories.add(category)
                result.created[EntityType.CATEGORY] += 1
            category.assign_business_unit(units[unit_name])
            categories[name] = category

        ranges: dict[str, Range] = {}
        for name in sorted(snapshot.all_range_names):
            node = snapshot.node(EntityType.RANGE, name)
            range_ = repositories.ranges.get_by_name(name, include_archived=True)
            if range_ is None:
                range_ = Range(name=name, status=node.status)
                range_.set_provenance(node.provenance)
                repositories.ranges.add(range_)
                result.created[EntityType.RANGE] += 1
            ranges[name] = range_

        for category_name, category in categories.items():
            linked = set(snapshot.category_to_ranges.get(category_name, frozenset()))
            linked.update(
                range_name
                for range_name, members in snapshot.range_to_categories.items()
                if category_name in members
            )
            for range_name in sorted(linked):
                if range_name in ranges and category.link_range(ranges[range_name]):
                    result.links += 1

        for name in sorted(snapshot.all_campaign_names):
            node = snapshot.node(EntityType.CAMPAIGN, name)
            campaign = repositories.campaigns.get_by_name(name, include_archived=True)
            if campaign is None:
                campaign = Campaign(name=name, status=node.status)
                campaign.set_provenance(node.provenance)
                repositories.campaigns.add(campaign)
                result.created[EntityType.CAMPAIGN] += 1
            owner = snapshot.campaign_to_range.get(name)
            if owner is None:
                owner = next(
                    (r for r, members in snapshot.range_to_campaigns.items() if name in members),
                    None,
                )
            if owner is not None and owner in ranges:
                campaign.assign_range(ranges[owner])

        uow.commit()

    log.info(
        "Seeded master data: created=%s, links=%s, skipped=%s",
        dict(result.created),
        result.links,
        len(result.skipped),
    )
    return result


def _ensure_business_unit(
    repositories: TaxonomyRepositories,
    name: str,
    result: SeedResult,
) -> BusinessUnit:
    unit = repositories.business_units.get_by_name(name)
    if unit is None:
        unit = BusinessUnit(name=name)
        repositories.business_units.add(unit)
        result.created[EntityType.BUSINESS_UNIT] += 1
    return unit


def change_status(
    entity_type: EntityType,
    name: str,
    status: EntityStatus,
    *,
    unit_of_work_factory: Callable[[], TaxonomyUnitOfWork],
) -> ReviewableEntity:
    """Administrative promotion (pending_review -> active) or archival of a node."""

    with unit_of_work_factory() as uow:
        repositories = uow.repositories
        if entity_type is EntityType.RANGE:
            entity: ReviewableEntity | None = repositories.ranges.get_by_name(
                name, include_archived=True
            )
        elif entity_type is EntityType.CAMPAIGN:
            entity = repositories.campaigns.get_by_name(name, include_archived=True)
        else:
            raise ValueError(f"{entity_type} does not carry a status")
        if entity is None:
            raise UnresolvedReferenceError(entity_type=entity_type, name=name)
        if entity.change_status(status):
            uow.commit()
            log.info("Changed %s %r to %s", entity_type, entity.name, status)
        return entity
