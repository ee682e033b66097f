"""Auto-creation of missing ranges and campaigns during an import commit.

A node is only created when a case-insensitive lookup finds no live node of
that name. The lookup and the insert run under the per-name lock and use the
store's atomic find-or-create, and the creation is committed before the lock
is released, so concurrent sessions and re-runs of the same import resolve
to the one node created first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from taxonomist.domain.model import (
    Campaign,
    EntityStatus,
    EntityType,
    Provenance,
    Range,
)
from taxonomist.domain.ports.persistence import UnresolvedReferenceError
from taxonomist.domain.reconciliation.locks import SHARED_NAME_LOCKS

if TYPE_CHECKING:
    from collections.abc import Callable

    from taxonomist.domain.model import Category
    from taxonomist.domain.ports.unit_of_work import TaxonomyUnitOfWork
    from taxonomist.domain.reconciliation.locks import NameLockRegistry

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True, kw_only=True)
class AutoCreatePolicy:
    enabled: bool = True
    # an existing pending_review node picks up the parent declared by a later row
    link_pending_to_parent: bool = True


@dataclass(frozen=True, slots=True, kw_only=True)
class CreatedNode:
    entity_type: EntityType
    name: str
    session_id: str
    parent: str | None = None
    provenance: Provenance | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "type": self.entity_type.value,
            "name": self.name,
            "sessionId": self.session_id,
            "parent": self.parent,
        }


@dataclass(frozen=True, slots=True)
class AutoCreateResult[TEntity]:
    entity: TEntity
    created: bool
    linked: bool = False
    node: CreatedNode | None = None


class AutoCreateReconciler:
    def __init__(
        self,
        *,
        policy: AutoCreatePolicy | None = None,
        locks: NameLockRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.policy = policy or AutoCreatePolicy()
        self._locks = locks or SHARED_NAME_LOCKS
        self._clock = clock

    def ensure_range(
        self,
        uow: TaxonomyUnitOfWork,
        name: str,
        *,
        category: Category | None,
        session_id: str,
        source: str | None = None,
    ) -> AutoCreateResult[Range]:
        repository = uow.repositories.ranges
        existing = repository.get_by_name(name)
        if existing is not None:
            linked = self._link_range(existing, category)
            return AutoCreateResult(existing, created=False, linked=linked)
        if not self.policy.enabled:
            raise UnresolvedReferenceError(entity_type=EntityType.RANGE, name=name, field="Range")

        def factory() -> Range:
            range_ = Range(name=name, status=EntityStatus.PENDING_REVIEW)
            range_.set_provenance(self._provenance(session_id, name, source))
            return range_

        with self._locks.hold(EntityType.RANGE, name):
            range_, created = repository.find_or_create(name, factory)
            if not created:
                linked = self._link_range(range_, category)
                return AutoCreateResult(range_, created=False, linked=linked)
            if category is not None:
                category.link_range(range_)
            uow.commit()

        node = CreatedNode(
            entity_type=EntityType.RANGE,
            name=range_.name,
            session_id=session_id,
            parent=category.name if category is not None else None,
            provenance=range_.provenance,
        )
        log.info(
            "Auto-created range %r (pending review) under category %r for session %s",
            range_.name,
            category.name if category is not None else None,
            session_id,
        )
        return AutoCreateResult(range_, created=True, linked=category is not None, node=node)

    def ensure_campaign(
        self,
        uow: TaxonomyUnitOfWork,
        name: str,
        *,
        range_: Range | None,
        session_id: str,
        source: str | None = None,
    ) -> AutoCreateResult[Campaign]:
        repository = uow.repositories.campaigns
        existing = repository.get_by_name(name)
        if existing is not None:
            linked = self._link_campaign(existing, range_)
            return AutoCreateResult(existing, created=False, linked=linked)
        if not self.policy.enabled:
            raise UnresolvedReferenceError(
                entity_type=EntityType.CAMPAIGN, name=name, field="Campaign"
            )

        def factory() -> Campaign:
            campaign = Campaign(name=name, status=EntityStatus.PENDING_REVIEW)
            campaign.set_provenance(self._provenance(session_id, name, source))
            return campaign

        with self._locks.hold(EntityType.CAMPAIGN, name):
            campaign, created = repository.find_or_create(name, factory)
            if not created:
                return AutoCreateResult(
                    campaign, created=False, linked=self._link_campaign(campaign, range_)
                )
            if range_ is not None:
                campaign.assign_range(range_)
            uow.commit()

        node = CreatedNode(
            entity_type=EntityType.CAMPAIGN,
            name=campaign.name,
            session_id=session_id,
            parent=range_.name if range_ is not None else None,
            provenance=campaign.provenance,
        )
        log.info(
            "Auto-created campaign %r (pending review) under range %r for session %s",
            campaign.name,
            range_.name if range_ is not None else None,
            session_id,
        )
        return AutoCreateResult(campaign, created=True, linked=range_ is not None, node=node)

    def _provenance(self, session_id: str, name: str, source: str | None) -> Provenance:
        return Provenance.for_auto_create(
            session_id=session_id,
            original_name=name,
            source=source,
            created_at=self._clock(),
        )

    def _link_range(self, range_: Range, category: Category | None) -> bool:
        if category is None or not self._may_relink(range_.status):
            return False
        return category.link_range(range_)

    def _link_campaign(self, campaign: Campaign, range_: Range | None) -> bool:
        if range_ is None or campaign.range is not None or not self._may_relink(campaign.status):
            return False
        campaign.assign_range(range_)
        return True

    def _may_relink(self, status: EntityStatus) -> bool:
        return self.policy.link_pending_to_parent and status is EntityStatus.PENDING_REVIEW
