"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from taxonomist.adapters.sqlalchemy.mappings import (
    business_unit_table,
    campaign_table,
    category_table,
    range_table,
    spend_record_table,
)
from taxonomist.domain.model import (
    BusinessUnit,
    Campaign,
    Category,
    EntityStatus,
    NamedEntity,
    Range,
    ReviewableEntity,
    SpendRecord,
    normalize_name,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy import Table
    from sqlalchemy.orm import Session

log = logging.getLogger(__name__)


class SqlAlchemyNamedRepository[TEntity: NamedEntity]:
    """Case-insensitive lookups through the stored ``name_key`` column."""

    def __init__(self, session: Session, entity_cls: type[TEntity], table: Table) -> None:
        self.session = session
        self._entity_cls = entity_cls
        self._table = table

    def add(self, entity: TEntity) -> None:
        self.session.add(entity)

    def get_by_name(self, name: str, *, include_archived: bool = False) -> TEntity | None:
        _ = include_archived
        stmt = select(self._entity_cls).where(self._table.c.name_key == normalize_name(name))
        return self.session.execute(stmt.limit(1)).scalar_one_or_none()

    def list_all(self) -> list[TEntity]:
        stmt = select(self._entity_cls).order_by(self._table.c.name_key)
        return list(self.session.execute(stmt).scalars())

    def count(self) -> int:
        stmt = select(func.count()).select_from(self._table)
        return int(self.session.execute(stmt).scalar_one())


class SqlAlchemyBusinessUnitRepository(SqlAlchemyNamedRepository[BusinessUnit]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, BusinessUnit, business_unit_table)


class SqlAlchemyCategoryRepository(SqlAlchemyNamedRepository[Category]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Category, category_table)


class SqlAlchemyReviewableRepository[TEntity: ReviewableEntity](
    SqlAlchemyNamedRepository[TEntity]
):
    """Ranges and campaigns: names are unique only among non-archived rows."""

    def get_by_name(self, name: str, *, include_archived: bool = False) -> TEntity | None:
        key = normalize_name(name)
        live = (
            select(self._entity_cls)
            .where(self._table.c.name_key == key)
            .where(self._table.c.status != EntityStatus.ARCHIVED)
            .limit(1)
        )
        entity = self.session.execute(live).scalar_one_or_none()
        if entity is not None or not include_archived:
            return entity
        archived = (
            select(self._entity_cls)
            .where(self._table.c.name_key == key)
            .order_by(self._table.c.id)
            .limit(1)
        )
        return self.session.execute(archived).scalar_one_or_none()

    def find_or_create(
        self,
        name: str,
        factory: Callable[[], TEntity],
    ) -> tuple[TEntity, bool]:
        existing = self.get_by_name(name)
        if existing is not None:
            return existing, False
        candidate = factory()
        try:
            with self.session.begin_nested():
                self.session.add(candidate)
        except IntegrityError:
            # another writer stored the same live name first
            winner = self.get_by_name(name)
            if winner is None:
                raise
            log.debug("Lost find-or-create race for %r; using existing row", name)
            return winner, False
        return candidate, True


class SqlAlchemyRangeRepository(SqlAlchemyReviewableRepository[Range]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Range, range_table)


class SqlAlchemyCampaignRepository(SqlAlchemyReviewableRepository[Campaign]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Campaign, campaign_table)


class SqlAlchemySpendRecordRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, session_id: str, row_number: int) -> SpendRecord | None:
        stmt = (
            select(SpendRecord)
            .where(spend_record_table.c.session_id == session_id)
            .where(spend_record_table.c.row_number == row_number)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def upsert(self, record: SpendRecord) -> bool:
        existing = self.get(record.session_id, record.row_number)
        if existing is None:
            self.session.add(record)
            return True
        existing.business_unit = record.business_unit
        existing.category = record.category
        existing.range_ = record.range_
        existing.campaign = record.campaign
        existing.company = record.company
        existing.metrics = dict(record.metrics)
        return False

    def list_for_session(self, session_id: str) -> list[SpendRecord]:
        stmt = (
            select(SpendRecord)
            .where(spend_record_table.c.session_id == session_id)
            .order_by(spend_record_table.c.row_number)
        )
        return list(self.session.execute(stmt).scalars())

    def count(self) -> int:
        stmt = select(func.count()).select_from(spend_record_table)
        return int(self.session.execute(stmt).scalar_one())
