from __future__ import annotations

from typing import TYPE_CHECKING

from taxonomist.domain.model import Campaign, EntityStatus, Range, SpendRecord
from tests.helpers.master_data import make_provenance, seed_store

if TYPE_CHECKING:
    from collections.abc import Callable

    from taxonomist.adapters.sqlalchemy import SqlAlchemyTaxonomyUnitOfWork


def test_lookups_are_case_insensitive(
    sqlite_unit_of_work: Callable[[], SqlAlchemyTaxonomyUnitOfWork],
) -> None:
    seed_store(sqlite_unit_of_work)

    with sqlite_unit_of_work() as uow:
        cellular = uow.repositories.ranges.get_by_name("  CELLULAR ")
        assert cellular is not None
        assert cellular.name == "Cellular"
        assert sorted(category.name for category in cellular.categories) == [
            "Body Milk",
            "Face Care",
        ]
        campaign = uow.repositories.campaigns.get_by_name("summer glow")
        assert campaign is not None
        assert campaign.range is not None
        assert campaign.range.name == "Hydro Boost"
        assert uow.repositories.categories.count() == 3
        assert [unit.name for unit in uow.repositories.business_units.list_all()] == [
            "Derma",
            "Nivea",
        ]


def test_find_or_create_reuses_the_live_row(
    sqlite_unit_of_work: Callable[[], SqlAlchemyTaxonomyUnitOfWork],
) -> None:
    seed_store(sqlite_unit_of_work)

    with sqlite_unit_of_work() as uow:
        existing, created = uow.repositories.ranges.find_or_create(
            "hydro boost",
            lambda: Range(name="hydro boost"),
        )
        assert not created
        assert existing.name == "Hydro Boost"

        fresh, created = uow.repositories.ranges.find_or_create(
            "Dermopure RL",
            lambda: Range(name="Dermopure RL", status=EntityStatus.PENDING_REVIEW),
        )
        fresh.set_provenance(make_provenance())
        assert created
        uow.commit()

    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.ranges.get_by_name("dermopure rl")
        assert stored is not None
        assert stored.status is EntityStatus.PENDING_REVIEW
        assert stored.provenance == make_provenance()


def test_archived_names_can_be_reused(
    sqlite_unit_of_work: Callable[[], SqlAlchemyTaxonomyUnitOfWork],
) -> None:
    seed_store(sqlite_unit_of_work)

    with sqlite_unit_of_work() as uow:
        campaign = uow.repositories.campaigns.get_by_name("Clear Skin")
        assert campaign is not None
        campaign.change_status(EntityStatus.ARCHIVED)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.campaigns.get_by_name("Clear Skin") is None
        archived = uow.repositories.campaigns.get_by_name("Clear Skin", include_archived=True)
        assert archived is not None
        assert archived.status is EntityStatus.ARCHIVED

        replacement, created = uow.repositories.campaigns.find_or_create(
            "clear skin",
            lambda: Campaign(name="Clear Skin", status=EntityStatus.PENDING_REVIEW),
        )
        assert created
        uow.commit()

    with sqlite_unit_of_work() as uow:
        live = uow.repositories.campaigns.get_by_name("CLEAR SKIN")
        assert live is not None
        assert live.id == replacement.id
        assert uow.repositories.campaigns.count() == 4


def test_spend_record_upsert_is_keyed_by_session_row(
    sqlite_unit_of_work: Callable[[], SqlAlchemyTaxonomyUnitOfWork],
) -> None:
    seed_store(sqlite_unit_of_work)

    with sqlite_unit_of_work() as uow:
        acne = uow.repositories.categories.get_by_name("Acne")
        dermopure = uow.repositories.ranges.get_by_name("Dermopure")
        assert acne is not None
        assert dermopure is not None
        record = SpendRecord(
            session_id="session-1",
            row_number=1,
            business_unit="Derma",
            category=acne,
            range_=dermopure,
            metrics={"Total Budget": 1000.0},
        )
        assert uow.repositories.records.upsert(record)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        acne = uow.repositories.categories.get_by_name("Acne")
        assert acne is not None
        replay = SpendRecord(
            session_id="session-1",
            row_number=1,
            business_unit="Derma",
            category=acne,
            metrics={"Total Budget": 1500.0},
        )
        assert not uow.repositories.records.upsert(replay)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        rows = uow.repositories.records.list_for_session("session-1")
        assert len(rows) == 1
        assert rows[0].range_ is None
        assert rows[0].metrics == {"Total Budget": 1500.0}
        assert uow.repositories.records.get("session-1", 2) is None
        assert uow.repositories.records.count() == 1
