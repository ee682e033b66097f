from __future__ import annotations

from typing import TYPE_CHECKING

from taxonomist.adapters.files import FileAdvisoryLock
from taxonomist.adapters.sqlalchemy import SqlAlchemyReplicaStore, SqlAlchemyTaxonomyUnitOfWork
from taxonomist.adapters.sqlalchemy.unit_of_work import build_session_factory
from taxonomist.domain.model import EntityStatus, EntityType, Range, SpendRecord
from taxonomist.domain.sync import CrossStoreSynchronizer
from tests.helpers.master_data import make_provenance, seed_store

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from sqlalchemy.engine import Engine


def _seed_operational(unit_of_work_factory: Callable[[], SqlAlchemyTaxonomyUnitOfWork]) -> None:
    seed_store(unit_of_work_factory)
    with unit_of_work_factory() as uow:
        acne = uow.repositories.categories.get_by_name("Acne")
        dermopure = uow.repositories.ranges.get_by_name("Dermopure")
        campaign = uow.repositories.campaigns.get_by_name("Clear Skin")
        assert acne is not None
        uow.repositories.records.upsert(
            SpendRecord(
                session_id="session-1",
                row_number=1,
                business_unit="Derma",
                category=acne,
                range_=dermopure,
                campaign=campaign,
                metrics={"Total Budget": 1000.0, "Total R3+ (%)": None},
            )
        )
        uow.commit()


def _mirror_unit_of_work(engine: Engine) -> Callable[[], SqlAlchemyTaxonomyUnitOfWork]:
    session_factory = build_session_factory(engine)
    return lambda: SqlAlchemyTaxonomyUnitOfWork(session_factory)


def test_rows_are_keyed_by_name(
    sqlite_engine: Engine,
    sqlite_unit_of_work: Callable[[], SqlAlchemyTaxonomyUnitOfWork],
) -> None:
    _seed_operational(sqlite_unit_of_work)
    store = SqlAlchemyReplicaStore(sqlite_engine, label="operational")

    ranges = store.rows(EntityType.RANGE)
    cellular = ranges[("cellular",)]
    assert cellular.references["categories"] == ("body milk", "face care")
    assert cellular.tracked["status"] == EntityStatus.ACTIVE.value

    records = store.rows(EntityType.SPEND_RECORD)
    assert set(records) == {("session-1", "1")}
    row = records[("session-1", "1")]
    assert row.references["category"] == ("acne",)
    assert row.references["campaign"] == ("clear skin",)
    assert store.count(EntityType.CATEGORY) == 3


def test_sync_converges_both_stores(
    tmp_path: Path,
    sqlite_engine: Engine,
    mirror_engine: Engine,
    sqlite_unit_of_work: Callable[[], SqlAlchemyTaxonomyUnitOfWork],
) -> None:
    _seed_operational(sqlite_unit_of_work)
    with _mirror_unit_of_work(mirror_engine)() as uow:
        pending = Range(name="Dermopure RL", status=EntityStatus.PENDING_REVIEW)
        pending.set_provenance(make_provenance())
        uow.repositories.ranges.add(pending)
        uow.commit()

    synchronizer = CrossStoreSynchronizer(
        source=SqlAlchemyReplicaStore(sqlite_engine, label="operational"),
        target=SqlAlchemyReplicaStore(mirror_engine, label="mirror"),
        lock=FileAdvisoryLock(tmp_path / "taxonomist.lock"),
    )
    assert not synchronizer.compare().synchronized

    report = synchronizer.run()

    assert report.failed == 0
    assert report.applied > 0
    assert synchronizer.compare().synchronized
    assert synchronizer.run().applied == 0

    with _mirror_unit_of_work(mirror_engine)() as uow:
        records = uow.repositories.records.list_for_session("session-1")
        assert len(records) == 1
        assert records[0].campaign is not None
        assert records[0].campaign.name == "Clear Skin"
        assert records[0].metrics == {"Total Budget": 1000.0, "Total R3+ (%)": None}
        cellular = uow.repositories.ranges.get_by_name("cellular")
        assert cellular is not None
        assert sorted(category.name for category in cellular.categories) == [
            "Body Milk",
            "Face Care",
        ]

    with sqlite_unit_of_work() as uow:
        copied = uow.repositories.ranges.get_by_name("dermopure rl")
        assert copied is not None
        assert copied.id == pending.id
        assert copied.status is EntityStatus.PENDING_REVIEW
        assert copied.provenance == make_provenance()


def test_archived_row_sharing_a_live_name_is_copied(
    tmp_path: Path,
    sqlite_engine: Engine,
    mirror_engine: Engine,
    sqlite_unit_of_work: Callable[[], SqlAlchemyTaxonomyUnitOfWork],
) -> None:
    _seed_operational(sqlite_unit_of_work)
    with sqlite_unit_of_work() as uow:
        retired = Range(name="Cellular", status=EntityStatus.ARCHIVED)
        uow.repositories.ranges.add(retired)
        uow.commit()

    source = SqlAlchemyReplicaStore(sqlite_engine, label="operational")
    target = SqlAlchemyReplicaStore(mirror_engine, label="mirror")
    ranges = source.rows(EntityType.RANGE)
    assert ("cellular",) in ranges
    assert ranges[("cellular", str(retired.id))].tracked["status"] == "archived"

    synchronizer = CrossStoreSynchronizer(
        source=source,
        target=target,
        lock=FileAdvisoryLock(tmp_path / "taxonomist.lock"),
    )
    report = synchronizer.run()

    assert report.failed == 0
    assert target.count(EntityType.RANGE) == source.count(EntityType.RANGE) == 5
    assert synchronizer.compare().synchronized
    assert synchronizer.run().applied == 0

    with _mirror_unit_of_work(mirror_engine)() as uow:
        live = uow.repositories.ranges.get_by_name("Cellular")
        assert live is not None
        assert live.status is EntityStatus.ACTIVE
        assert live.id != retired.id


def test_archiving_in_the_source_reaches_the_mirror(
    tmp_path: Path,
    sqlite_engine: Engine,
    mirror_engine: Engine,
    sqlite_unit_of_work: Callable[[], SqlAlchemyTaxonomyUnitOfWork],
) -> None:
    _seed_operational(sqlite_unit_of_work)
    synchronizer = CrossStoreSynchronizer(
        source=SqlAlchemyReplicaStore(sqlite_engine, label="operational"),
        target=SqlAlchemyReplicaStore(mirror_engine, label="mirror"),
        lock=FileAdvisoryLock(tmp_path / "taxonomist.lock"),
    )
    synchronizer.run()
    with sqlite_unit_of_work() as uow:
        hydro_boost = uow.repositories.ranges.get_by_name("Hydro Boost")
        assert hydro_boost is not None
        hydro_boost.change_status(EntityStatus.ARCHIVED)
        archived_id = hydro_boost.id
        uow.commit()

    report = synchronizer.run()

    assert report.failed == 0
    assert synchronizer.compare().synchronized
    with _mirror_unit_of_work(mirror_engine)() as uow:
        assert uow.repositories.ranges.get_by_name("Hydro Boost") is None
        mirrored = uow.repositories.ranges.get_by_name("Hydro Boost", include_archived=True)
        assert mirrored is not None
        assert mirrored.id == archived_id
        assert mirrored.status is EntityStatus.ARCHIVED
    with sqlite_unit_of_work() as uow:
        source_row = uow.repositories.ranges.get_by_name("Hydro Boost", include_archived=True)
        assert source_row is not None
        assert source_row.status is EntityStatus.ARCHIVED
