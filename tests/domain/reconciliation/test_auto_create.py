from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import pytest

from taxonomist.domain.model import AUTO_CREATE_AUTHOR, EntityStatus, EntityType
from taxonomist.domain.ports.persistence import UnresolvedReferenceError
from taxonomist.domain.reconciliation import (
    AutoCreatePolicy,
    AutoCreateReconciler,
    NameLockRegistry,
)
from tests.helpers.master_data import FIXED_TIME, seed_store

if TYPE_CHECKING:
    from collections.abc import Callable

    from taxonomist.adapters.sqlalchemy.unit_of_work import SqlAlchemyTaxonomyUnitOfWork

    UowFactory = Callable[[], SqlAlchemyTaxonomyUnitOfWork]


def _reconciler(*, policy: AutoCreatePolicy | None = None) -> AutoCreateReconciler:
    return AutoCreateReconciler(policy=policy, locks=NameLockRegistry(), clock=lambda: FIXED_TIME)


def test_existing_range_is_reused_case_insensitively(sqlite_unit_of_work: UowFactory) -> None:
    seed_store(sqlite_unit_of_work)
    reconciler = _reconciler()

    with sqlite_unit_of_work() as uow:
        acne = uow.repositories.categories.get_by_name("Acne")
        result = reconciler.ensure_range(
            uow, "hydro boost", category=acne, session_id="session-1"
        )

        assert result.entity.name == "Hydro Boost"
        assert not result.created
        # active nodes keep their curated links
        assert not result.linked
        assert uow.repositories.ranges.count() == 4
    assert result.node is None


def test_missing_range_is_created_pending_and_linked(sqlite_unit_of_work: UowFactory) -> None:
    seed_store(sqlite_unit_of_work)
    reconciler = _reconciler()

    with sqlite_unit_of_work() as uow:
        acne = uow.repositories.categories.get_by_name("Acne")
        result = reconciler.ensure_range(
            uow,
            "Dermopure RL",
            category=acne,
            session_id="session-7",
            source="derma_media.xlsx",
        )
        assert result.created
        assert result.linked

    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.ranges.get_by_name("DERMOPURE RL")
        assert stored is not None
        assert stored.status is EntityStatus.PENDING_REVIEW
        assert [category.name for category in stored.categories] == ["Acne"]
        provenance = stored.provenance
        assert provenance is not None
        assert provenance.source_session_id == "session-7"
        assert provenance.created_by == AUTO_CREATE_AUTHOR
        assert provenance.created_at == FIXED_TIME
        assert provenance.notes == (
            "Auto-created during import from derma_media.xlsx on 2025-03-01T09:30:00+00:00"
        )

    node = result.node
    assert node is not None
    assert node.entity_type is EntityType.RANGE
    assert node.parent == "Acne"
    assert node.provenance == provenance


def test_pending_range_picks_up_later_category(sqlite_unit_of_work: UowFactory) -> None:
    seed_store(sqlite_unit_of_work)
    reconciler = _reconciler()
    with sqlite_unit_of_work() as uow:
        acne = uow.repositories.categories.get_by_name("Acne")
        reconciler.ensure_range(uow, "Dermopure RL", category=acne, session_id="session-1")

    with sqlite_unit_of_work() as uow:
        body_milk = uow.repositories.categories.get_by_name("Body Milk")
        result = reconciler.ensure_range(
            uow, "dermopure rl", category=body_milk, session_id="session-2"
        )
        uow.commit()

    assert not result.created
    assert result.linked
    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.ranges.get_by_name("Dermopure RL")
        assert stored is not None
        assert sorted(category.name for category in stored.categories) == ["Acne", "Body Milk"]
    assert result.node is None


def test_missing_campaign_is_created_under_its_range(sqlite_unit_of_work: UowFactory) -> None:
    seed_store(sqlite_unit_of_work)
    reconciler = _reconciler()

    with sqlite_unit_of_work() as uow:
        acne = uow.repositories.categories.get_by_name("Acne")
        range_ = reconciler.ensure_range(
            uow, "Dermopure RL", category=acne, session_id="session-1"
        ).entity
        created = reconciler.ensure_campaign(
            uow, "Triple Effect", range_=range_, session_id="session-1"
        )
        other = uow.repositories.ranges.get_by_name("Dermopure")
        again = reconciler.ensure_campaign(
            uow, "TRIPLE EFFECT", range_=other, session_id="session-1"
        )

    assert created.created
    assert created.entity.status is EntityStatus.PENDING_REVIEW
    assert not again.created
    # a campaign keeps the range it was created under
    assert not again.linked
    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.campaigns.get_by_name("Triple Effect")
        assert stored is not None
        assert stored.range is not None
        assert stored.range.name == "Dermopure RL"
    assert created.node is not None
    assert created.node.parent == "Dermopure RL"
    assert again.node is None


def test_disabled_policy_refuses_to_create(sqlite_unit_of_work: UowFactory) -> None:
    seed_store(sqlite_unit_of_work)
    reconciler = _reconciler(policy=AutoCreatePolicy(enabled=False))

    with sqlite_unit_of_work() as uow:
        with pytest.raises(UnresolvedReferenceError) as excinfo:
            reconciler.ensure_range(uow, "Dermopure RL", category=None, session_id="session-1")
        assert excinfo.value.field == "Range"
        with pytest.raises(UnresolvedReferenceError):
            reconciler.ensure_campaign(uow, "Triple Effect", range_=None, session_id="session-1")
        # existing nodes still resolve
        result = reconciler.ensure_range(uow, "Dermopure", category=None, session_id="session-1")
        assert result.entity.name == "Dermopure"


def test_concurrent_requests_create_one_range(file_unit_of_work: UowFactory) -> None:
    seed_store(file_unit_of_work)
    names = ["Body Lotion", "body lotion", "BODY LOTION", "Body lotion"] * 2
    barrier = threading.Barrier(len(names), timeout=10)
    created: list[bool] = []
    errors: list[BaseException] = []

    def worker(name: str, index: int) -> None:
        # separate registries leave the store's unique index as the only arbiter
        reconciler = _reconciler()
        try:
            with file_unit_of_work() as uow:
                acne = uow.repositories.categories.get_by_name("Acne")
                barrier.wait()
                result = reconciler.ensure_range(
                    uow, name, category=acne, session_id=f"session-{index}"
                )
                uow.commit()
            created.append(result.created)
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [
        threading.Thread(target=worker, args=(name, index)) for index, name in enumerate(names)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sorted(created) == [False] * 7 + [True]
    with file_unit_of_work() as uow:
        assert uow.repositories.ranges.count() == 5
        stored = uow.repositories.ranges.get_by_name("body lotion")
        assert stored is not None
        assert stored.status is EntityStatus.PENDING_REVIEW
        assert [category.name for category in stored.categories] == ["Acne"]
