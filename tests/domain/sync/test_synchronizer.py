from __future__ import annotations

import threading
from uuid import uuid4

import pytest

from taxonomist.domain.model import EntityType
from taxonomist.domain.ports.replication import ReplicaRow
from taxonomist.domain.sync import (
    SYNC_ORDER,
    CrossStoreSynchronizer,
    SyncAbortedError,
    SyncInProgressError,
)
from tests.support.clock import MutableClock
from tests.support.stores import FakeAdvisoryLock, InMemoryReplicaStore


def _row(
    entity_type: EntityType,
    key: str,
    *,
    references: dict[str, tuple[str, ...]] | None = None,
    status: str | None = None,
) -> ReplicaRow:
    return ReplicaRow(
        entity_type=entity_type,
        key=(key,),
        entity_id=uuid4(),
        references=references or {},
        tracked={"status": status} if status is not None else {},
        attributes={"name": key},
    )


def _stores() -> tuple[InMemoryReplicaStore, InMemoryReplicaStore]:
    source = InMemoryReplicaStore(
        "operational",
        [
            _row(EntityType.BUSINESS_UNIT, "derma"),
            _row(EntityType.CATEGORY, "acne", references={"businessUnit": ("derma",)}),
            _row(
                EntityType.RANGE,
                "dermopure",
                references={"categories": ("acne",)},
                status="active",
            ),
        ],
    )
    target = InMemoryReplicaStore(
        "mirror",
        [
            _row(EntityType.BUSINESS_UNIT, "derma"),
            _row(EntityType.CATEGORY, "face care", references={"businessUnit": ("derma",)}),
            _row(
                EntityType.RANGE,
                "dermopure",
                references={"categories": ("acne",)},
                status="pending_review",
            ),
        ],
    )
    return source, target


def _synchronizer(
    source: InMemoryReplicaStore,
    target: InMemoryReplicaStore,
    lock: FakeAdvisoryLock | None = None,
) -> CrossStoreSynchronizer:
    return CrossStoreSynchronizer(
        source=source,
        target=target,
        lock=lock or FakeAdvisoryLock(),
        clock=MutableClock(),
    )


def test_compare_reports_differences_without_writing() -> None:
    source, target = _stores()

    comparison = _synchronizer(source, target).compare()

    assert not comparison.synchronized
    assert [entry.entity_type for entry in comparison.entity_types] == list(SYNC_ORDER)
    categories = comparison.entity_types[1]
    assert categories.in_source_only == (("acne",),)
    assert categories.in_target_only == (("face care",),)
    ranges = comparison.entity_types[2]
    assert ranges.divergent == (("dermopure",),)
    assert comparison.to_dict()["entityTypes"]["business_unit"] == {
        "sourceCount": 1,
        "targetCount": 1,
        "inSourceOnly": 0,
        "inTargetOnly": 0,
        "divergent": 0,
        "synchronized": True,
    }
    assert source.applied == []
    assert target.applied == []


def test_run_converges_and_source_wins_on_divergence() -> None:
    source, target = _stores()
    lock = FakeAdvisoryLock()
    synchronizer = _synchronizer(source, target, lock)

    report = synchronizer.run()

    assert lock.acquired == ["exclusive"]
    assert report.applied == 3
    assert report.failed == 0
    assert not report.cancelled
    category = report.entity_types[EntityType.CATEGORY]
    assert (category.in_source_only, category.in_target_only) == (1, 1)
    assert report.entity_types[EntityType.RANGE].divergent == 1
    assert target.tables[EntityType.RANGE][("dermopure",)].tracked == {"status": "active"}
    assert ("face care",) in source.tables[EntityType.CATEGORY]
    assert synchronizer.compare().synchronized
    assert report.duration_seconds == 0.0


def test_second_run_applies_nothing() -> None:
    source, target = _stores()
    synchronizer = _synchronizer(source, target)
    synchronizer.run()

    again = synchronizer.run()

    assert again.applied == 0
    assert all(
        entry.in_source_only == entry.in_target_only == entry.divergent == 0
        for entry in again.entity_types.values()
    )


def test_same_entity_under_another_key_is_not_copied_back() -> None:
    live = _row(EntityType.RANGE, "hydro boost", status="active")
    archived = ReplicaRow(
        entity_type=EntityType.RANGE,
        key=("hydro boost", str(live.entity_id)),
        entity_id=live.entity_id,
        tracked={"status": "archived"},
        attributes={"name": "Hydro Boost"},
    )
    source = InMemoryReplicaStore("operational", [archived])
    target = InMemoryReplicaStore("mirror", [live])

    report = _synchronizer(source, target).run()

    entry = report.entity_types[EntityType.RANGE]
    assert (entry.in_source_only, entry.in_target_only, entry.applied) == (1, 1, 1)
    assert target.applied == [archived]
    assert source.applied == []


def test_cancel_before_start_writes_nothing() -> None:
    source, target = _stores()
    cancel = threading.Event()
    cancel.set()

    report = _synchronizer(source, target).run(cancel=cancel)

    assert report.cancelled
    assert report.applied == 0
    assert target.applied == []
    assert report.finished_at is not None


class CancellingStore(InMemoryReplicaStore):
    """Requests cancellation once it has accepted one row."""

    def __init__(self, label: str, cancel: threading.Event) -> None:
        super().__init__(label)
        self.cancel = cancel

    def apply(self, row: ReplicaRow) -> None:
        super().apply(row)
        self.cancel.set()


def test_cancel_between_entities_keeps_completed_copies() -> None:
    cancel = threading.Event()
    source = InMemoryReplicaStore(
        "operational",
        [_row(EntityType.BUSINESS_UNIT, "derma"), _row(EntityType.BUSINESS_UNIT, "nivea")],
    )
    target = CancellingStore("mirror", cancel)

    report = _synchronizer(source, target).run(cancel=cancel)

    assert report.cancelled
    assert report.applied == 1
    assert list(target.tables[EntityType.BUSINESS_UNIT]) == [("derma",)]


def test_held_lock_refuses_to_start() -> None:
    source, target = _stores()

    with pytest.raises(SyncInProgressError):
        _synchronizer(source, target, FakeAdvisoryLock(held=True)).run()

    assert target.applied == []


def test_row_failure_is_counted_and_the_run_continues() -> None:
    source, _ = _stores()
    target = InMemoryReplicaStore("mirror", failing=[("acne",)])

    report = _synchronizer(source, target).run()

    assert report.failed == 1
    assert report.applied == 2
    (failure,) = report.failures
    assert failure.entity_type is EntityType.CATEGORY
    assert failure.destination == "mirror"
    assert failure.reason == "cannot write acne"
    assert report.to_dict()["failures"] == [
        {
            "entityType": "category",
            "key": ["acne"],
            "destination": "mirror",
            "reason": "cannot write acne",
        }
    ]


def test_unavailable_store_aborts_with_partial_report() -> None:
    source, _ = _stores()
    target = InMemoryReplicaStore("mirror", unavailable=True)

    with pytest.raises(SyncAbortedError) as excinfo:
        _synchronizer(source, target).run()

    report = excinfo.value.report
    assert report.applied == 0
    assert report.finished_at is not None
    assert excinfo.value.reason == "mirror is down"
