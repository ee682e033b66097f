"""Reconciles the operational store with its mirror.

Entity types are processed in dependency order so that references resolve in
the destination. Rows missing on either side are copied across; rows present
on both sides whose references or tracked attributes differ are overwritten
from the source (the operational store wins). Every copy is its own
transaction, so cancelling between copies never leaves an entity half
written, and a second run over unchanged stores applies nothing.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

from taxonomist.domain.model import EntityType
from taxonomist.domain.ports.locking import LockUnavailableError
from taxonomist.domain.ports.persistence import StoreUnavailableError

from .report import EntityTypeComparison, StoreComparison, SyncFailure, SyncReport

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable

    from taxonomist.domain.ports.locking import AdvisoryLock
    from taxonomist.domain.ports.replication import ReplicaRow, ReplicaStore, RowKey

log = logging.getLogger(__name__)

SYNC_ORDER: Final[tuple[EntityType, ...]] = (
    EntityType.BUSINESS_UNIT,
    EntityType.CATEGORY,
    EntityType.RANGE,
    EntityType.CAMPAIGN,
    EntityType.SPEND_RECORD,
)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class SyncInProgressError(RuntimeError):
    """Raised when another sync or an active commit holds the advisory lock."""


class SyncAbortedError(RuntimeError):
    def __init__(self, *, reason: str, report: SyncReport) -> None:
        self.reason = reason
        self.report = report
        super().__init__(f"Sync aborted: {reason}")


class _Cancelled(Exception):  # noqa: N818
    pass


class CrossStoreSynchronizer:
    def __init__(
        self,
        *,
        source: ReplicaStore,
        target: ReplicaStore,
        lock: AdvisoryLock | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._target = target
        self._lock = lock
        self._clock = clock

    def compare(self) -> StoreComparison:
        """Read-only count and key-set comparison of both stores."""
        comparisons: list[EntityTypeComparison] = []
        for entity_type in SYNC_ORDER:
            source_rows, target_rows = self._read(entity_type)
            comparisons.append(
                EntityTypeComparison(
                    entity_type=entity_type,
                    source_count=self._source.count(entity_type),
                    target_count=self._target.count(entity_type),
                    in_source_only=tuple(sorted(source_rows.keys() - target_rows.keys())),
                    in_target_only=tuple(sorted(target_rows.keys() - source_rows.keys())),
                    divergent=_divergent_keys(source_rows, target_rows),
                )
            )
        comparison = StoreComparison(
            source=self._source.label,
            target=self._target.label,
            entity_types=tuple(comparisons),
        )
        log.info(
            "Compared %s with %s: synchronized=%s",
            comparison.source,
            comparison.target,
            comparison.synchronized,
        )
        return comparison

    def run(self, *, cancel: threading.Event | None = None) -> SyncReport:
        guard = self._lock.exclusive(blocking=False) if self._lock is not None else nullcontext()
        try:
            with guard:
                return self._run_locked(cancel)
        except LockUnavailableError as exc:
            raise SyncInProgressError("Another sync or an import commit is in progress") from exc

    def _run_locked(self, cancel: threading.Event | None) -> SyncReport:
        report = SyncReport(
            source=self._source.label,
            target=self._target.label,
            started_at=self._clock(),
        )
        log.info("Sync started: %s -> %s", report.source, report.target)
        try:
            for entity_type in SYNC_ORDER:
                self._sync_entity_type(entity_type, report, cancel)
        except _Cancelled:
            report.cancelled = True
            log.warning("Sync cancelled after %s applied change(s)", report.applied)
        except StoreUnavailableError as exc:
            report.finished_at = self._clock()
            log.exception("Sync aborted: store unavailable")
            raise SyncAbortedError(reason=str(exc), report=report) from exc
        report.finished_at = self._clock()
        for entity_type, entry in report.entity_types.items():
            log.info(
                "Synced %s: inSourceOnly=%s inTargetOnly=%s divergent=%s applied=%s failed=%s",
                entity_type,
                entry.in_source_only,
                entry.in_target_only,
                entry.divergent,
                entry.applied,
                entry.failed,
            )
        return report

    def _sync_entity_type(
        self,
        entity_type: EntityType,
        report: SyncReport,
        cancel: threading.Event | None,
    ) -> None:
        _check_cancel(cancel)
        source_rows, target_rows = self._read(entity_type)
        entry = report.entry(entity_type)

        plan: list[tuple[ReplicaStore, ReplicaRow]] = []
        for key in sorted(source_rows.keys() - target_rows.keys()):
            entry.in_source_only += 1
            plan.append((self._target, source_rows[key]))
        source_ids = {row.entity_id for row in source_rows.values()}
        for key in sorted(target_rows.keys() - source_rows.keys()):
            entry.in_target_only += 1
            row = target_rows[key]
            # Same entity under another key (e.g. archived on one side only):
            # the source copy above overwrites it, so copying back would flip it.
            if row.entity_id in source_ids:
                continue
            plan.append((self._source, row))
        for key in _divergent_keys(source_rows, target_rows):
            entry.divergent += 1
            plan.append((self._target, source_rows[key]))

        for destination, row in plan:
            _check_cancel(cancel)
            try:
                destination.apply(row)
            except StoreUnavailableError:
                raise
            except Exception as exc:  # noqa: BLE001
                entry.failed += 1
                report.failures.append(
                    SyncFailure(
                        entity_type=entity_type,
                        key=row.key,
                        destination=destination.label,
                        reason=str(exc),
                    )
                )
                log.warning(
                    "Failed to copy %s %s into %s: %s",
                    entity_type,
                    "/".join(row.key),
                    destination.label,
                    exc,
                )
            else:
                entry.applied += 1

    def _read(
        self,
        entity_type: EntityType,
    ) -> tuple[dict[RowKey, ReplicaRow], dict[RowKey, ReplicaRow]]:
        return self._source.rows(entity_type), self._target.rows(entity_type)


def _divergent_keys(
    source_rows: dict[RowKey, ReplicaRow],
    target_rows: dict[RowKey, ReplicaRow],
) -> tuple[RowKey, ...]:
    return tuple(
        key
        for key in sorted(source_rows.keys() & target_rows.keys())
        if source_rows[key].diverges_from(target_rows[key])
    )


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise _Cancelled
