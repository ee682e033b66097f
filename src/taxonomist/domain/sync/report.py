"""Reports produced by store comparison and synchronisation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from taxonomist.domain.model import EntityType
    from taxonomist.domain.ports.replication import RowKey


@dataclass(slots=True)
class EntityTypeSyncReport:
    entity_type: EntityType
    in_source_only: int = 0
    in_target_only: int = 0
    divergent: int = 0
    applied: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "inSourceOnly": self.in_source_only,
            "inTargetOnly": self.in_target_only,
            "divergent": self.divergent,
            "applied": self.applied,
            "failed": self.failed,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncFailure:
    entity_type: EntityType
    key: RowKey
    destination: str
    reason: str


@dataclass(slots=True, kw_only=True)
class SyncReport:
    source: str
    target: str
    started_at: datetime
    finished_at: datetime | None = None
    cancelled: bool = False
    entity_types: dict[EntityType, EntityTypeSyncReport] = field(
        default_factory=dict["EntityType", EntityTypeSyncReport]
    )
    failures: list[SyncFailure] = field(default_factory=list[SyncFailure])

    def entry(self, entity_type: EntityType) -> EntityTypeSyncReport:
        report = self.entity_types.get(entity_type)
        if report is None:
            report = EntityTypeSyncReport(entity_type=entity_type)
            self.entity_types[entity_type] = report
        return report

    @property
    def applied(self) -> int:
        return sum(report.applied for report in self.entity_types.values())

    @property
    def failed(self) -> int:
        return sum(report.failed for report in self.entity_types.values())

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.source,
            "target": self.target,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "durationSeconds": self.duration_seconds,
            "cancelled": self.cancelled,
            "entityTypes": {
                entity_type.value: report.to_dict()
                for entity_type, report in self.entity_types.items()
            },
            "failures": [
                {
                    "entityType": failure.entity_type.value,
                    "key": list(failure.key),
                    "destination": failure.destination,
                    "reason": failure.reason,
                }
                for failure in self.failures
            ],
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class EntityTypeComparison:
    entity_type: EntityType
    source_count: int
    target_count: int
    in_source_only: tuple[RowKey, ...] = ()
    in_target_only: tuple[RowKey, ...] = ()
    divergent: tuple[RowKey, ...] = ()

    @property
    def synchronized(self) -> bool:
        return (
            self.source_count == self.target_count
            and not self.in_source_only
            and not self.in_target_only
            and not self.divergent
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "sourceCount": self.source_count,
            "targetCount": self.target_count,
            "inSourceOnly": len(self.in_source_only),
            "inTargetOnly": len(self.in_target_only),
            "divergent": len(self.divergent),
            "synchronized": self.synchronized,
        }


@dataclass(frozen=True, slots=True, kw_only=True)
class StoreComparison:
    source: str
    target: str
    entity_types: tuple[EntityTypeComparison, ...]

    @property
    def synchronized(self) -> bool:
        return all(comparison.synchronized for comparison in self.entity_types)

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.source,
            "target": self.target,
            "synchronized": self.synchronized,
            "entityTypes": {
                comparison.entity_type.value: comparison.to_dict()
                for comparison in self.entity_types
            },
        }
