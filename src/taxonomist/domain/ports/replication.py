"""Store-agnostic row view used by the cross-store synchronizer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from taxonomist.domain.model import EntityType

type RowKey = tuple[str, ...]


@dataclass(frozen=True, slots=True, kw_only=True)
class ReplicaRow:
    """One entity as seen by the synchronizer.

    ``references`` maps a relation name to the sorted unique keys of the
    entities it points at, so rows compare equal across stores whose primary
    keys differ. ``tracked`` holds the attributes whose divergence is
    reconciled; ``attributes`` carries everything needed to recreate the row.
    """

    entity_type: EntityType
    key: RowKey
    entity_id: UUID
    references: Mapping[str, tuple[str, ...]] = field(default_factory=dict[str, tuple[str, ...]])
    tracked: Mapping[str, str | None] = field(default_factory=dict[str, "str | None"])
    attributes: Mapping[str, object] = field(default_factory=dict[str, object])

    def fingerprint(self) -> tuple[object, ...]:
        return (
            tuple(sorted(self.references.items())),
            tuple(sorted(self.tracked.items())),
        )

    def diverges_from(self, other: ReplicaRow) -> bool:
        return self.fingerprint() != other.fingerprint()


class ReplicaStore(Protocol):
    """A backing store the synchronizer can read and write entity by entity."""

    @property
    def label(self) -> str: ...

    def count(self, entity_type: EntityType) -> int: ...

    def rows(self, entity_type: EntityType) -> dict[RowKey, ReplicaRow]: ...

    def apply(self, row: ReplicaRow) -> None:
        """Create or overwrite one entity atomically (its own transaction)."""
        ...
