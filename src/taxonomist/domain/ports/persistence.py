"""Persistence ports used by the domain layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

    from taxonomist.domain.model import (
        BusinessUnit,
        Campaign,
        Category,
        EntityType,
        Range,
        ReviewableEntity,
        SpendRecord,
    )


class StoreUnavailableError(RuntimeError):
    """Raised when a backing store cannot be reached; fatal for commits and syncs."""


class UnresolvedReferenceError(LookupError):
    """Raised when a row references a taxonomy node that cannot be resolved."""

    def __init__(self, *, entity_type: EntityType, name: str, field: str | None = None) -> None:
        self.entity_type = entity_type
        self.name = name
        self.field = field
        super().__init__(f"Unknown {entity_type} {name!r}")


class NamedRepository[TEntity](Protocol):
    """Case-insensitive name lookups shared by every taxonomy repository."""

    def add(self, entity: TEntity) -> None: ...

    def get_by_name(self, name: str, *, include_archived: bool = False) -> TEntity | None: ...

    def list_all(self) -> list[TEntity]: ...

    def count(self) -> int: ...


class BusinessUnitRepository(NamedRepository["BusinessUnit"], Protocol): ...


class CategoryRepository(NamedRepository["Category"], Protocol): ...


class ReviewableRepository[TEntity: ReviewableEntity](NamedRepository[TEntity], Protocol):
    def find_or_create(
        self,
        name: str,
        factory: Callable[[], TEntity],
    ) -> tuple[TEntity, bool]:
        """Return the live entity named ``name`` or persist ``factory()``.

        Must be atomic per name: concurrent callers observe exactly one creation.
        The boolean is True only for the caller whose entity was stored.
        """
        ...


class RangeRepository(ReviewableRepository["Range"], Protocol): ...


class CampaignRepository(ReviewableRepository["Campaign"], Protocol): ...


class SpendRecordRepository(Protocol):
    def get(self, session_id: str, row_number: int) -> SpendRecord | None: ...

    def upsert(self, record: SpendRecord) -> bool:
        """Insert or overwrite the row with the same (session_id, row_number).

        Returns True when a new row was inserted.
        """
        ...

    def list_for_session(self, session_id: str) -> list[SpendRecord]: ...

    def count(self) -> int: ...
