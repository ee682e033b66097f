"""Creation provenance for nodes added outside the seeded master data."""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final

from taxonomist.domain.model.entity import Entity

AUTO_CREATE_AUTHOR: Final[str] = "import_auto"


@dataclass(frozen=True, slots=True, kw_only=True)
class Provenance:
    source_session_id: str
    created_at: datetime
    created_by: str = AUTO_CREATE_AUTHOR
    original_name: str | None = None
    notes: str | None = None

    @classmethod
    def for_auto_create(
        cls,
        *,
        session_id: str,
        original_name: str,
        source: str | None = None,
        created_at: datetime | None = None,
    ) -> Provenance:
        timestamp = created_at or datetime.now(tz=UTC)
        origin = source or session_id
        return cls(
            source_session_id=session_id,
            created_at=timestamp,
            original_name=original_name,
            notes=f"Auto-created during import from {origin} on {timestamp.isoformat()}",
        )

    def to_payload(self) -> dict[str, str | None]:
        return {
            "sourceSessionId": self.source_session_id,
            "createdAt": self.created_at.isoformat(),
            "createdBy": self.created_by,
            "originalName": self.original_name,
            "notes": self.notes,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, str | None]) -> Provenance:
        session_id = payload.get("sourceSessionId")
        created_at = payload.get("createdAt")
        if not session_id or not created_at:
            raise ValueError("Provenance payload requires sourceSessionId and createdAt")
        timestamp = datetime.fromisoformat(created_at)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        return cls(
            source_session_id=session_id,
            created_at=timestamp,
            created_by=payload.get("createdBy") or AUTO_CREATE_AUTHOR,
            original_name=payload.get("originalName"),
            notes=payload.get("notes"),
        )


@dataclass(eq=False, kw_only=True)
class ProvenanceTrackedMixin(Entity, ABC):
    """Capability: carries creation provenance (optional)."""

    _provenance: Provenance | None = field(default=None, repr=False, init=False)

    @property
    def provenance(self) -> Provenance | None:
        return self._provenance

    def set_provenance(self, provenance: Provenance | None) -> None:
        self._provenance = provenance
