"""Durable storage port for import sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from taxonomist.domain.imports.session import ImportSession


class ImportSessionRepository(Protocol):
    def save(self, session: ImportSession) -> None: ...

    def get(self, session_id: str) -> ImportSession | None: ...

    def delete(self, session_id: str) -> bool: ...

    def list_ids(self) -> list[str]: ...
