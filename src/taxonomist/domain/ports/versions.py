"""Append-only version log for master data snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from taxonomist.domain.master_data.snapshot import MasterDataSnapshot


@dataclass(frozen=True, slots=True, kw_only=True)
class SnapshotVersion:
    version: int
    created_at: datetime
    reason: str
    author: str | None = None


class SnapshotVersionLog(Protocol):
    def append(
        self,
        snapshot: MasterDataSnapshot,
        *,
        reason: str,
        author: str | None = None,
    ) -> SnapshotVersion: ...

    def latest(self) -> MasterDataSnapshot | None: ...

    def get(self, version: int) -> MasterDataSnapshot | None: ...

    def history(self) -> list[SnapshotVersion]: ...
