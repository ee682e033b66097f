"""Append-only master data version log in the ``master_data_version`` table."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import insert, select
from sqlalchemy.exc import DisconnectionError, OperationalError

from taxonomist.adapters.files.master_data import snapshot_from_payload, snapshot_to_payload
from taxonomist.adapters.sqlalchemy.mappings import master_data_version_table
from taxonomist.domain.ports.persistence import StoreUnavailableError
from taxonomist.domain.ports.versions import SnapshotVersion

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy import Row
    from sqlalchemy.engine import Engine

    from taxonomist.domain.master_data.snapshot import MasterDataSnapshot

log = logging.getLogger(__name__)

_table = master_data_version_table


class SqlAlchemySnapshotVersionLog:
    def __init__(
        self,
        engine: Engine,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(tz=UTC),
    ) -> None:
        self._engine = engine
        self._clock = clock

    def append(
        self,
        snapshot: MasterDataSnapshot,
        *,
        reason: str,
        author: str | None = None,
    ) -> SnapshotVersion:
        entry = SnapshotVersion(
            version=snapshot.version,
            created_at=self._clock(),
            reason=reason,
            author=author,
        )
        try:
            with self._engine.begin() as connection:
                connection.execute(
                    insert(_table).values(
                        version=entry.version,
                        created_at=entry.created_at,
                        reason=entry.reason,
                        author=entry.author,
                        document=snapshot_to_payload(snapshot),
                    )
                )
        except (OperationalError, DisconnectionError) as exc:
            raise StoreUnavailableError(str(exc)) from exc
        log.debug("Recorded master data version %s (%s)", entry.version, reason)
        return entry

    def latest(self) -> MasterDataSnapshot | None:
        stmt = select(_table.c.version, _table.c.document).order_by(_table.c.version.desc())
        with self._engine.connect() as connection:
            row = connection.execute(stmt.limit(1)).first()
        return _snapshot(row) if row is not None else None

    def get(self, version: int) -> MasterDataSnapshot | None:
        stmt = select(_table.c.version, _table.c.document).where(_table.c.version == version)
        with self._engine.connect() as connection:
            row = connection.execute(stmt).first()
        return _snapshot(row) if row is not None else None

    def history(self) -> list[SnapshotVersion]:
        stmt = select(
            _table.c.version,
            _table.c.created_at,
            _table.c.reason,
            _table.c.author,
        ).order_by(_table.c.version)
        with self._engine.connect() as connection:
            rows = connection.execute(stmt).all()
        return [
            SnapshotVersion(
                version=row.version,
                created_at=row.created_at,
                reason=row.reason,
                author=row.author,
            )
            for row in rows
        ]


def _snapshot(row: Row[Any]) -> MasterDataSnapshot:
    document = cast(dict[str, object], row.document)
    return snapshot_from_payload(document, version=int(row.version))


if TYPE_CHECKING:
    from taxonomist.domain.ports.versions import SnapshotVersionLog

    _version_log_check: SnapshotVersionLog = SqlAlchemySnapshotVersionLog(cast("Engine", None))
