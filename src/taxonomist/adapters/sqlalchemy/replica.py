"""Entity-by-entity read/write access to one SQL store for the synchronizer.

Rows are keyed by their case-insensitive name key (archived ranges and
campaigns add their id, spend rows use session and row number) and carry
their references as the keys of the referenced entities, so the same entity
compares equal in two databases whose primary keys differ. Copies keep the
entity id of the source row.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import DisconnectionError, OperationalError

from taxonomist.adapters.sqlalchemy.mappings import (
    TABLE_BY_ENTITY_TYPE,
    business_unit_table,
    campaign_table,
    category_range_table,
    category_table,
    range_table,
    spend_record_table,
)
from taxonomist.domain.model import EntityStatus, EntityType, normalize_name
from taxonomist.domain.ports.persistence import StoreUnavailableError, UnresolvedReferenceError
from taxonomist.domain.ports.replication import ReplicaRow

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from uuid import UUID

    from sqlalchemy import ColumnElement, Connection, Row, Table
    from sqlalchemy.engine import Engine

    from taxonomist.domain.ports.replication import RowKey

log = logging.getLogger(__name__)

_REVIEWABLE = (EntityType.RANGE, EntityType.CAMPAIGN)


class SqlAlchemyReplicaStore:
    def __init__(self, engine: Engine, *, label: str) -> None:
        self._engine = engine
        self._label = label

    @property
    def label(self) -> str:
        return self._label

    def count(self, entity_type: EntityType) -> int:
        table = TABLE_BY_ENTITY_TYPE[entity_type]
        with self._connect() as connection:
            return int(connection.execute(select(func.count()).select_from(table)).scalar_one())

    def rows(self, entity_type: EntityType) -> dict[RowKey, ReplicaRow]:
        readers = {
            EntityType.BUSINESS_UNIT: _read_business_units,
            EntityType.CATEGORY: _read_categories,
            EntityType.RANGE: _read_ranges,
            EntityType.CAMPAIGN: _read_campaigns,
            EntityType.SPEND_RECORD: _read_spend_records,
        }
        with self._connect() as connection:
            return readers[entity_type](connection)

    def apply(self, row: ReplicaRow) -> None:
        writers = {
            EntityType.BUSINESS_UNIT: _write_business_unit,
            EntityType.CATEGORY: _write_category,
            EntityType.RANGE: _write_range,
            EntityType.CAMPAIGN: _write_campaign,
            EntityType.SPEND_RECORD: _write_spend_record,
        }
        try:
            with self._engine.begin() as connection:
                writers[row.entity_type](connection, row)
        except (OperationalError, DisconnectionError) as exc:
            raise StoreUnavailableError(f"{self._label}: {exc}") from exc
        log.debug("Applied %s %s to %s", row.entity_type, "/".join(row.key), self._label)

    def _connect(self) -> Connection:
        try:
            return self._engine.connect()
        except (OperationalError, DisconnectionError) as exc:
            raise StoreUnavailableError(f"{self._label}: {exc}") from exc


# Reads --------------------------------------------------------------------------------


def _read_business_units(connection: Connection) -> dict[RowKey, ReplicaRow]:
    table = business_unit_table
    stmt = select(table.c.id, table.c.name, table.c.name_key)
    return {
        (row.name_key,): ReplicaRow(
            entity_type=EntityType.BUSINESS_UNIT,
            key=(row.name_key,),
            entity_id=row.id,
            tracked={"name": row.name},
            attributes={"name": row.name},
        )
        for row in connection.execute(stmt)
    }


def _read_categories(connection: Connection) -> dict[RowKey, ReplicaRow]:
    stmt = select(
        category_table.c.id,
        category_table.c.name,
        category_table.c.name_key,
        business_unit_table.c.name_key.label("unit_key"),
    ).join(business_unit_table, category_table.c.business_unit_id == business_unit_table.c.id)
    return {
        (row.name_key,): ReplicaRow(
            entity_type=EntityType.CATEGORY,
            key=(row.name_key,),
            entity_id=row.id,
            references={"business_unit": (row.unit_key,)},
            tracked={"name": row.name},
            attributes={"name": row.name},
        )
        for row in connection.execute(stmt)
    }


def _read_ranges(connection: Connection) -> dict[RowKey, ReplicaRow]:
    links: dict[UUID, list[str]] = {}
    link_stmt = select(category_range_table.c.range_id, category_table.c.name_key).join(
        category_table, category_range_table.c.category_id == category_table.c.id
    )
    for link in connection.execute(link_stmt):
        links.setdefault(link.range_id, []).append(link.name_key)

    rows: dict[RowKey, ReplicaRow] = {}
    stmt = select(*_reviewable_columns(range_table)).order_by(range_table.c.id)
    for row in connection.execute(stmt):
        replica = _reviewable_row(
            EntityType.RANGE,
            row,
            references={"categories": tuple(sorted(set(links.get(row.id, []))))},
        )
        rows[replica.key] = replica
    return rows


def _read_campaigns(connection: Connection) -> dict[RowKey, ReplicaRow]:
    owner = range_table.alias("owner")
    stmt = (
        select(*_reviewable_columns(campaign_table), owner.c.name_key.label("range_key"))
        .outerjoin(owner, campaign_table.c.range_id == owner.c.id)
        .order_by(campaign_table.c.id)
    )
    rows: dict[RowKey, ReplicaRow] = {}
    for row in connection.execute(stmt):
        range_key = cast(str | None, row.range_key)
        replica = _reviewable_row(
            EntityType.CAMPAIGN,
            row,
            references={"range": (range_key,) if range_key is not None else ()},
        )
        rows[replica.key] = replica
    return rows


def _reviewable_columns(table: Table) -> tuple[ColumnElement[Any], ...]:
    return (
        table.c.id,
        table.c.name,
        table.c.name_key,
        table.c.status,
        table.c._provenance.label("provenance"),  # noqa: SLF001
    )


def _reviewable_row(
    entity_type: EntityType,
    row: Row[Any],
    *,
    references: Mapping[str, tuple[str, ...]],
) -> ReplicaRow:
    status = EntityStatus(row.status)
    # Archived names may be reused, so archived rows are told apart by id.
    key = (row.name_key,) if status is not EntityStatus.ARCHIVED else (row.name_key, str(row.id))
    return ReplicaRow(
        entity_type=entity_type,
        key=key,
        entity_id=row.id,
        references=references,
        tracked={"name": row.name, "status": status.value},
        attributes={"name": row.name, "status": status, "provenance": row.provenance},
    )


def _read_spend_records(connection: Connection) -> dict[RowKey, ReplicaRow]:
    category = category_table.alias("record_category")
    range_ = range_table.alias("record_range")
    campaign = campaign_table.alias("record_campaign")
    stmt = (
        select(
            spend_record_table,
            category.c.name_key.label("category_key"),
            range_.c.name_key.label("range_key"),
            campaign.c.name_key.label("campaign_key"),
        )
        .join(category, spend_record_table.c.category_id == category.c.id)
        .outerjoin(range_, spend_record_table.c.range_id == range_.c.id)
        .outerjoin(campaign, spend_record_table.c.campaign_id == campaign.c.id)
    )
    rows: dict[RowKey, ReplicaRow] = {}
    for row in connection.execute(stmt):
        key = (row.session_id, str(row.row_number))
        metrics = cast(dict[str, float | None], row.metrics or {})
        rows[key] = ReplicaRow(
            entity_type=EntityType.SPEND_RECORD,
            key=key,
            entity_id=row.id,
            references={
                "category": (row.category_key,),
                "range": _optional_key(row.range_key),
                "campaign": _optional_key(row.campaign_key),
            },
            tracked={
                "business_unit": row.business_unit,
                "company": row.company,
                "metrics": json.dumps(metrics, sort_keys=True),
            },
            attributes={
                "session_id": row.session_id,
                "row_number": row.row_number,
                "business_unit": row.business_unit,
                "company": row.company,
                "metrics": metrics,
            },
        )
    return rows


def _optional_key(value: str | None) -> tuple[str, ...]:
    return (value,) if value is not None else ()


# Writes ---------------------------------------------------------------------------------


def _resolve(
    connection: Connection,
    entity_type: EntityType,
    key: str,
    *,
    relation: str,
) -> UUID:
    table = TABLE_BY_ENTITY_TYPE[entity_type]
    entity_id = _find_id(connection, table, key, reviewable=entity_type in _REVIEWABLE)
    if entity_id is None:
        raise UnresolvedReferenceError(entity_type=entity_type, name=key, field=relation)
    return entity_id


def _resolve_optional(
    connection: Connection,
    entity_type: EntityType,
    keys: Iterable[str],
    *,
    relation: str,
) -> UUID | None:
    key = next(iter(keys), None)
    if key is None:
        return None
    return _resolve(connection, entity_type, key, relation=relation)


def _find_id(connection: Connection, table: Table, key: str, *, reviewable: bool) -> UUID | None:
    stmt = select(table.c.id).where(table.c.name_key == normalize_name(key))
    if reviewable:
        live = stmt.where(table.c.status != EntityStatus.ARCHIVED)
        found = connection.execute(live.limit(1)).scalar_one_or_none()
        if found is not None:
            return found
    return connection.execute(stmt.order_by(table.c.id).limit(1)).scalar_one_or_none()


def _target_id(
    connection: Connection,
    table: Table,
    row: ReplicaRow,
    *,
    reviewable: bool,
) -> UUID | None:
    """Existing destination row for ``row``: by name first, then by entity id.

    Archived reviewable rows match by entity id only, and live ones never
    match an archived row by name.
    """
    if not reviewable:
        existing = _find_id(connection, table, row.key[0], reviewable=False)
    elif len(row.key) == 1:
        live = select(table.c.id).where(
            table.c.name_key == normalize_name(row.key[0]),
            table.c.status != EntityStatus.ARCHIVED,
        )
        existing = connection.execute(live.limit(1)).scalar_one_or_none()
    else:
        existing = None
    if existing is not None:
        return existing
    by_id = select(table.c.id).where(table.c.id == row.entity_id)
    return connection.execute(by_id).scalar_one_or_none()


def _upsert(
    connection: Connection,
    table: Table,
    row: ReplicaRow,
    values: Mapping[str, object],
    *,
    reviewable: bool = False,
) -> UUID:
    existing = _target_id(connection, table, row, reviewable=reviewable)
    if existing is None:
        connection.execute(insert(table).values(id=row.entity_id, **values))
        return row.entity_id
    connection.execute(update(table).where(table.c.id == existing).values(**values))
    return existing


def _named_values(row: ReplicaRow) -> dict[str, object]:
    name = cast(str, row.attributes["name"])
    return {"name": name, "name_key": normalize_name(name)}


def _reviewable_values(row: ReplicaRow) -> dict[str, object]:
    values = _named_values(row)
    values["status"] = EntityStatus(cast(str, row.attributes["status"]))
    values["_provenance"] = row.attributes.get("provenance")
    return values


def _write_business_unit(connection: Connection, row: ReplicaRow) -> None:
    _upsert(connection, business_unit_table, row, _named_values(row))


def _write_category(connection: Connection, row: ReplicaRow) -> None:
    values = _named_values(row)
    (unit_key,) = row.references["business_unit"]
    values["business_unit_id"] = _resolve(
        connection, EntityType.BUSINESS_UNIT, unit_key, relation="business_unit"
    )
    _upsert(connection, category_table, row, values)


def _write_range(connection: Connection, row: ReplicaRow) -> None:
    category_ids = [
        _resolve(connection, EntityType.CATEGORY, key, relation="categories")
        for key in row.references.get("categories", ())
    ]
    range_id = _upsert(connection, range_table, row, _reviewable_values(row), reviewable=True)
    connection.execute(
        delete(category_range_table).where(category_range_table.c.range_id == range_id)
    )
    if category_ids:
        connection.execute(
            insert(category_range_table),
            [{"category_id": category_id, "range_id": range_id} for category_id in category_ids],
        )


def _write_campaign(connection: Connection, row: ReplicaRow) -> None:
    values = _reviewable_values(row)
    values["range_id"] = _resolve_optional(
        connection, EntityType.RANGE, row.references.get("range", ()), relation="range"
    )
    _upsert(connection, campaign_table, row, values, reviewable=True)


def _write_spend_record(connection: Connection, row: ReplicaRow) -> None:
    attributes = row.attributes
    values: dict[str, object] = {
        "session_id": attributes["session_id"],
        "row_number": attributes["row_number"],
        "business_unit": attributes["business_unit"],
        "company": attributes.get("company"),
        "metrics": dict(cast(dict[str, float | None], attributes.get("metrics") or {})),
        "category_id": _resolve(
            connection,
            EntityType.CATEGORY,
            row.references["category"][0],
            relation="category",
        ),
        "range_id": _resolve_optional(
            connection, EntityType.RANGE, row.references.get("range", ()), relation="range"
        ),
        "campaign_id": _resolve_optional(
            connection,
            EntityType.CAMPAIGN,
            row.references.get("campaign", ()),
            relation="campaign",
        ),
    }
    table = spend_record_table
    stmt = (
        select(table.c.id)
        .where(table.c.session_id == attributes["session_id"])
        .where(table.c.row_number == attributes["row_number"])
    )
    existing = connection.execute(stmt).scalar_one_or_none()
    if existing is None:
        connection.execute(insert(table).values(id=row.entity_id, **values))
    else:
        connection.execute(update(table).where(table.c.id == existing).values(**values))


if TYPE_CHECKING:
    from taxonomist.domain.ports.replication import ReplicaStore

    _replica_check: ReplicaStore = SqlAlchemyReplicaStore(cast("Engine", None), label="check")
