"""SQLAlchemy mapping metadata for the taxonomy domain model."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any, Final, cast

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
    text,
)
from sqlalchemy.orm import configure_mappers, relationship

from taxonomist.domain.model import (
    BusinessUnit,
    Campaign,
    Category,
    EntityStatus,
    EntityType,
    Provenance,
    Range,
    SpendRecord,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]

# the Enum columns store member names
_LIVE_ONLY: Final[str] = "status != 'ARCHIVED'"


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class ProvenanceType(TypeDecorator[Provenance]):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: Provenance | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(value.to_payload(), sort_keys=True)

    def process_result_value(self, value: str | None, dialect: Dialect) -> Provenance | None:
        _ = dialect
        if value is None:
            return None
        loaded = json.loads(value)
        if not isinstance(loaded, dict):
            return None
        return Provenance.from_payload(cast(dict[str, Any], loaded))


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Taxonomy tables ---------------------------------------------------------------

business_unit_table = Table(
    "business_unit",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("name_key", String, nullable=False, unique=True),
)

category_table = Table(
    "category",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("name_key", String, nullable=False, unique=True),
    Column(
        "business_unit_id",
        UUIDColumnType,
        ForeignKey("business_unit.id", ondelete="RESTRICT"),
        nullable=False,
    ),
)

range_table = Table(
    "range",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("name_key", String, nullable=False),
    Column("status", Enum(EntityStatus, native_enum=False), nullable=False),
    Column("provenance", ProvenanceType, key="_provenance", nullable=True),
    Index(
        "uq_range_live_name_key",
        "name_key",
        unique=True,
        sqlite_where=text(_LIVE_ONLY),
        postgresql_where=text(_LIVE_ONLY),
    ),
)

campaign_table = Table(
    "campaign",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("name_key", String, nullable=False),
    Column("status", Enum(EntityStatus, native_enum=False), nullable=False),
    Column("provenance", ProvenanceType, key="_provenance", nullable=True),
    Column("range_id", UUIDColumnType, ForeignKey("range.id", ondelete="SET NULL"), nullable=True),
    Index(
        "uq_campaign_live_name_key",
        "name_key",
        unique=True,
        sqlite_where=text(_LIVE_ONLY),
        postgresql_where=text(_LIVE_ONLY),
    ),
)

category_range_table = Table(
    "category_range",
    mapper_registry.metadata,
    Column(
        "category_id",
        UUIDColumnType,
        ForeignKey("category.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "range_id",
        UUIDColumnType,
        ForeignKey("range.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

spend_record_table = Table(
    "spend_record",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("session_id", String, nullable=False),
    Column("row_number", Integer, nullable=False),
    Column("business_unit", String, nullable=False),
    Column(
        "category_id",
        UUIDColumnType,
        ForeignKey("category.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("range_id", UUIDColumnType, ForeignKey("range.id", ondelete="SET NULL"), nullable=True),
    Column(
        "campaign_id",
        UUIDColumnType,
        ForeignKey("campaign.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("company", String, nullable=True),
    Column("metrics", JSON, nullable=False, default=dict),
    UniqueConstraint("session_id", "row_number", name="uq_spend_record_row"),
)

master_data_version_table = Table(
    "master_data_version",
    mapper_registry.metadata,
    Column("version", Integer, primary_key=True, autoincrement=False),
    Column("created_at", UTCDateTime, nullable=False),
    Column("reason", String, nullable=False),
    Column("author", String, nullable=True),
    Column("document", JSON, nullable=False),
)

TABLE_BY_ENTITY_TYPE: Final[dict[EntityType, Table]] = {
    EntityType.BUSINESS_UNIT: business_unit_table,
    EntityType.CATEGORY: category_table,
    EntityType.RANGE: range_table,
    EntityType.CAMPAIGN: campaign_table,
    EntityType.SPEND_RECORD: spend_record_table,
}


@cache
def start_mappers() -> orm.registry:
    """Configure imperative mappings between domain dataclasses and tables."""

    mapper_registry.map_imperatively(
        BusinessUnit,
        business_unit_table,
        properties={
            "_categories": relationship(
                Category,
                back_populates="_business_unit",
            ),
        },
    )

    mapper_registry.map_imperatively(
        Category,
        category_table,
        properties={
            "_business_unit": relationship(
                BusinessUnit,
                back_populates="_categories",
            ),
            "_ranges": relationship(
                Range,
                secondary=category_range_table,
                back_populates="_categories",
            ),
        },
    )

    mapper_registry.map_imperatively(
        Range,
        range_table,
        properties={
            "_categories": relationship(
                Category,
                secondary=category_range_table,
                back_populates="_ranges",
            ),
            "_campaigns": relationship(
                Campaign,
                back_populates="_range",
            ),
        },
    )

    mapper_registry.map_imperatively(
        Campaign,
        campaign_table,
        properties={
            "_range": relationship(
                Range,
                back_populates="_campaigns",
            ),
        },
    )

    mapper_registry.map_imperatively(
        SpendRecord,
        spend_record_table,
        properties={
            "category": relationship(
                Category,
                foreign_keys=[spend_record_table.c.category_id],
            ),
            "range_": relationship(
                Range,
                foreign_keys=[spend_record_table.c.range_id],
            ),
            "campaign": relationship(
                Campaign,
                foreign_keys=[spend_record_table.c.campaign_id],
            ),
        },
    )

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
