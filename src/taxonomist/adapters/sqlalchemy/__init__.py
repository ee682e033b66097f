"""SQLAlchemy adapter package for taxonomist."""

from __future__ import annotations

from .mappings import (
    TABLE_BY_ENTITY_TYPE,
    create_all_tables,
    mapper_registry,
    start_mappers,
)
from .replica import SqlAlchemyReplicaStore
from .repositories import (
    SqlAlchemyBusinessUnitRepository,
    SqlAlchemyCampaignRepository,
    SqlAlchemyCategoryRepository,
    SqlAlchemyRangeRepository,
    SqlAlchemySpendRecordRepository,
)
from .unit_of_work import (
    SqlAlchemyTaxonomyUnitOfWork,
    StartupError,
    prepare_engine,
    shutdown,
    startup,
)
from .versions import SqlAlchemySnapshotVersionLog

__all__ = [
    "TABLE_BY_ENTITY_TYPE",
    "SqlAlchemyBusinessUnitRepository",
    "SqlAlchemyCampaignRepository",
    "SqlAlchemyCategoryRepository",
    "SqlAlchemyRangeRepository",
    "SqlAlchemyReplicaStore",
    "SqlAlchemySnapshotVersionLog",
    "SqlAlchemySpendRecordRepository",
    "SqlAlchemyTaxonomyUnitOfWork",
    "StartupError",
    "create_all_tables",
    "mapper_registry",
    "prepare_engine",
    "shutdown",
    "startup",
]
