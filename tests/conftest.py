from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from taxonomist.adapters.sqlalchemy import start_mappers
from taxonomist.adapters.sqlalchemy.migrations import upgrade_head
from taxonomist.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyTaxonomyUnitOfWork,
    build_session_factory,
    shutdown,
    startup,
)

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("MIRROR_DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


def _migrated_engine() -> Engine:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    start_mappers()
    upgrade_head(engine=engine)
    return engine


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = _migrated_engine()
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def mirror_engine() -> Iterator[Engine]:
    engine = _migrated_engine()
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyTaxonomyUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyTaxonomyUnitOfWork:
        return SqlAlchemyTaxonomyUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def file_engine(tmp_path: Path) -> Iterator[Engine]:
    """A migrated SQLite file shared by several connections, for concurrency tests."""
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'taxonomist.sqlite'}", future=True)
    start_mappers()
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def file_unit_of_work(file_engine: Engine) -> Callable[[], SqlAlchemyTaxonomyUnitOfWork]:
    session_factory = build_session_factory(file_engine)

    def factory() -> SqlAlchemyTaxonomyUnitOfWork:
        return SqlAlchemyTaxonomyUnitOfWork(session_factory)

    return factory
