"""SQLAlchemy-backed unit of work for the taxonomy store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from taxonomist.adapters.sqlalchemy.mappings import start_mappers
from taxonomist.adapters.sqlalchemy.migrations import upgrade_head
from taxonomist.adapters.sqlalchemy.repositories import (
    SqlAlchemyBusinessUnitRepository,
    SqlAlchemyCampaignRepository,
    SqlAlchemyCategoryRepository,
    SqlAlchemyRangeRepository,
    SqlAlchemySpendRecordRepository,
)
from taxonomist.config import get_database_config
from taxonomist.domain.ports.persistence import StoreUnavailableError
from taxonomist.domain.ports.unit_of_work import RepositoryCollection, TaxonomyRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call taxonomist.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        if self._session_factory is None:
            self._session_factory = build_session_factory(self._engine)
        return self._session_factory


_STATE = _AdapterState()


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def prepare_engine(*, engine: Engine | None = None, database_uri: str | None = None) -> Engine:
    """Create (if needed) and migrate an engine without registering it."""

    resolved_engine = engine or create_engine(
        database_uri or get_database_config().uri,
        future=True,
    )
    start_mappers()
    try:
        upgrade_head(engine=resolved_engine)
    except (OperationalError, DisconnectionError) as exc:
        raise StoreUnavailableError(f"Cannot reach {resolved_engine.url!r}: {exc}") from exc
    return resolved_engine


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Initialise the operational engine, schema, and session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )
    _STATE.engine = prepare_engine(engine=engine, database_uri=database_uri)


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    """Return whether the adapter has been initialised."""

    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """Generic SQLAlchemy unit of work with pluggable repository collections."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.session_factory: sessionmaker[Session] = session_factory or _STATE.session_factory
        self._session: Session | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        self.session = self.session_factory()
        self._repositories = self._build_repositories(self.session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        self.session.close()
        self.session = None
        if isinstance(exc_value, OperationalError | DisconnectionError):
            raise StoreUnavailableError(str(exc_value)) from exc_value
        return False

    def commit(self) -> None:
        try:
            self.session.commit()
        except (OperationalError, DisconnectionError) as exc:
            raise StoreUnavailableError(str(exc.orig or exc)) from exc

    def rollback(self) -> None:
        self.session.rollback()

    @property
    def repositories(self) -> TRepositories:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = session


class SqlAlchemyTaxonomyUnitOfWork(BaseSqlAlchemyUnitOfWork[TaxonomyRepositories]):
    """Unit of work over the taxonomy repositories and the committed spend rows."""

    def _build_repositories(self, session: Session) -> TaxonomyRepositories:
        return TaxonomyRepositories(
            business_units=SqlAlchemyBusinessUnitRepository(session),
            categories=SqlAlchemyCategoryRepository(session),
            ranges=SqlAlchemyRangeRepository(session),
            campaigns=SqlAlchemyCampaignRepository(session),
            records=SqlAlchemySpendRecordRepository(session),
        )


if TYPE_CHECKING:
    from taxonomist.domain.ports.unit_of_work import TaxonomyUnitOfWork

    _uow_check: TaxonomyUnitOfWork = SqlAlchemyTaxonomyUnitOfWork()
