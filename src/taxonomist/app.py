"""Application orchestration entry points."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from taxonomist.adapters.files import (
    FileAdvisoryLock,
    FileImportSessionRepository,
    read_master_data,
    write_master_data,
)
from taxonomist.adapters.sqlalchemy import (
    SqlAlchemyReplicaStore,
    SqlAlchemySnapshotVersionLog,
    SqlAlchemyTaxonomyUnitOfWork,
    prepare_engine,
    startup,
)
from taxonomist.adapters.sqlalchemy.unit_of_work import configured_engine, is_started
from taxonomist.config import (
    ImportConfig,
    StorageConfig,
    get_database_config,
    get_import_config,
    get_storage_config,
)
from taxonomist.domain.imports import ImportSessionManager
from taxonomist.domain.master_data import (
    ConsistencySummary,
    MasterDataGraph,
    RepairResult,
    SeedResult,
    SnapshotStatistics,
    Violation,
    change_status,
    check_consistency,
    exit_code,
    load_snapshot,
    repair_snapshot,
    seed_master_data,
    snapshot_statistics,
    summarize,
)
from taxonomist.domain.ports.unit_of_work import TaxonomyUnitOfWork
from taxonomist.domain.sync import CrossStoreSynchronizer, StoreComparison, SyncReport

if TYPE_CHECKING:
    import threading
    from pathlib import Path

    from sqlalchemy.engine import Engine

    from taxonomist.domain.imports import CommitReport, ImportSession
    from taxonomist.domain.master_data import MasterDataSnapshot
    from taxonomist.domain.model import EntityStatus, EntityType, ReviewableEntity

UnitOfWorkFactory = Callable[[], TaxonomyUnitOfWork]

log = getLogger(__name__)

_ROWS_ADAPTER = TypeAdapter(list[dict[str, str | int | float | None]])


@dataclass(frozen=True, slots=True)
class ConsistencyReport:
    snapshot: MasterDataSnapshot
    violations: tuple[Violation, ...]
    summary: ConsistencySummary
    statistics: SnapshotStatistics

    @property
    def exit_code(self) -> int:
        return exit_code(self.violations)


@dataclass(frozen=True, slots=True)
class Runtime:
    """Adapters wired together for one process."""

    engine: Engine
    unit_of_work_factory: UnitOfWorkFactory
    graph: MasterDataGraph
    sessions: ImportSessionManager
    lock: FileAdvisoryLock
    storage: StorageConfig


def build_runtime(
    *,
    engine: Engine | None = None,
    storage: StorageConfig | None = None,
    import_config: ImportConfig | None = None,
) -> Runtime:
    """Start the operational store and wire graph, sessions and lock around it."""

    storage_config = storage or get_storage_config()
    if engine is not None:
        startup(engine=engine, force=True)
    elif not is_started():
        startup(database_uri=get_database_config(storage=storage_config).uri)
    active_engine = configured_engine()
    if active_engine is None:  # pragma: no cover - startup() always sets the engine
        raise RuntimeError("Operational store did not start")

    unit_of_work_factory: UnitOfWorkFactory = SqlAlchemyTaxonomyUnitOfWork
    graph = MasterDataGraph(
        source=lambda: load_snapshot(unit_of_work_factory),
        version_log=SqlAlchemySnapshotVersionLog(active_engine),
    )
    lock = FileAdvisoryLock(storage_config.lock_path())
    manager = ImportSessionManager(
        sessions=FileImportSessionRepository(storage_config.sessions_dir()),
        graph=graph,
        unit_of_work_factory=unit_of_work_factory,
        lock=lock,
        config=import_config or get_import_config(),
    )
    return Runtime(
        engine=active_engine,
        unit_of_work_factory=unit_of_work_factory,
        graph=graph,
        sessions=manager,
        lock=lock,
        storage=storage_config,
    )


# Master data -----------------------------------------------------------------------


def check_master_data(
    *,
    master_data: Path | None = None,
    runtime: Runtime | None = None,
) -> ConsistencyReport:
    """Run the consistency checker over a document, or over the store when none is given."""

    if master_data is not None:
        snapshot = read_master_data(master_data)
    else:
        snapshot = (runtime or build_runtime()).graph.load()
    violations = tuple(check_consistency(snapshot))
    report = ConsistencyReport(
        snapshot=snapshot,
        violations=violations,
        summary=summarize(violations),
        statistics=snapshot_statistics(snapshot),
    )
    for violation in violations:
        log.warning("%s [%s] %s", violation.severity, violation.type, violation.message)
    log.info(
        "Consistency check on version %s: critical=%s warning=%s (categories=%s, ranges=%s, "
        "campaigns=%s, ranges with campaigns=%s)",
        snapshot.version,
        report.summary.critical,
        report.summary.warning,
        report.statistics.categories,
        report.statistics.ranges,
        report.statistics.campaigns,
        report.statistics.ranges_with_campaigns,
    )
    return report


def repair_master_data(master_data: Path, *, write: bool = False) -> RepairResult:
    result = repair_snapshot(read_master_data(master_data))
    for action in result.actions:
        log.info("Repair: %s", action)
    if write and result.changed:
        write_master_data(master_data, result.snapshot)
    log.info(
        "Repair of %s: %s action(s)%s",
        master_data,
        len(result.actions),
        " written" if write and result.changed else "",
    )
    return result


def seed_store(master_data: Path, *, runtime: Runtime | None = None) -> SeedResult:
    """Write a master data document into the operational store and refresh the graph."""

    active = runtime or build_runtime()
    snapshot = read_master_data(master_data)
    summary = summarize(check_consistency(snapshot))
    if summary.critical:
        log.warning(
            "Seeding %s with %s critical consistency violation(s); run `taxonomist repair` first "
            "to fix reciprocal edges",
            master_data,
            summary.critical,
        )
    result = seed_master_data(snapshot, unit_of_work_factory=active.unit_of_work_factory)
    active.graph.refresh(reason=f"seed from {master_data.name}")
    return result


def set_node_status(
    entity_type: EntityType,
    name: str,
    status: EntityStatus,
    *,
    runtime: Runtime | None = None,
) -> ReviewableEntity:
    active = runtime or build_runtime()
    entity = change_status(
        entity_type,
        name,
        status,
        unit_of_work_factory=active.unit_of_work_factory,
    )
    active.graph.refresh(reason=f"{entity_type} {entity.name!r} set to {status}")
    return entity


# Imports -------------------------------------------------------------------------------


def read_import_rows(path: Path) -> list[dict[str, str | int | float | None]]:
    """Load a JSON array of string-keyed rows."""

    try:
        return _ROWS_ADAPTER.validate_json(path.read_bytes())
    except ValidationError as exc:
        raise ValueError(f"{path} must contain a JSON array of objects: {exc}") from exc


def import_file(
    path: Path,
    *,
    schema: str,
    business_unit: str,
    auto_create: bool | None = None,
    commit: bool = False,
    runtime: Runtime | None = None,
) -> tuple[ImportSession, CommitReport | None]:
    """Upload and validate a file; commit it too when asked and nothing blocks."""

    active = runtime or build_runtime()
    rows = read_import_rows(path)
    manager = active.sessions
    session = manager.upload(
        rows,
        file_name=path.name,
        business_unit=business_unit,
        schema=schema,
        auto_create=auto_create,
        file_size=path.stat().st_size,
    )
    session = manager.validate(session.session_id)
    if not commit:
        return session, None
    if not session.can_import:
        log.warning(
            "Session %s not committed: %s blocking issue(s)",
            session.session_id,
            session.summary.blocking if session.summary is not None else 0,
        )
        return session, None
    report = manager.commit(session.session_id)
    return manager.get(session.session_id), report


def commit_session(session_id: str, *, runtime: Runtime | None = None) -> CommitReport:
    return (runtime or build_runtime()).sessions.commit(session_id)


# Sync ----------------------------------------------------------------------------------


def build_synchronizer(
    *,
    runtime: Runtime | None = None,
    mirror_engine: Engine | None = None,
) -> CrossStoreSynchronizer:
    active = runtime or build_runtime()
    target_engine = mirror_engine or prepare_engine(
        database_uri=get_database_config(storage=active.storage).mirror_uri
    )
    return CrossStoreSynchronizer(
        source=SqlAlchemyReplicaStore(active.engine, label="operational"),
        target=SqlAlchemyReplicaStore(target_engine, label="mirror"),
        lock=active.lock,
    )


def sync_stores(
    *,
    dry_run: bool = False,
    cancel: threading.Event | None = None,
    runtime: Runtime | None = None,
    mirror_engine: Engine | None = None,
) -> StoreComparison | SyncReport:
    synchronizer = build_synchronizer(runtime=runtime, mirror_engine=mirror_engine)
    if dry_run:
        return synchronizer.compare()
    report = synchronizer.run(cancel=cancel)
    log.info(
        "Finished sync %s -> %s: applied=%s failed=%s cancelled=%s duration=%ss",
        report.source,
        report.target,
        report.applied,
        report.failed,
        report.cancelled,
        report.duration_seconds,
    )
    return report


def dump_json(payload: object) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)
