"""Orchestrates import sessions from upload to commit.

Commit writes one record per unit of work, in row order. A record that cannot
be written becomes a skipped entry in the commit report; only a store that
cannot be reached at all fails the session. Progress is held in memory for
polling and flushed to the session store every few records.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from contextlib import nullcontext
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from taxonomist.config import ImportConfig
from taxonomist.domain.master_data import ConsistencyGateError
from taxonomist.domain.model import EntityStatus, EntityType, SessionStatus, SpendRecord
from taxonomist.domain.ports.persistence import StoreUnavailableError, UnresolvedReferenceError
from taxonomist.domain.reconciliation import AutoCreateReconciler, CreatedNode, NameLockRegistry
from taxonomist.domain.validation import (
    IssueResolution,
    RecordField,
    ValidationContext,
    ValidationSummary,
    get_schema,
    map_rows,
    parse_number,
    validate_batch,
)

from .session import (
    COMMITTABLE,
    CommitError,
    CommitNotAllowedError,
    CommitProgress,
    CommitReport,
    ImportFailedError,
    ImportSession,
    SessionExpiredError,
    SessionNotFoundError,
    UploadedFile,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from taxonomist.domain.master_data import MasterDataGraph, SnapshotEditor
    from taxonomist.domain.model import Campaign, Category, Range
    from taxonomist.domain.ports.locking import AdvisoryLock
    from taxonomist.domain.ports.sessions import ImportSessionRepository
    from taxonomist.domain.ports.unit_of_work import TaxonomyUnitOfWork
    from taxonomist.domain.validation import InputRecord, RecordSchema

log = logging.getLogger(__name__)

type OverrideKey = tuple[int, str]


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class CleanupResult:
    removed: list[str] = field(default_factory=list[str])
    errors: list[str] = field(default_factory=list[str])


@dataclass(frozen=True, slots=True)
class SessionStats:
    total: int
    active: int
    expired: int
    by_status: Mapping[SessionStatus, int]

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "active": self.active,
            "expired": self.expired,
            "byStatus": {status.value: count for status, count in self.by_status.items()},
        }


@dataclass(slots=True)
class _RecordOutcome:
    created: list[CreatedNode] = field(default_factory=list[CreatedNode])
    # (child type, child name, parent name) for links made on existing pending nodes
    links: list[tuple[EntityType, str, str]] = field(
        default_factory=list[tuple[EntityType, str, str]]
    )


class ImportSessionManager:
    def __init__(
        self,
        *,
        sessions: ImportSessionRepository,
        graph: MasterDataGraph,
        unit_of_work_factory: Callable[[], TaxonomyUnitOfWork],
        reconciler: AutoCreateReconciler | None = None,
        lock: AdvisoryLock | None = None,
        config: ImportConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sessions = sessions
        self._graph = graph
        self._uow_factory = unit_of_work_factory
        self._reconciler = reconciler or AutoCreateReconciler()
        self._lock = lock
        self.config = config or ImportConfig()
        self._clock = clock
        self._commit_locks = NameLockRegistry()
        self._progress: dict[str, CommitProgress] = {}
        self._progress_guard = threading.Lock()

    # Lifecycle --------------------------------------------------------------------

    def upload(
        self,
        rows: Sequence[Mapping[str, object]],
        *,
        file_name: str,
        business_unit: str,
        schema: str,
        auto_create: bool | None = None,
        file_size: int = 0,
    ) -> ImportSession:
        get_schema(schema)
        unit = self._graph.load().find_business_unit(business_unit)
        if unit is None:
            raise UnresolvedReferenceError(entity_type=EntityType.BUSINESS_UNIT, name=business_unit)
        now = self._clock()
        session = ImportSession(
            business_unit=unit,
            schema_name=schema,
            file=UploadedFile(name=file_name, size=file_size, uploaded_at=now),
            records=[{str(key): _cell(value) for key, value in row.items()} for row in rows],
            auto_create=self.config.auto_create if auto_create is None else auto_create,
            created_at=now,
        )
        session.touch(now, self.config.session_timeout)
        self._sessions.save(session)
        log.info(
            "Uploaded session %s: %s rows from %s for %s (%s)",
            session.session_id,
            session.total_records,
            file_name,
            unit,
            schema,
        )
        return session

    def validate(self, session_id: str) -> ImportSession:
        session = self.get(session_id)
        schema = get_schema(session.schema_name)
        context = ValidationContext(
            snapshot=self._graph.load(),
            business_unit=session.business_unit,
            schema=schema,
            auto_create=session.auto_create,
        )
        result = validate_batch(
            map_rows(session.records, schema),
            context,
            max_workers=self.config.validation_workers,
        )
        session.record_validation(result.issues, result.summary)
        self._save(session)
        log.info(
            "Session %s validated: canImport=%s (%s blocking issue(s))",
            session.session_id,
            session.can_import,
            result.summary.blocking,
        )
        return session

    def review(
        self,
        session_id: str,
        *,
        overrides: Iterable[OverrideKey] = (),
        reviewer: str | None = None,
    ) -> ImportSession:
        """Mark critical issues as overridden by an operator.

        ``overrides`` are ``(row_index, column_name)`` pairs; every blocking
        issue on that cell is resolved. Unknown pairs are ignored with a warning.
        """

        session = self.get(session_id)
        wanted = set(overrides)
        matched: set[OverrideKey] = set()
        issues = []
        for issue in session.issues:
            key = (issue.row_index, issue.column_name)
            if key in wanted and issue.is_blocking:
                issue = issue.resolve(IssueResolution.OVERRIDDEN)  # noqa: PLW2901
                matched.add(key)
            issues.append(issue)
        for row_index, column in sorted(wanted - matched):
            log.warning(
                "Override for row %s column %r matches no blocking issue in session %s",
                row_index + 1,
                column,
                session.session_id,
            )
        summary = ValidationSummary.from_issues(issues, total_rows=session.total_records)
        session.record_review(issues, summary, reviewer=reviewer)
        self._save(session)
        log.info(
            "Session %s reviewed by %s: %s override(s), canImport=%s",
            session.session_id,
            reviewer or "unknown",
            len(matched),
            session.can_import,
        )
        return session

    def commit(self, session_id: str) -> CommitReport:
        with self._commit_locks.hold("session", session_id):
            session = self.get(session_id)
            if session.status not in COMMITTABLE:
                raise CommitNotAllowedError(
                    session_id=session_id,
                    reason=f"session is {session.status}",
                )
            if not session.can_import:
                blocking = session.summary.blocking if session.summary is not None else 0
                raise CommitNotAllowedError(
                    session_id=session_id,
                    reason=f"{blocking} unresolved critical issue(s)",
                )

            guard = self._lock.shared(blocking=True) if self._lock is not None else nullcontext()
            try:
                with guard:
                    report, outcome = self._commit_records(session)
            except StoreUnavailableError as exc:
                reason = f"Store unavailable: {exc}"
                log.exception("Commit of session %s failed", session_id)
                self._forget_progress(session_id)
                # A replayed commit keeps its earlier outcome; committed is terminal.
                if session.status is not SessionStatus.COMMITTED:
                    session.record_failure(reason)
                    self._save(session)
                raise ImportFailedError(session_id=session_id, reason=reason) from exc

            session.record_commit(report, at=self._clock())
            session.progress = self._forget_progress(session_id) or session.progress
            self._save(session)

        log.info(
            "Committed session %s: imported=%s skipped=%s total=%s created=%s",
            session_id,
            report.imported,
            report.skipped,
            report.total,
            report.created_count,
        )
        self._publish(session, outcome)
        return report

    def fail(self, session_id: str, reason: str) -> ImportSession:
        session = self.get(session_id)
        session.record_failure(reason)
        self._save(session)
        log.warning("Session %s marked failed: %s", session_id, reason)
        return session

    # Queries ----------------------------------------------------------------------

    def get(self, session_id: str) -> ImportSession:
        """Load a live session and slide its expiry forward."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id=session_id)
        now = self._clock()
        if session.is_expired(now):
            expired_at = session.expires_at or now
            self._sessions.delete(session_id)
            log.info("Session %s expired at %s; removed", session_id, expired_at.isoformat())
            raise SessionExpiredError(session_id=session_id, expired_at=expired_at)
        session.touch(now, self.config.session_timeout)
        self._sessions.save(session)
        return session

    def progress(self, session_id: str) -> CommitProgress | None:
        with self._progress_guard:
            live = self._progress.get(session_id)
        if live is not None:
            return live
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id=session_id)
        return session.progress

    def list_sessions(self) -> list[ImportSession]:
        sessions: list[ImportSession] = []
        for session_id in self._sessions.list_ids():
            try:
                session = self._sessions.get(session_id)
            except (OSError, ValueError) as exc:
                log.warning("Could not read session %s: %s", session_id, exc)
                continue
            if session is not None:
                sessions.append(session)
        return sorted(sessions, key=lambda session: session.created_at)

    def cleanup_expired(self) -> CleanupResult:
        result = CleanupResult()
        now = self._clock()
        for session_id in self._sessions.list_ids():
            try:
                session = self._sessions.get(session_id)
            except (OSError, ValueError) as exc:
                result.errors.append(f"{session_id}: {exc}")
                log.warning("Could not read session %s: %s", session_id, exc)
                continue
            if session is not None and session.is_expired(now):
                self._sessions.delete(session_id)
                result.removed.append(session_id)
        log.info(
            "Session cleanup removed %s expired session(s), %s error(s)",
            len(result.removed),
            len(result.errors),
        )
        return result

    def stats(self) -> SessionStats:
        now = self._clock()
        sessions = self.list_sessions()
        expired = sum(1 for session in sessions if session.is_expired(now))
        return SessionStats(
            total=len(sessions),
            active=len(sessions) - expired,
            expired=expired,
            by_status=dict(Counter(session.status for session in sessions)),
        )

    # Commit internals ---------------------------------------------------------------

    def _commit_records(self, session: ImportSession) -> tuple[CommitReport, _RecordOutcome]:
        schema = get_schema(session.schema_name)
        records = map_rows(session.records, schema)
        outcome = _RecordOutcome()
        errors: list[CommitError] = []
        imported = 0
        progress = CommitProgress(total=len(records), updated_at=self._clock())
        self._set_progress(session, progress, flush=True)

        for position, record in enumerate(records, start=1):
            try:
                self._commit_record(session, schema, record, outcome)
            except StoreUnavailableError:
                raise
            except Exception as exc:  # noqa: BLE001
                field_name = exc.field if isinstance(exc, UnresolvedReferenceError) else None
                errors.append(
                    CommitError(row=record.row_index + 1, field=field_name, reason=str(exc))
                )
                log.warning(
                    "Skipped row %s of session %s: %s",
                    record.row_index + 1,
                    session.session_id,
                    exc,
                )
            else:
                imported += 1
            progress = replace(
                progress,
                processed=position,
                imported=imported,
                skipped=len(errors),
                updated_at=self._clock(),
            )
            flush = position % self.config.progress_flush_interval == 0
            self._set_progress(session, progress, flush=flush)

        self._set_progress(session, replace(progress, finished=True), flush=False)
        report = CommitReport(
            imported=imported,
            skipped=len(errors),
            total=len(records),
            errors=tuple(errors),
            created=tuple(outcome.created),
        )
        return report, outcome

    def _commit_record(
        self,
        session: ImportSession,
        schema: RecordSchema,
        record: InputRecord,
        outcome: _RecordOutcome,
    ) -> None:
        with self._uow_factory() as uow:
            category = self._resolve_category(uow, session, schema, record)
            range_ = self._resolve_range(uow, session, schema, record, category, outcome)
            campaign = self._resolve_campaign(uow, session, schema, record, range_, outcome)
            uow.repositories.records.upsert(
                SpendRecord(
                    session_id=session.session_id,
                    row_number=record.row_index + 1,
                    business_unit=session.business_unit,
                    category=category,
                    range_=range_,
                    campaign=campaign,
                    company=record.company or None,
                    metrics={name: _metric(value) for name, value in record.metrics.items()},
                )
            )
            uow.commit()

    def _resolve_category(
        self,
        uow: TaxonomyUnitOfWork,
        session: ImportSession,
        schema: RecordSchema,
        record: InputRecord,
    ) -> Category:
        category = uow.repositories.categories.get_by_name(record.category)
        unit = category.business_unit if category is not None else None
        if category is None or unit is None or not unit.matches(session.business_unit):
            raise UnresolvedReferenceError(
                entity_type=EntityType.CATEGORY,
                name=record.category,
                field=schema.column(RecordField.CATEGORY),
            )
        return category

    def _resolve_range(
        self,
        uow: TaxonomyUnitOfWork,
        session: ImportSession,
        schema: RecordSchema,
        record: InputRecord,
        category: Category,
        outcome: _RecordOutcome,
    ) -> Range | None:
        if not schema.has(RecordField.RANGE) or not record.range_:
            return None
        column = schema.column(RecordField.RANGE)
        if not session.auto_create:
            range_ = uow.repositories.ranges.get_by_name(record.range_)
            if range_ is None:
                raise UnresolvedReferenceError(
                    entity_type=EntityType.RANGE, name=record.range_, field=column
                )
            return range_
        result = self._reconciler.ensure_range(
            uow,
            record.range_,
            category=category,
            session_id=session.session_id,
            source=session.file.name,
        )
        if result.node is not None:
            outcome.created.append(result.node)
        elif result.linked:
            outcome.links.append((EntityType.RANGE, result.entity.name, category.name))
        return result.entity

    def _resolve_campaign(
        self,
        uow: TaxonomyUnitOfWork,
        session: ImportSession,
        schema: RecordSchema,
        record: InputRecord,
        range_: Range | None,
        outcome: _RecordOutcome,
    ) -> Campaign | None:
        if not schema.has(RecordField.CAMPAIGN) or not record.campaign:
            return None
        column = schema.column(RecordField.CAMPAIGN)
        if not session.auto_create:
            campaign = uow.repositories.campaigns.get_by_name(record.campaign)
            if campaign is None:
                raise UnresolvedReferenceError(
                    entity_type=EntityType.CAMPAIGN, name=record.campaign, field=column
                )
            return campaign
        result = self._reconciler.ensure_campaign(
            uow,
            record.campaign,
            range_=range_,
            session_id=session.session_id,
            source=session.file.name,
        )
        if result.node is not None:
            outcome.created.append(result.node)
        elif result.linked and range_ is not None:
            outcome.links.append((EntityType.CAMPAIGN, result.entity.name, range_.name))
        return result.entity

    # Progress and graph -------------------------------------------------------------

    def _set_progress(
        self,
        session: ImportSession,
        progress: CommitProgress,
        *,
        flush: bool,
    ) -> None:
        with self._progress_guard:
            self._progress[session.session_id] = progress
        if flush:
            session.progress = progress
            self._save(session)

    def _forget_progress(self, session_id: str) -> CommitProgress | None:
        with self._progress_guard:
            return self._progress.pop(session_id, None)

    def _publish(self, session: ImportSession, outcome: _RecordOutcome) -> None:
        if not outcome.created and not outcome.links:
            return

        def mutate(editor: SnapshotEditor) -> None:
            for node in outcome.created:
                if node.entity_type is EntityType.RANGE:
                    editor.add_range(
                        node.name,
                        categories=[node.parent] if node.parent is not None else [],
                        status=EntityStatus.PENDING_REVIEW,
                        provenance=node.provenance,
                    )
                else:
                    editor.add_campaign(
                        node.name,
                        range_=node.parent,
                        status=EntityStatus.PENDING_REVIEW,
                        provenance=node.provenance,
                    )
            for entity_type, child, parent in outcome.links:
                if entity_type is EntityType.RANGE:
                    editor.link(parent, child)
                else:
                    editor.assign_campaign(child, parent)

        try:
            self._graph.edit(
                mutate,
                reason=f"auto-create from import session {session.session_id}",
                author=session.reviewed_by,
            )
        except ConsistencyGateError:
            # the store already holds the nodes; the next refresh reconciles the graph
            log.warning(
                "Master data graph rejected auto-created nodes from session %s",
                session.session_id,
                exc_info=True,
            )

    def _save(self, session: ImportSession) -> None:
        session.updated_at = self._clock()
        self._sessions.save(session)


def _cell(value: object) -> str:
    if value is None:
        return ""
    return str(value)


def _metric(raw: str) -> float | None:
    try:
        return parse_number(raw)
    except ValueError:
        return None
