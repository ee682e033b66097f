"""The live master data graph: one current snapshot, swapped atomically.

Readers call :meth:`MasterDataGraph.load` and work against the immutable
snapshot they received; they never take a lock. Writers serialise on a single
lock, build a new snapshot copy-on-write, pass it through the consistency
gate and publish it with one attribute assignment. Every published version is
appended to the version log so earlier versions stay available for rollback.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from taxonomist.domain.master_data.consistency import check_consistency, new_violations
from taxonomist.domain.master_data.editor import SnapshotEditor
from taxonomist.domain.master_data.snapshot import EMPTY_SNAPSHOT

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from taxonomist.domain.master_data.consistency import Violation
    from taxonomist.domain.master_data.snapshot import MasterDataSnapshot
    from taxonomist.domain.model import EntityType
    from taxonomist.domain.ports.versions import SnapshotVersion, SnapshotVersionLog

type SnapshotSource = Callable[[], MasterDataSnapshot]

log = logging.getLogger(__name__)


class ConsistencyGateError(ValueError):
    """Raised when an edit would introduce new critical consistency violations."""

    def __init__(self, *, reason: str, violations: Sequence[Violation]) -> None:
        self.reason = reason
        self.violations = tuple(violations)
        details = "; ".join(violation.message for violation in self.violations[:3])
        super().__init__(
            f"Master data edit {reason!r} rejected: "
            f"{len(self.violations)} new critical violation(s): {details}"
        )


class UnknownVersionError(LookupError):
    def __init__(self, *, version: int) -> None:
        self.version = version
        super().__init__(f"No master data version {version} in the version log")


class MasterDataGraph:
    def __init__(
        self,
        *,
        source: SnapshotSource | None = None,
        version_log: SnapshotVersionLog | None = None,
        initial: MasterDataSnapshot | None = None,
    ) -> None:
        self._source = source
        self._version_log = version_log
        self._current: MasterDataSnapshot | None = initial
        self._write_lock = threading.Lock()

    # Reads ------------------------------------------------------------------------

    def load(self) -> MasterDataSnapshot:
        current = self._current
        if current is not None:
            return current
        with self._write_lock:
            return self._current_locked()

    def categories_of(self, range_: str) -> frozenset[str]:
        return self.load().categories_of(range_)

    def ranges_of(self, category: str) -> frozenset[str]:
        return self.load().ranges_of(category)

    def campaigns_of(self, range_: str) -> frozenset[str]:
        return self.load().campaigns_of(range_)

    def resolve_business_unit(
        self,
        name: str,
        entity_type: EntityType | None = None,
    ) -> str | None:
        return self.load().resolve_business_unit(name, entity_type)

    def history(self) -> list[SnapshotVersion]:
        if self._version_log is None:
            return []
        return self._version_log.history()

    # Writes -----------------------------------------------------------------------

    def swap(
        self,
        snapshot: MasterDataSnapshot,
        *,
        reason: str,
        author: str | None = None,
    ) -> MasterDataSnapshot:
        """Publish ``snapshot`` as the next version after the consistency gate."""
        with self._write_lock:
            return self._swap_locked(snapshot, reason=reason, author=author, enforce=True)

    def edit(
        self,
        mutate: Callable[[SnapshotEditor], object],
        *,
        reason: str,
        author: str | None = None,
    ) -> MasterDataSnapshot:
        """Apply ``mutate`` to a draft of the current snapshot and publish it."""
        with self._write_lock:
            base = self._current_locked()
            editor = SnapshotEditor(base)
            mutate(editor)
            if not editor.changes:
                return base
            return self._swap_locked(editor.build(), reason=reason, author=author, enforce=True)

    def refresh(
        self,
        *,
        reason: str = "refresh from store",
        author: str | None = None,
    ) -> MasterDataSnapshot:
        """Reload from the backing store; the store is authoritative, so no gate."""
        if self._source is None:
            raise RuntimeError("MasterDataGraph has no snapshot source to refresh from")
        loaded = self._source()
        with self._write_lock:
            base = self._current_locked()
            if base.same_content(loaded):
                return base
            return self._swap_locked(loaded, reason=reason, author=author, enforce=False)

    def rollback(self, version: int, *, author: str | None = None) -> MasterDataSnapshot:
        if self._version_log is None:
            raise UnknownVersionError(version=version)
        target = self._version_log.get(version)
        if target is None:
            raise UnknownVersionError(version=version)
        with self._write_lock:
            return self._swap_locked(
                target,
                reason=f"rollback to version {version}",
                author=author,
                enforce=False,
            )

    # Internals ----------------------------------------------------------------------

    def _current_locked(self) -> MasterDataSnapshot:
        if self._current is None:
            self._current = self._initial_snapshot()
        return self._current

    def _initial_snapshot(self) -> MasterDataSnapshot:
        persisted = self._version_log.latest() if self._version_log is not None else None
        if self._source is None:
            return persisted or EMPTY_SNAPSHOT
        loaded = self._source()
        if persisted is not None and persisted.same_content(loaded):
            return loaded.with_version(persisted.version)
        version = (persisted.version if persisted is not None else 0) + 1
        return self._record(loaded.with_version(version), reason="load from store", author=None)

    def _swap_locked(
        self,
        candidate: MasterDataSnapshot,
        *,
        reason: str,
        author: str | None,
        enforce: bool,
    ) -> MasterDataSnapshot:
        previous = self._current_locked()
        introduced = [
            violation
            for violation in new_violations(
                check_consistency(previous),
                check_consistency(candidate),
            )
            if violation.is_critical
        ]
        if introduced:
            if enforce:
                log.warning(
                    "Rejected master data edit %r: %s new critical violation(s)",
                    reason,
                    len(introduced),
                )
                raise ConsistencyGateError(reason=reason, violations=introduced)
            for violation in introduced:
                log.warning("Master data %s: %s", reason, violation.message)

        versioned = candidate.with_version(previous.version + 1)
        self._record(versioned, reason=reason, author=author)
        self._current = versioned
        return versioned

    def _record(
        self,
        snapshot: MasterDataSnapshot,
        *,
        reason: str,
        author: str | None,
    ) -> MasterDataSnapshot:
        if self._version_log is not None:
            self._version_log.append(snapshot, reason=reason, author=author)
        log.info("Master data version %s published (%s)", snapshot.version, reason)
        return snapshot
