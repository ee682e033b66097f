"""Advisory lock file shared by import commits and cross-store syncs.

Commits hold the lock shared, a sync holds it exclusive, so a sync never
observes a half-committed session and two syncs never overlap. Each
acquisition opens its own descriptor, which makes the lock effective between
threads of one process as well as between processes.
"""

from __future__ import annotations

import fcntl
import logging
import os
from contextlib import contextmanager
from typing import TYPE_CHECKING

from taxonomist.domain.ports.locking import LockUnavailableError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

log = logging.getLogger(__name__)


class FileAdvisoryLock:
    def __init__(self, path: Path) -> None:
        self.path = path

    @contextmanager
    def exclusive(self, *, blocking: bool = False) -> Iterator[None]:
        with self._hold(fcntl.LOCK_EX, blocking=blocking, mode="exclusive"):
            yield

    @contextmanager
    def shared(self, *, blocking: bool = True) -> Iterator[None]:
        with self._hold(fcntl.LOCK_SH, blocking=blocking, mode="shared"):
            yield

    @contextmanager
    def _hold(self, operation: int, *, blocking: bool, mode: str) -> Iterator[None]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        descriptor = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            flags = operation if blocking else operation | fcntl.LOCK_NB
            try:
                fcntl.flock(descriptor, flags)
            except BlockingIOError as exc:
                raise LockUnavailableError(f"{self.path} is already locked") from exc
            log.debug("Acquired %s lock on %s", mode, self.path)
            try:
                yield
            finally:
                fcntl.flock(descriptor, fcntl.LOCK_UN)
                log.debug("Released %s lock on %s", mode, self.path)
        finally:
            os.close(descriptor)
