"""Advisory locking port shared by commits and cross-store syncs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from contextlib import AbstractContextManager


class LockUnavailableError(RuntimeError):
    """Raised when a non-blocking lock acquisition finds the lock held."""


class AdvisoryLock(Protocol):
    def exclusive(self, *, blocking: bool = False) -> AbstractContextManager[None]: ...

    def shared(self, *, blocking: bool = True) -> AbstractContextManager[None]: ...
