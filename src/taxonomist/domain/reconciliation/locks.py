"""Per-name mutual exclusion for find-or-create."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from taxonomist.domain.model import normalize_name

if TYPE_CHECKING:
    from collections.abc import Iterator

type LockKey = tuple[str, str]


@dataclass(slots=True)
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class NameLockRegistry:
    """One lock per (namespace, case-folded name), dropped once nobody waits on it.

    Two sessions auto-creating "Body Milk" and "body milk" contend; sessions
    creating unrelated names never do.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[LockKey, _Entry] = {}

    @contextmanager
    def hold(self, namespace: str, name: str) -> Iterator[None]:
        key = (namespace, normalize_name(name))
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.holders += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


SHARED_NAME_LOCKS = NameLockRegistry()
