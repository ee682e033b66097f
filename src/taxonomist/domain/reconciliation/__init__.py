"""Auto-creation of missing taxonomy nodes with case-insensitive dedup."""

from __future__ import annotations

from .auto_create import AutoCreatePolicy, AutoCreateReconciler, AutoCreateResult, CreatedNode
from .locks import SHARED_NAME_LOCKS, NameLockRegistry

__all__ = [
    "SHARED_NAME_LOCKS",
    "AutoCreatePolicy",
    "AutoCreateReconciler",
    "AutoCreateResult",
    "CreatedNode",
    "NameLockRegistry",
]
