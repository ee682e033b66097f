"""Import session defaults."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .env import env_bool, env_float, env_int

DEFAULT_SESSION_TIMEOUT_HOURS = 6.0
DEFAULT_PROGRESS_FLUSH_INTERVAL = 25
DEFAULT_VALIDATION_WORKERS = 1


@dataclass(frozen=True, slots=True)
class ImportConfig:
    session_timeout: timedelta = timedelta(hours=DEFAULT_SESSION_TIMEOUT_HOURS)
    auto_create: bool = True
    progress_flush_interval: int = DEFAULT_PROGRESS_FLUSH_INTERVAL
    validation_workers: int = DEFAULT_VALIDATION_WORKERS


def get_import_config() -> ImportConfig:
    timeout_hours = env_float(
        "SESSION_TIMEOUT_HOURS", DEFAULT_SESSION_TIMEOUT_HOURS, minimum=0.0
    )
    return ImportConfig(
        session_timeout=timedelta(hours=timeout_hours),
        auto_create=env_bool("TAXONOMIST_AUTO_CREATE", True),  # noqa: FBT003
        progress_flush_interval=env_int(
            "TAXONOMIST_PROGRESS_FLUSH_INTERVAL", DEFAULT_PROGRESS_FLUSH_INTERVAL, minimum=1
        ),
        validation_workers=env_int(
            "TAXONOMIST_VALIDATION_WORKERS", DEFAULT_VALIDATION_WORKERS, minimum=1
        ),
    )
