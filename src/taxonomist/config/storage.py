"""Data storage configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "taxonomist"
DEFAULT_DB_FILENAME: Final[str] = "taxonomist.db"
DEFAULT_MIRROR_DB_FILENAME: Final[str] = "taxonomist-mirror.db"
SESSIONS_DIRNAME: Final[str] = "sessions"
SYNC_LOCK_FILENAME: Final[str] = "sync.lock"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME
    mirror_database_filename: str = DEFAULT_MIRROR_DB_FILENAME
    sessions_dirname: str = SESSIONS_DIRNAME
    lock_filename: str = SYNC_LOCK_FILENAME

    def resolve_data_dir(self) -> Path:
        return self.data_dir.expanduser().resolve()

    def ensure_data_dir(self) -> Path:
        data_dir = self.resolve_data_dir()
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    def _base(self, *, ensure: bool) -> Path:
        return self.ensure_data_dir() if ensure else self.resolve_data_dir()

    def database_path(self, *, ensure: bool = True) -> Path:
        return self._base(ensure=ensure) / self.database_filename

    def mirror_database_path(self, *, ensure: bool = True) -> Path:
        return self._base(ensure=ensure) / self.mirror_database_filename

    def sessions_dir(self, *, ensure: bool = True) -> Path:
        path = self._base(ensure=ensure) / self.sessions_dirname
        if ensure:
            path.mkdir(parents=True, exist_ok=True)
        return path

    def lock_path(self, *, ensure: bool = True) -> Path:
        return self._base(ensure=ensure) / self.lock_filename

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"

    def mirror_database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.mirror_database_path()}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str
    mirror_uri: str


def _default_data_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Local")
    else:
        base = os.getenv("XDG_DATA_HOME")
        base_path = Path(base) if base else (Path.home() / ".local" / "share")
    return (base_path / APP_DIR_NAME).expanduser().resolve()


def get_storage_config() -> StorageConfig:
    env_dir = os.getenv("TAXONOMIST_DATA_DIR")
    data_dir = Path(env_dir) if env_dir else _default_data_dir()
    return StorageConfig(data_dir=data_dir)


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    """Resolve operational and mirror database URIs.

    ``DATABASE_URI`` and ``MIRROR_DATABASE_URI`` win over the SQLite files in the
    data directory; the data directory is only touched when a default is needed.
    """

    env_uri = os.getenv("DATABASE_URI")
    env_mirror_uri = os.getenv("MIRROR_DATABASE_URI")
    if env_uri and env_mirror_uri:
        return DatabaseConfig(uri=env_uri, mirror_uri=env_mirror_uri)
    storage_config = storage or get_storage_config()
    return DatabaseConfig(
        uri=env_uri or storage_config.database_uri(),
        mirror_uri=env_mirror_uri or storage_config.mirror_database_uri(),
    )
