from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from taxonomist.config import (
    InvalidConfigurationValueError,
    MissingConfigurationError,
    StorageConfig,
    env_bool,
    env_float,
    env_int,
    get_database_config,
    get_import_config,
    get_storage_config,
    require_env_vars,
)

if TYPE_CHECKING:
    from pathlib import Path


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    assert require_env_vars(["EXAMPLE_VAR"]) == {"EXAMPLE_VAR": "value"}


def test_require_env_vars_raises_for_missing_and_blank(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_VAR", raising=False)
    monkeypatch.setenv("BLANK_VAR", "   ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_VAR", "BLANK_VAR"])

    assert "BLANK_VAR, MISSING_VAR" in str(exc.value)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), ("YES", True), (" on ", True), ("0", False), ("False", False), ("", True)],
)
def test_env_bool(
    monkeypatch: pytest.MonkeyPatch,
    raw: str,
    expected: bool,  # noqa: FBT001
) -> None:
    monkeypatch.setenv("FLAG", raw)

    assert env_bool("FLAG", True) is expected  # noqa: FBT003


def test_env_numbers_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("COUNT", raising=False)
    monkeypatch.setenv("RATIO", "2.5")

    assert env_int("COUNT", 7) == 7
    assert env_float("RATIO", 1.0) == 2.5


@pytest.mark.parametrize(
    ("loader", "raw", "expected"),
    [
        (lambda: env_int("VALUE", 1), "many", "an integer"),
        (lambda: env_int("VALUE", 1, minimum=1), "0", ">= 1"),
        (lambda: env_float("VALUE", 1.0), "fast", "a number"),
        (lambda: env_bool("VALUE", False), "maybe", "a boolean flag"),  # noqa: FBT003
    ],
)
def test_invalid_values_raise(
    monkeypatch: pytest.MonkeyPatch,
    loader: object,
    raw: str,
    expected: str,
) -> None:
    monkeypatch.setenv("VALUE", raw)

    with pytest.raises(InvalidConfigurationValueError) as exc:
        loader()  # type: ignore[operator]

    assert exc.value.name == "VALUE"
    assert exc.value.expected == expected


def test_import_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SESSION_TIMEOUT_HOURS", "1.5")
    monkeypatch.setenv("TAXONOMIST_AUTO_CREATE", "no")
    monkeypatch.setenv("TAXONOMIST_PROGRESS_FLUSH_INTERVAL", "10")
    monkeypatch.delenv("TAXONOMIST_VALIDATION_WORKERS", raising=False)

    config = get_import_config()

    assert config.session_timeout == timedelta(minutes=90)
    assert not config.auto_create
    assert config.progress_flush_interval == 10
    assert config.validation_workers == 1


def test_storage_paths_live_under_the_data_dir(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("TAXONOMIST_DATA_DIR", str(tmp_path / "state"))

    storage = get_storage_config()

    base = (tmp_path / "state").resolve()
    assert storage.sessions_dir() == base / "sessions"
    assert storage.sessions_dir().is_dir()
    assert storage.lock_path() == base / "sync.lock"
    assert storage.database_uri() == f"sqlite+pysqlite:///{base / 'taxonomist.db'}"


def test_database_uris_prefer_the_environment(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    storage = StorageConfig(data_dir=tmp_path)
    monkeypatch.setenv("DATABASE_URI", "postgresql://primary/taxonomy")
    monkeypatch.delenv("MIRROR_DATABASE_URI", raising=False)

    config = get_database_config(storage=storage)

    assert config.uri == "postgresql://primary/taxonomy"
    assert config.mirror_uri == storage.mirror_database_uri()
