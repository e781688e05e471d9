"""Unit tests for mail index settings."""

from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError
import pytest

from mail_index.config import DEFAULT_INDEX_DIR, Settings, get_settings


pytestmark = pytest.mark.unit


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.index_dir == DEFAULT_INDEX_DIR
    assert settings.storage_backend == "sqlite"
    assert settings.bm25_k1 == 1.2
    assert settings.bm25_b == 0.75
    assert settings.log_level == "INFO"
    assert settings.index_name == "searchindex"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MAIL_INDEX_INDEX_DIR", str(tmp_path / "mail"))
    monkeypatch.setenv("MAIL_INDEX_STORAGE_BACKEND", "json")
    monkeypatch.setenv("MAIL_INDEX_BM25_K1", "2.0")
    monkeypatch.setenv("MAIL_INDEX_LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.index_dir == tmp_path / "mail"
    assert settings.storage_backend == "json"
    assert settings.bm25_k1 == 2.0
    assert settings.log_level == "DEBUG"
    assert settings.index_name == "mail"


def test_index_dir_expands_user(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))

    settings = get_settings(index_dir="~/idx")

    assert settings.index_dir == tmp_path / "idx"


@pytest.mark.parametrize(
    "overrides",
    [
        {"storage_backend": "lmdb"},
        {"bm25_k1": 0},
        {"bm25_b": 1.5},
        {"log_level": "chatty"},
    ],
)
def test_invalid_values_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)
