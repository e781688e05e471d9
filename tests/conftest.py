"""Shared test fixtures and configuration."""

from pathlib import Path
import os

import pytest

from mail_index.config import Settings
from mail_index.search.schema import create_mail_schema


@pytest.fixture(autouse=True)
def clean_index_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep MAIL_INDEX_* variables from the developer shell out of tests."""
    for key in list(os.environ):
        if key.upper().startswith("MAIL_INDEX_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def mail_schema():
    return create_mail_schema()


@pytest.fixture
def index_dir(tmp_path: Path) -> Path:
    return tmp_path / "searchindex"


@pytest.fixture
def settings(index_dir: Path) -> Settings:
    return Settings(index_dir=index_dir, tracing_enabled=False, _env_file=None)
