"""Unit tests for the index directory lock."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from mail_index.search.errors import StoreUnavailableError
from mail_index.search.lockfile import IndexLock


pytestmark = pytest.mark.unit


def test_acquire_writes_pid_and_release_removes(tmp_path: Path) -> None:
    lock = IndexLock(tmp_path / "idx")

    lock.acquire()
    assert lock.held
    assert lock.path.read_text(encoding="utf-8") == str(os.getpid())

    lock.release()
    assert not lock.held
    assert not lock.path.exists()


def test_second_owner_is_rejected(tmp_path: Path) -> None:
    with IndexLock(tmp_path):
        with pytest.raises(StoreUnavailableError, match=f"locked by process {os.getpid()}"):
            IndexLock(tmp_path).acquire()


@pytest.mark.parametrize("content", ["999999999", "garbage", ""])
def test_stale_lock_is_reclaimed(tmp_path: Path, content: str) -> None:
    (tmp_path / IndexLock.FILENAME).write_text(content, encoding="utf-8")

    with IndexLock(tmp_path) as lock:
        assert lock.held
        assert lock.path.read_text(encoding="utf-8") == str(os.getpid())


def test_acquire_and_release_are_idempotent(tmp_path: Path) -> None:
    lock = IndexLock(tmp_path)
    lock.acquire()
    lock.acquire()
    lock.release()
    lock.release()

    assert not (tmp_path / IndexLock.FILENAME).exists()
