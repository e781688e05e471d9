"""Shared SQLite PRAGMA helpers for the document store."""

from __future__ import annotations

import sqlite3


def apply_write_pragmas(
    conn: sqlite3.Connection,
    *,
    synchronous: str = "FULL",
    cache_size_kb: int = -16384,
    temp_store: str = "MEMORY",
    busy_timeout_ms: int = 5000,
) -> None:
    """Apply PRAGMAs for the single writer connection.

    WAL keeps a crashed commit invisible on reopen; FULL synchronous makes a
    returned commit survive power loss.
    """
    conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute(f"PRAGMA synchronous = {synchronous}")
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")
    conn.execute(f"PRAGMA temp_store = {temp_store}")
