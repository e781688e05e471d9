"""Durable document stores for the mail search index.

The store persists the analyzed form of every committed message and nothing
else: snapshots are rebuilt from it at open time. Two backends exist:

* ``SqliteDocumentStore`` - one row per message, each commit is a single
  transaction touching only the staged ids.
* ``JsonDocumentStore`` - the whole corpus as one minified JSON file, replaced
  atomically on every commit. Handy for small mailboxes and debugging.

Both guarantee that a reopened store shows exactly the last completed commit.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from datetime import datetime
import logging
import os
from pathlib import Path
import sqlite3
from typing import Any, ClassVar, cast

import orjson

from mail_index.search.errors import CommitFailureError, StoreUnavailableError
from mail_index.search.models import IndexedDocument
from mail_index.search.schema import Schema
from mail_index.search.session import ChangeSet
from mail_index.search.sqlite_pragmas import apply_write_pragmas


logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


@dataclass(frozen=True)
class StoreState:
    """Last committed state as read back from disk."""

    documents: list[IndexedDocument]
    generation: int = 0
    committed_at: datetime | None = None


def _parse_timestamp(raw: Any) -> datetime | None:
    if not isinstance(raw, str) or not raw:
        return None
    return datetime.fromisoformat(raw)


def _secure_permissions(path: Path) -> None:
    # Message text is private; keep index files owner-only.
    try:
        os.chmod(path, 0o600)
    except OSError as exc:
        logger.warning("Could not set secure permissions on %s: %s", path, exc)


class DocumentStore(ABC):
    """Durable mapping from document id to indexed postings."""

    backend: ClassVar[str]

    def __init__(self, directory: str | Path, schema: Schema) -> None:
        self.directory = Path(directory)
        self.schema = schema
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Index directory {self.directory} is not accessible: {exc}"
            raise StoreUnavailableError(msg) from exc

    @abstractmethod
    def load(self) -> StoreState:
        """Read the last committed state."""

    @abstractmethod
    def commit(self, changes: ChangeSet, *, generation: int, committed_at: datetime) -> None:
        """Durably apply ``changes``; all or nothing."""

    def close(self) -> None:  # noqa: B027 - optional hook
        """Release backend resources."""

    def _check_schema(self, stored: Mapping[str, Any] | None) -> None:
        if stored is None:
            return
        if dict(stored) != self.schema.to_dict():
            msg = (
                f"Index at {self.directory} was built with schema '{stored.get('name')}' "
                f"which does not match '{self.schema.name}'; rebuild the index"
            )
            raise StoreUnavailableError(msg)


class SqliteDocumentStore(DocumentStore):
    """SQLite-backed store; commit is one transaction over the staged ids."""

    backend = "sqlite"
    DB_FILENAME = "index.db"

    def __init__(self, directory: str | Path, schema: Schema) -> None:
        super().__init__(directory, schema)
        self.db_path = self.directory / self.DB_FILENAME
        is_new_db = not self.db_path.exists()
        self._conn: sqlite3.Connection | None = None
        try:
            # Commits arrive from whichever thread holds the engine's write lock.
            conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            self._conn = conn
            apply_write_pragmas(conn)
            self._create_schema(conn)
            self._check_metadata(conn)
        except sqlite3.Error as exc:
            self.close()
            msg = f"Failed to open index database {self.db_path}: {exc}"
            raise StoreUnavailableError(msg) from exc
        except StoreUnavailableError:
            self.close()
            raise
        if is_new_db:
            _secure_permissions(self.db_path)

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE TABLE IF NOT EXISTS documents (
                doc_id TEXT PRIMARY KEY,
                terms BLOB NOT NULL
            ) WITHOUT ROWID;
        """)

    def _read_metadata(self, conn: sqlite3.Connection) -> dict[str, str]:
        return {key: value for key, value in conn.execute("SELECT key, value FROM metadata")}

    def _check_metadata(self, conn: sqlite3.Connection) -> None:
        metadata = self._read_metadata(conn)
        if not metadata:
            with _transaction(conn):
                conn.executemany(
                    "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                    [
                        ("format_version", str(FORMAT_VERSION)),
                        ("schema", orjson.dumps(self.schema.to_dict()).decode("utf-8")),
                        ("generation", "0"),
                    ],
                )
            logger.info("Created mail index database at %s", self.db_path)
            return

        try:
            version = int(metadata.get("format_version", "0"))
        except ValueError as exc:
            msg = f"Corrupt format version metadata in {self.db_path}"
            raise StoreUnavailableError(msg) from exc
        if version != FORMAT_VERSION:
            msg = f"Unsupported index format version {version} in {self.db_path}"
            raise StoreUnavailableError(msg)
        try:
            stored_schema = orjson.loads(metadata["schema"]) if "schema" in metadata else None
        except orjson.JSONDecodeError as exc:
            msg = f"Corrupt schema metadata in {self.db_path}"
            raise StoreUnavailableError(msg) from exc
        self._check_schema(stored_schema)

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUnavailableError(f"Index database {self.db_path} is closed")
        return self._conn

    def load(self) -> StoreState:
        conn = self._require_conn()
        try:
            metadata = self._read_metadata(conn)
            documents = [
                IndexedDocument.from_dict({"i": doc_id, "t": orjson.loads(blob)})
                for doc_id, blob in conn.execute("SELECT doc_id, terms FROM documents ORDER BY doc_id")
            ]
            generation = int(metadata.get("generation", "0"))
            committed_at = _parse_timestamp(metadata.get("committed_at"))
        except (sqlite3.Error, orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            msg = f"Failed to read index database {self.db_path}: {exc}"
            raise StoreUnavailableError(msg) from exc
        return StoreState(documents=documents, generation=generation, committed_at=committed_at)

    def commit(self, changes: ChangeSet, *, generation: int, committed_at: datetime) -> None:
        conn = self._require_conn()
        try:
            with _transaction(conn):
                self._write_changes(conn, changes)
                conn.executemany(
                    "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                    [("generation", str(generation)), ("committed_at", committed_at.isoformat())],
                )
        except sqlite3.Error as exc:
            msg = f"Failed to commit {len(changes)} changes to {self.db_path}: {exc}"
            raise CommitFailureError(msg) from exc

    def _write_changes(self, conn: sqlite3.Connection, changes: ChangeSet) -> None:
        if changes.removals:
            conn.executemany(
                "DELETE FROM documents WHERE doc_id = ?",
                [(doc_id,) for doc_id in sorted(changes.removals)],
            )
        if changes.upserts:
            conn.executemany(
                "INSERT OR REPLACE INTO documents (doc_id, terms) VALUES (?, ?)",
                [
                    (doc_id, orjson.dumps(document.to_dict()["t"]))
                    for doc_id, document in sorted(changes.upserts.items())
                ],
            )

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        except sqlite3.Error as exc:
            logger.warning("Failed to close index database %s: %s", self.db_path, exc)
        self._conn = None


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """BEGIN IMMEDIATE ... COMMIT, rolled back when the block raises."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error as rollback_error:
                logger.warning("Rollback failed: %s", rollback_error)
        raise


class JsonDocumentStore(DocumentStore):
    """Persist the whole corpus as one JSON document replaced atomically."""

    backend = "json"
    FILENAME = "index.json"

    def __init__(self, directory: str | Path, schema: Schema) -> None:
        super().__init__(directory, schema)
        self.path = self.directory / self.FILENAME
        self._payloads: dict[str, dict[str, Any]] = {}

    def load(self) -> StoreState:
        if not self.path.exists():
            self._payloads = {}
            return StoreState(documents=[])

        try:
            payload = cast("dict[str, Any]", orjson.loads(self.path.read_bytes()))
            version = int(payload.get("format_version", 0))
            if version != FORMAT_VERSION:
                msg = f"Unsupported index format version {version} in {self.path}"
                raise StoreUnavailableError(msg)
            self._check_schema(payload.get("schema"))
            raw_documents = payload.get("documents", [])
            documents = [IndexedDocument.from_dict(entry) for entry in raw_documents]
            generation = int(payload.get("generation", 0))
            committed_at = _parse_timestamp(payload.get("committed_at"))
        except StoreUnavailableError:
            raise
        except (OSError, orjson.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as exc:
            msg = f"Failed to read index file {self.path}: {exc}"
            raise StoreUnavailableError(msg) from exc

        self._payloads = {entry["i"]: entry for entry in raw_documents}
        return StoreState(documents=documents, generation=generation, committed_at=committed_at)

    def commit(self, changes: ChangeSet, *, generation: int, committed_at: datetime) -> None:
        payloads = dict(self._payloads)
        for doc_id in changes.removals:
            payloads.pop(doc_id, None)
        for doc_id, document in changes.upserts.items():
            payloads[doc_id] = document.to_dict()

        body = {
            "format_version": FORMAT_VERSION,
            "schema": self.schema.to_dict(),
            "generation": generation,
            "committed_at": committed_at.isoformat(),
            "documents": [payloads[doc_id] for doc_id in sorted(payloads)],
        }
        try:
            self._atomic_write(orjson.dumps(body))
        except OSError as exc:
            msg = f"Failed to write index file {self.path}: {exc}"
            raise CommitFailureError(msg) from exc
        self._payloads = payloads

    def _atomic_write(self, serialized: bytes) -> None:
        is_new = not self.path.exists()
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with tmp_path.open("wb") as handle:
                handle.write(serialized)
                handle.flush()
                os.fsync(handle.fileno())
            tmp_path.replace(self.path)
        except OSError:
            with suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise
        self._fsync_directory()
        if is_new:
            _secure_permissions(self.path)

    def _fsync_directory(self) -> None:
        # The rename is durable only once the directory entry is flushed.
        fd = os.open(self.directory, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)


_BACKENDS: dict[str, type[DocumentStore]] = {
    SqliteDocumentStore.backend: SqliteDocumentStore,
    JsonDocumentStore.backend: JsonDocumentStore,
}


def create_document_store(directory: str | Path, *, backend: str, schema: Schema) -> DocumentStore:
    """Create the document store for a configured backend."""
    try:
        store_cls = _BACKENDS[backend]
    except KeyError:
        msg = f"Unknown storage backend '{backend}'. Available: {sorted(_BACKENDS)}"
        raise ValueError(msg) from None
    return store_cls(directory, schema)
