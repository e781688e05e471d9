"""Mail search engine - the single entry point to the index.

Owns one document store, one write session and a reference to the current
read snapshot:

- index(), remove() stage changes in the write session
- commit() persists staged changes and publishes a new snapshot
- search(), list(), exists() read the last published snapshot only

Thread Safety:
- ``_write_lock`` serializes index/remove/commit
- ``_read_lock`` guards the snapshot reference; readers hold it only long
  enough to take the reference, commit only long enough to swap it
- Snapshots are immutable, so scoring runs without any lock held
"""

from __future__ import annotations

from collections.abc import Sequence
import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from pathlib import Path
import threading
from typing import Any

from mail_index.config import Settings, get_settings
from mail_index.observability import (
    COMMIT_COUNT,
    COMMIT_LATENCY,
    INDEX_DOC_COUNT,
    PENDING_CHANGES,
    SEARCH_LATENCY,
    configure_logging,
    create_span,
    init_tracing,
    track_latency,
)
from mail_index.search.bm25_engine import BM25SearchEngine, SearchPage
from mail_index.search.errors import CommitFailureError, InvalidArgumentError, StoreUnavailableError
from mail_index.search.indexer import DocumentAnalyzer
from mail_index.search.lockfile import IndexLock
from mail_index.search.schema import Schema, create_mail_schema
from mail_index.search.session import WriteSession
from mail_index.search.snapshot import IndexSnapshot
from mail_index.search.storage import DocumentStore, create_document_store


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexStats:
    """Statistics about the search index."""

    document_count: int
    term_count: int
    pending_changes: int
    generation: int
    last_commit: datetime | None
    index_dir: Path
    backend: str


def _check_doc_id(doc_id: Any) -> str:
    if not isinstance(doc_id, str) or not doc_id.strip():
        msg = f"Document id must be a non-empty string, got {doc_id!r}"
        raise InvalidArgumentError(msg)
    return doc_id


def _check_count(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        msg = f"{name} must be a non-negative integer, got {value!r}"
        raise InvalidArgumentError(msg)
    return value


def _check_fields(fields: Sequence[str] | str | None) -> list[str]:
    if fields is None:
        return []
    if isinstance(fields, str):
        return [fields]
    values = list(fields)
    for value in values:
        if not isinstance(value, str):
            msg = f"Document fields must be strings, got {type(value).__name__}"
            raise InvalidArgumentError(msg)
    return values


class MailSearchEngine:
    """
    Full-text index over cached mail messages.

    The index directory defaults to ``~/.nmail/searchindex``.
    Use environment variables to customize:
    - MAIL_INDEX_INDEX_DIR: Index location
    - MAIL_INDEX_STORAGE_BACKEND: sqlite (default) or json
    - MAIL_INDEX_BM25_K1 / MAIL_INDEX_BM25_B: ranking parameters

    Uncommitted changes live only in memory. Producers must call commit() at
    batch boundaries and before shutdown, and re-index anything that was not
    confirmed committed after a restart.
    """

    def __init__(
        self,
        index_dir: str | Path | None = None,
        *,
        settings: Settings | None = None,
        schema: Schema | None = None,
    ) -> None:
        settings = settings or get_settings()
        if index_dir is not None:
            settings = settings.model_copy(update={"index_dir": Path(index_dir).expanduser()})
        self.settings = settings
        self.index_dir = settings.index_dir
        self.schema = schema or create_mail_schema()

        self._write_lock = threading.Lock()
        self._read_lock = threading.Lock()
        self._session = WriteSession()
        self._analyzer = DocumentAnalyzer(self.schema)
        self._query_engine = BM25SearchEngine(self.schema, k1=settings.bm25_k1, b=settings.bm25_b)
        self._labels = {"index": settings.index_name}
        self._closed = False

        self._lock = IndexLock(self.index_dir)
        self._lock.acquire()
        self._store: DocumentStore | None = None
        try:
            self._store = create_document_store(self.index_dir, backend=settings.storage_backend, schema=self.schema)
            state = self._store.load()
        except Exception:
            if self._store is not None:
                self._store.close()
            self._lock.release()
            raise

        self._snapshot = IndexSnapshot.from_documents(
            self.schema,
            state.documents,
            generation=state.generation,
            committed_at=state.committed_at,
        )
        INDEX_DOC_COUNT.labels(**self._labels).set(self._snapshot.doc_count)
        PENDING_CHANGES.labels(**self._labels).set(0)
        logger.info(
            "Opened mail index %s (%s backend): %d documents, generation %d",
            self.index_dir,
            self._store.backend,
            self._snapshot.doc_count,
            self._snapshot.generation,
        )

    # ========== Write side ==========

    def index(self, doc_id: str, fields: Sequence[str] | str | None) -> None:
        """Stage an upsert; the new fields fully replace any earlier version of ``doc_id``."""
        doc_id = _check_doc_id(doc_id)
        document = self._analyzer.analyze(doc_id, _check_fields(fields))
        with self._write_lock:
            self._ensure_open()
            self._session.stage_upsert(document)
            pending = self._session.pending_count
            PENDING_CHANGES.labels(**self._labels).set(pending)
        logger.debug("Staged upsert of %s (%d pending)", doc_id, pending)

    def remove(self, doc_id: str) -> None:
        """Stage a removal; removing an id that is neither committed nor staged is a no-op."""
        doc_id = _check_doc_id(doc_id)
        with self._write_lock:
            self._ensure_open()
            if not self._snapshot.contains(doc_id) and not self._session.is_staged(doc_id):
                logger.debug("Ignoring removal of %s: not indexed", doc_id)
                return
            self._session.stage_removal(doc_id)
            pending = self._session.pending_count
            PENDING_CHANGES.labels(**self._labels).set(pending)
        logger.debug("Staged removal of %s (%d pending)", doc_id, pending)

    def commit(self) -> int:
        """Persist staged changes and publish a new snapshot.

        Returns the generation of the published snapshot. With nothing staged
        this is a no-op returning the current generation. On CommitFailureError
        the staged changes stay pending and the previous snapshot stays live.
        """
        with self._write_lock:
            self._ensure_open()
            current = self._snapshot
            if self._session.is_empty():
                return current.generation

            changes = self._session.changes()
            generation = current.generation + 1
            committed_at = datetime.now(timezone.utc)
            with (
                self._span("mail_index.commit", changes=len(changes), generation=generation),
                track_latency(COMMIT_LATENCY, **self._labels),
            ):
                try:
                    self._store.commit(changes, generation=generation, committed_at=committed_at)
                except CommitFailureError:
                    COMMIT_COUNT.labels(status="error", **self._labels).inc()
                    logger.error(
                        "Commit of %d changes to %s failed; changes remain staged",
                        len(changes),
                        self.index_dir,
                        exc_info=True,
                    )
                    raise

                published = current.apply(changes, generation=generation, committed_at=committed_at)
                with self._read_lock:
                    self._snapshot = published
                self._session.clear()

            # Gauges change only under the write lock.
            INDEX_DOC_COUNT.labels(**self._labels).set(published.doc_count)
            PENDING_CHANGES.labels(**self._labels).set(0)

        COMMIT_COUNT.labels(status="ok", **self._labels).inc()
        logger.info(
            "Committed %d upserts and %d removals (generation %d, %d documents)",
            len(changes.upserts),
            len(changes.removals),
            generation,
            published.doc_count,
        )
        return generation

    # ========== Read side ==========

    def search(self, query: str, offset: int = 0, max_results: int = 20) -> SearchPage:
        """Return one page of ranked ids for a free-text query.

        Queries that analyze to no terms return an empty page rather than failing.
        """
        if not isinstance(query, str):
            msg = f"Query must be a string, got {type(query).__name__}"
            raise InvalidArgumentError(msg)
        offset = _check_count("offset", offset)
        max_results = _check_count("max_results", max_results)

        snapshot = self._acquire_snapshot()
        with (
            self._span("mail_index.search", offset=offset, max_results=max_results, generation=snapshot.generation),
            track_latency(SEARCH_LATENCY, **self._labels),
        ):
            page = self._query_engine.search(snapshot, query, offset=offset, limit=max_results)
        logger.debug("Query %r matched %d documents (generation %d)", query, page.total, snapshot.generation)
        return page

    def list(self) -> list[str]:
        """All committed document ids in ascending order."""
        return self._acquire_snapshot().doc_ids()

    def exists(self, doc_id: str) -> bool:
        """Whether ``doc_id`` is in the last committed snapshot; staged changes are ignored."""
        if not isinstance(doc_id, str):
            msg = f"Document id must be a string, got {type(doc_id).__name__}"
            raise InvalidArgumentError(msg)
        return self._acquire_snapshot().contains(doc_id)

    @property
    def snapshot(self) -> IndexSnapshot:
        """The currently published snapshot; safe to keep using after later commits."""
        return self._acquire_snapshot()

    def stats(self) -> IndexStats:
        snapshot = self._acquire_snapshot()
        with self._write_lock:
            pending = self._session.pending_count
        return IndexStats(
            document_count=snapshot.doc_count,
            term_count=snapshot.term_count,
            pending_changes=pending,
            generation=snapshot.generation,
            last_commit=snapshot.committed_at,
            index_dir=self.index_dir,
            backend=self.settings.storage_backend,
        )

    # ========== Lifecycle ==========

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the store and release the index lock. Uncommitted changes are dropped."""
        with self._write_lock:
            if self._closed:
                return
            if not self._session.is_empty():
                logger.warning(
                    "Closing %s with %d uncommitted changes; they are discarded",
                    self.index_dir,
                    self._session.pending_count,
                )
                self._session.clear()
            try:
                if self._store is not None:
                    self._store.close()
            finally:
                self._lock.release()
                with self._read_lock:
                    self._closed = True
        logger.info("Closed mail index %s", self.index_dir)

    def __enter__(self) -> MailSearchEngine:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ========== Internals ==========

    def _ensure_open(self) -> None:
        if self._closed:
            msg = f"Mail index {self.index_dir} is closed"
            raise StoreUnavailableError(msg)

    def _acquire_snapshot(self) -> IndexSnapshot:
        with self._read_lock:
            self._ensure_open()
            return self._snapshot

    def _span(self, name: str, **attributes: Any):
        if not self.settings.tracing_enabled:
            return contextlib.nullcontext()
        return create_span(name, attributes={"mail_index.index": self.settings.index_name, **attributes})


def open_search_engine(index_dir: str | Path | None = None, **kwargs: Any) -> MailSearchEngine:
    """Factory function for opening the mail index.

    Args:
        index_dir: Index directory; defaults to the configured location
        **kwargs: Passed through to MailSearchEngine (settings, schema)

    Returns:
        Open MailSearchEngine; close it (or use it as a context manager) when done
    """
    return MailSearchEngine(index_dir, **kwargs)


def configure_observability(settings: Settings | None = None) -> None:
    """Install logging and tracing for an application that embeds the index.

    MailSearchEngine never calls this; the embedding application does, once at startup.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)
    if settings.tracing_enabled:
        init_tracing(resource_attributes={"mail_index.index": settings.index_name})
