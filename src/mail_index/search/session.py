"""Write session: the buffer of uncommitted index and remove operations."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from mail_index.search.models import IndexedDocument


@dataclass(frozen=True)
class ChangeSet:
    """Immutable view of the operations staged since the last commit.

    An id appears in at most one of ``upserts`` and ``removals``.
    """

    upserts: Mapping[str, IndexedDocument] = field(default_factory=lambda: MappingProxyType({}))
    removals: frozenset[str] = frozenset()

    def __len__(self) -> int:
        return len(self.upserts) + len(self.removals)

    def is_empty(self) -> bool:
        return not self.upserts and not self.removals

    @property
    def touched_ids(self) -> frozenset[str]:
        return frozenset(self.upserts) | self.removals


class WriteSession:
    """Accumulates staged upserts and removals against the document store.

    Not thread-safe on its own; the engine serializes access with its write lock.
    The last operation staged for an id wins: removing after indexing leaves only
    the removal, and indexing after removing leaves only the upsert.
    """

    def __init__(self) -> None:
        self._upserts: dict[str, IndexedDocument] = {}
        self._removals: set[str] = set()

    @property
    def pending_count(self) -> int:
        return len(self._upserts) + len(self._removals)

    def is_empty(self) -> bool:
        return not self._upserts and not self._removals

    def is_staged(self, doc_id: str) -> bool:
        return doc_id in self._upserts or doc_id in self._removals

    def stage_upsert(self, document: IndexedDocument) -> None:
        self._removals.discard(document.doc_id)
        self._upserts[document.doc_id] = document

    def stage_removal(self, doc_id: str) -> None:
        self._upserts.pop(doc_id, None)
        self._removals.add(doc_id)

    def changes(self) -> ChangeSet:
        """Return a frozen copy of what is staged; the session itself is unchanged."""
        return ChangeSet(upserts=MappingProxyType(dict(self._upserts)), removals=frozenset(self._removals))

    def clear(self) -> None:
        self._upserts.clear()
        self._removals.clear()
