"""Immutable read snapshots of the mail index.

A snapshot is never mutated after construction, so query threads can read it
without locks. ``IndexSnapshot.apply`` builds the next snapshot from a change
set: posting lists of terms the change set does not touch are shared with the
previous snapshot, only the affected term lists are rebuilt.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from mail_index.search.models import IndexedDocument, Posting
from mail_index.search.schema import Schema
from mail_index.search.session import ChangeSet
from mail_index.search.stats import FieldLengthStats, compute_field_length_stats, merge_field_length_stats


_EMPTY: Mapping = MappingProxyType({})


def _doc_key(posting: Posting) -> str:
    return posting.doc_id


@dataclass(frozen=True, slots=True)
class IndexSnapshot:
    """Queryable view of the index as of one commit."""

    schema: Schema
    documents: Mapping[str, IndexedDocument] = field(default_factory=lambda: _EMPTY)
    postings: Mapping[str, Mapping[str, tuple[Posting, ...]]] = field(default_factory=lambda: _EMPTY)
    field_stats: Mapping[str, FieldLengthStats] = field(default_factory=lambda: _EMPTY)
    generation: int = 0
    committed_at: datetime | None = None

    @classmethod
    def empty(cls, schema: Schema) -> IndexSnapshot:
        return cls(schema=schema)

    @classmethod
    def from_documents(
        cls,
        schema: Schema,
        documents: Iterable[IndexedDocument],
        *,
        generation: int = 0,
        committed_at: datetime | None = None,
    ) -> IndexSnapshot:
        """Build a snapshot from scratch, e.g. from the persisted store at open time."""

        by_id = {document.doc_id: document for document in documents}
        grouped: dict[str, dict[str, list[Posting]]] = {}
        for doc_id in sorted(by_id):
            for field_name, field_postings in by_id[doc_id].postings().items():
                field_map = grouped.setdefault(field_name, {})
                for term, posting in field_postings.items():
                    field_map.setdefault(term, []).append(posting)

        postings = MappingProxyType(
            {
                field_name: MappingProxyType({term: tuple(entries) for term, entries in terms.items()})
                for field_name, terms in grouped.items()
            }
        )
        return cls(
            schema=schema,
            documents=MappingProxyType(by_id),
            postings=postings,
            field_stats=MappingProxyType(compute_field_length_stats(by_id.values())),
            generation=generation,
            committed_at=committed_at,
        )

    @property
    def doc_count(self) -> int:
        return len(self.documents)

    @property
    def term_count(self) -> int:
        return sum(len(terms) for terms in self.postings.values())

    def contains(self, doc_id: str) -> bool:
        return doc_id in self.documents

    def doc_ids(self) -> list[str]:
        """All document ids in ascending order."""
        return sorted(self.documents)

    def get_document(self, doc_id: str) -> IndexedDocument | None:
        return self.documents.get(doc_id)

    def get_field_postings(self, field_name: str) -> Mapping[str, tuple[Posting, ...]]:
        return self.postings.get(field_name, _EMPTY)

    def get_postings(self, field_name: str, term: str) -> tuple[Posting, ...]:
        """Return postings for a specific term in a field, sorted by doc id."""
        return self.get_field_postings(field_name).get(term, ())

    def apply(
        self,
        changes: ChangeSet,
        *,
        generation: int | None = None,
        committed_at: datetime | None = None,
    ) -> IndexSnapshot:
        """Return a new snapshot with ``changes`` applied; ``self`` is left untouched."""

        next_generation = self.generation + 1 if generation is None else generation
        if changes.is_empty():
            return IndexSnapshot(
                schema=self.schema,
                documents=self.documents,
                postings=self.postings,
                field_stats=self.field_stats,
                generation=next_generation,
                committed_at=committed_at or self.committed_at,
            )

        touched = changes.touched_ids
        replaced = [self.documents[doc_id] for doc_id in sorted(touched) if doc_id in self.documents]
        added = [changes.upserts[doc_id] for doc_id in sorted(changes.upserts)]

        documents = dict(self.documents)
        for doc_id in changes.removals:
            documents.pop(doc_id, None)
        documents.update(changes.upserts)

        affected: dict[str, set[str]] = {}
        for document in (*replaced, *added):
            for field_name, field_terms in document.terms.items():
                affected.setdefault(field_name, set()).update(field_terms)

        postings = dict(self.postings)
        for field_name, terms in affected.items():
            field_map = dict(self.postings.get(field_name, _EMPTY))
            for term in terms:
                kept = [posting for posting in field_map.get(term, ()) if posting.doc_id not in touched]
                for document in added:
                    positions = document.terms.get(field_name, _EMPTY).get(term)
                    if positions:
                        kept.append(Posting(document.doc_id, positions))
                if kept:
                    kept.sort(key=_doc_key)
                    field_map[term] = tuple(kept)
                else:
                    field_map.pop(term, None)
            if field_map:
                postings[field_name] = MappingProxyType(field_map)
            else:
                postings.pop(field_name, None)

        return IndexSnapshot(
            schema=self.schema,
            documents=MappingProxyType(documents),
            postings=MappingProxyType(postings),
            field_stats=MappingProxyType(merge_field_length_stats(self.field_stats, replaced, added)),
            generation=next_generation,
            committed_at=committed_at,
        )
