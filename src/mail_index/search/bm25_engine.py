"""BM25F query engine over index snapshots."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from mail_index.search.indexer import DocumentAnalyzer
from mail_index.search.schema import Schema
from mail_index.search.snapshot import IndexSnapshot
from mail_index.search.stats import bm25, calculate_idf


@dataclass(frozen=True)
class RankedDocument:
    """Represents a scored document produced by the BM25 engine."""

    doc_id: str
    score: float
    matched_terms: int = 0


@dataclass(frozen=True)
class QueryTokens:
    """Immutable snapshot of query terms aligned with index fields."""

    per_field: Mapping[str, tuple[str, ...]]
    seed_text: str

    @classmethod
    def empty(cls) -> QueryTokens:
        return cls(MappingProxyType({}), "")

    def is_empty(self) -> bool:
        return not self.per_field


@dataclass(frozen=True)
class SearchPage:
    """One page of ranked document ids.

    Unpacks as ``ids, has_more = page``.
    """

    doc_ids: tuple[str, ...]
    has_more: bool
    total: int

    @classmethod
    def empty(cls) -> SearchPage:
        return cls((), False, 0)

    def __iter__(self) -> Iterator:
        yield list(self.doc_ids)
        yield self.has_more

    def __len__(self) -> int:
        return len(self.doc_ids)


class BM25SearchEngine:
    """Compute BM25F scores for documents in an index snapshot.

    score(doc) = sum over fields f and distinct query terms t present in doc of
    idf(t, f) * bm25(tf, |doc.f|, avg|f|) * boost(f). Every summand is positive,
    so matching an extra query term always raises the score. Equal scores are
    ordered by ascending doc id, which keeps pagination stable.
    """

    def __init__(self, schema: Schema, *, k1: float = 1.2, b: float = 0.75) -> None:
        self.schema = schema
        self.k1 = k1
        self.b = b
        self._analyzer = DocumentAnalyzer(schema)

    def tokenize_query(self, seed_text: str) -> QueryTokens:
        """Analyze the query once per field with that field's analyzer."""

        normalized_seed = (seed_text or "").strip()
        if not normalized_seed:
            return QueryTokens.empty()

        per_field: dict[str, tuple[str, ...]] = {}
        for field in self.schema.fields:
            seen: set[str] = set()
            terms: list[str] = []
            for token in self._analyzer.analyzer_for(field.name)(normalized_seed):
                if not token.text or token.text in seen:
                    continue
                seen.add(token.text)
                terms.append(token.text)
            if terms:
                per_field[field.name] = tuple(terms)

        if not per_field:
            return QueryTokens.empty()
        return QueryTokens(MappingProxyType(per_field), normalized_seed)

    def rank(self, snapshot: IndexSnapshot, query_tokens: QueryTokens) -> list[RankedDocument]:
        """Return every matching document in ranked order."""

        if query_tokens.is_empty() or snapshot.doc_count == 0:
            return []

        doc_scores: dict[str, float] = {}
        doc_terms: dict[str, set[str]] = {}
        total_docs = snapshot.doc_count

        for field in self.schema.fields:
            tokens = query_tokens.per_field.get(field.name)
            if not tokens:
                continue
            stats = snapshot.field_stats.get(field.name)
            if stats is None:
                continue
            postings_by_term = snapshot.get_field_postings(field.name)
            if not postings_by_term:
                continue

            avg_length = max(stats.average_length, 1e-9)
            for term in tokens:
                postings = postings_by_term.get(term)
                if not postings:
                    continue
                idf = calculate_idf(len(postings), total_docs)
                for posting in postings:
                    document = snapshot.documents[posting.doc_id]
                    weight = bm25(
                        posting.frequency,
                        document.field_length(field.name),
                        avg_length,
                        k1=self.k1,
                        b=self.b,
                    )
                    if weight <= 0:
                        continue
                    doc_scores[posting.doc_id] = doc_scores.get(posting.doc_id, 0.0) + idf * weight * field.boost
                    doc_terms.setdefault(posting.doc_id, set()).add(term)

        ranked = [
            RankedDocument(doc_id=doc_id, score=score, matched_terms=len(doc_terms[doc_id]))
            for doc_id, score in doc_scores.items()
        ]
        ranked.sort(key=lambda entry: (-entry.score, entry.doc_id))
        return ranked

    def search(self, snapshot: IndexSnapshot, query: str, *, offset: int, limit: int) -> SearchPage:
        """Return the ``[offset, offset + limit)`` slice of the ranked match list."""

        query_tokens = self.tokenize_query(query)
        ranked = self.rank(snapshot, query_tokens)
        if not ranked:
            return SearchPage.empty()

        window = ranked[offset : offset + limit]
        has_more = len(ranked) > offset + len(window)
        return SearchPage(
            doc_ids=tuple(entry.doc_id for entry in window),
            has_more=has_more,
            total=len(ranked),
        )
