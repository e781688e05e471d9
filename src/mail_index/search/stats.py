"""Statistical helpers for BM25 style scoring.

The functions here stay independent of the snapshot and storage layers. The
ranking contract they provide:

* ``calculate_idf`` strictly decreases as a term gets more common.
* ``bm25`` strictly increases with term frequency for a fixed document length.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
import math

from mail_index.search.models import IndexedDocument


@dataclass(frozen=True)
class FieldLengthStats:
    """Aggregated token counts for a field across the corpus."""

    field: str
    total_terms: int
    document_count: int

    @property
    def average_length(self) -> float:
        if self.document_count == 0:
            return 0.0
        return self.total_terms / self.document_count

    def adjust(self, *, terms: int, documents: int) -> FieldLengthStats:
        """Return stats shifted by a delta of tokens and documents."""
        return FieldLengthStats(
            field=self.field,
            total_terms=max(self.total_terms + terms, 0),
            document_count=max(self.document_count + documents, 0),
        )


def compute_field_length_stats(documents: Iterable[IndexedDocument]) -> dict[str, FieldLengthStats]:
    """Return aggregate stats for each field over a set of documents."""

    totals: dict[str, list[int]] = {}
    for document in documents:
        for field_name in document.terms:
            length = document.field_length(field_name)
            entry = totals.setdefault(field_name, [0, 0])
            entry[0] += length
            entry[1] += 1
    return {
        field_name: FieldLengthStats(field=field_name, total_terms=total, document_count=count)
        for field_name, (total, count) in totals.items()
    }


def merge_field_length_stats(
    base: Mapping[str, FieldLengthStats],
    removed: Iterable[IndexedDocument],
    added: Iterable[IndexedDocument],
) -> dict[str, FieldLengthStats]:
    """Apply removed and added documents to existing stats without a full rescan."""

    merged = dict(base)
    for sign, documents in ((-1, removed), (1, added)):
        for document in documents:
            for field_name in document.terms:
                current = merged.get(field_name) or FieldLengthStats(field_name, 0, 0)
                merged[field_name] = current.adjust(terms=sign * document.field_length(field_name), documents=sign)
    return {name: stats for name, stats in merged.items() if stats.document_count > 0}


def calculate_idf(doc_freq: int, total_docs: int) -> float:
    """Return inverse document frequency with small-sample smoothing.

    Uses log(1 + ratio), which stays positive even when a term occurs in every
    message of a small mailbox.
    """

    if total_docs <= 0:
        return 0.0
    df = max(0, min(doc_freq, total_docs))
    numerator = total_docs - df + 0.5
    denominator = df + 0.5
    return math.log1p(numerator / denominator)


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF.

    The length ratio is capped at 4x average so that long newsletters are not
    pushed below short replies that mention a term once.
    """

    if tf <= 0:
        return 0.0
    max_length_ratio = 4.0
    raw_ratio = doc_length / max(avg_doc_length, 1e-9)
    normalized_length = min(raw_ratio, max_length_ratio)
    denominator = tf + k1 * (1 - b + b * normalized_length)
    return (tf * (k1 + 1)) / denominator
