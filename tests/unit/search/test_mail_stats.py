"""Unit tests for BM25 statistics helpers."""

from __future__ import annotations

import pytest

from mail_index.search.indexer import DocumentAnalyzer
from mail_index.search.schema import Schema, TextField
from mail_index.search.stats import (
    FieldLengthStats,
    bm25,
    calculate_idf,
    compute_field_length_stats,
    merge_field_length_stats,
)


pytestmark = pytest.mark.unit


@pytest.fixture
def analyzer() -> DocumentAnalyzer:
    return DocumentAnalyzer(Schema(fields=[TextField("subject"), TextField("body")]))


def test_idf_strictly_decreases_with_document_frequency() -> None:
    values = [calculate_idf(df, 10) for df in range(1, 11)]

    assert all(earlier > later for earlier, later in zip(values, values[1:]))
    assert values[-1] > 0


def test_idf_of_empty_corpus_is_zero() -> None:
    assert calculate_idf(0, 0) == 0.0


def test_bm25_strictly_increases_with_term_frequency() -> None:
    weights = [bm25(tf, 20, 20.0) for tf in range(1, 6)]

    assert all(earlier < later for earlier, later in zip(weights, weights[1:]))
    assert bm25(0, 20, 20.0) == 0.0


def test_bm25_prefers_shorter_documents_until_length_cap() -> None:
    assert bm25(1, 5, 10.0) > bm25(1, 20, 10.0)
    assert bm25(1, 40, 10.0) == pytest.approx(bm25(1, 400, 10.0))


def test_compute_field_length_stats(analyzer: DocumentAnalyzer) -> None:
    documents = [
        analyzer.analyze("a", ["one two", "x y z"]),
        analyzer.analyze("b", ["three"]),
    ]

    stats = compute_field_length_stats(documents)

    assert stats["subject"] == FieldLengthStats("subject", total_terms=3, document_count=2)
    assert stats["subject"].average_length == 1.5
    assert stats["body"].document_count == 1


def test_merge_matches_full_recompute(analyzer: DocumentAnalyzer) -> None:
    a = analyzer.analyze("a", ["one two", "x y z"])
    b = analyzer.analyze("b", ["three"])
    b2 = analyzer.analyze("b", ["three four five", "w"])

    merged = merge_field_length_stats(compute_field_length_stats([a, b]), removed=[b], added=[b2])

    assert merged == compute_field_length_stats([a, b2])


def test_merge_drops_fields_without_documents(analyzer: DocumentAnalyzer) -> None:
    a = analyzer.analyze("a", ["only subject"])

    merged = merge_field_length_stats(compute_field_length_stats([a]), removed=[a], added=[])

    assert merged == {}
    assert FieldLengthStats("body", 0, 0).average_length == 0.0
