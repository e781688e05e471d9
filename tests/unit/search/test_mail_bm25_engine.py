"""Unit tests for the BM25F query engine."""

from __future__ import annotations

import pytest

from mail_index.search.bm25_engine import BM25SearchEngine, SearchPage
from mail_index.search.indexer import DocumentAnalyzer
from mail_index.search.schema import Schema, TextField
from mail_index.search.snapshot import IndexSnapshot


pytestmark = pytest.mark.unit


@pytest.fixture
def body_schema() -> Schema:
    return Schema(fields=[TextField("body")])


def _snapshot(schema: Schema, docs: dict[str, list[str]]) -> IndexSnapshot:
    analyzer = DocumentAnalyzer(schema)
    return IndexSnapshot.from_documents(schema, [analyzer.analyze(doc_id, fields) for doc_id, fields in docs.items()])


def test_hello_world_scenario(body_schema: Schema) -> None:
    engine = BM25SearchEngine(body_schema)
    snapshot = _snapshot(body_schema, {"m1": ["Hello world"], "m2": ["Hello there"]})

    assert engine.search(snapshot, "hello", offset=0, limit=10) == SearchPage(("m1", "m2"), False, 2)
    assert engine.search(snapshot, "world", offset=0, limit=10).doc_ids == ("m1",)


def test_higher_term_frequency_ranks_first(body_schema: Schema) -> None:
    engine = BM25SearchEngine(body_schema)
    snapshot = _snapshot(body_schema, {"a": ["report x y z"], "b": ["report report report x"]})

    assert engine.search(snapshot, "report", offset=0, limit=10).doc_ids == ("b", "a")


def test_rarer_term_outweighs_common_term(body_schema: Schema) -> None:
    engine = BM25SearchEngine(body_schema)
    snapshot = _snapshot(
        body_schema,
        {"w": ["common more"], "x": ["rare filler"], "y": ["common filler"], "z": ["common stuff"]},
    )

    ranked = engine.rank(snapshot, engine.tokenize_query("common rare"))

    assert ranked[0].doc_id == "x"
    assert [entry.doc_id for entry in ranked[1:]] == ["w", "y", "z"]


def test_more_distinct_terms_outrank_fewer(body_schema: Schema) -> None:
    engine = BM25SearchEngine(body_schema)
    snapshot = _snapshot(body_schema, {"a": ["alpha gamma"], "b": ["alpha beta"]})

    ranked = engine.rank(snapshot, engine.tokenize_query("alpha beta"))

    assert [entry.doc_id for entry in ranked] == ["b", "a"]
    assert ranked[0].matched_terms == 2
    assert ranked[1].matched_terms == 1
    assert ranked[0].score > ranked[1].score > 0


def test_field_boost_prefers_subject_matches(mail_schema: Schema) -> None:
    engine = BM25SearchEngine(mail_schema)
    snapshot = _snapshot(mail_schema, {"a": ["", "", "", "invoice"], "b": ["invoice"]})

    assert engine.search(snapshot, "invoice", offset=0, limit=10).doc_ids == ("b", "a")


def test_query_uses_indexing_tokenization(mail_schema: Schema) -> None:
    engine = BM25SearchEngine(mail_schema)
    snapshot = _snapshot(mail_schema, {"m1": ["Quarterly Reports", "Alice@Example.com"]})

    for query in ("alice@example.com", "EXAMPLE", "reports", "Quarterly", "the reports"):
        assert engine.search(snapshot, query, offset=0, limit=10).doc_ids == ("m1",), query


@pytest.fixture
def five_equal_docs(body_schema: Schema) -> IndexSnapshot:
    return _snapshot(body_schema, {f"d{i}": ["hello"] for i in (5, 3, 1, 4, 2)})


@pytest.mark.parametrize(
    ("offset", "limit", "expected_ids", "expected_more"),
    [
        (0, 2, ("d1", "d2"), True),
        (2, 2, ("d3", "d4"), True),
        (4, 2, ("d5",), False),
        (0, 5, ("d1", "d2", "d3", "d4", "d5"), False),
        (10, 3, (), False),
        (0, 0, (), True),
        (5, 0, (), False),
    ],
)
def test_pagination_windows(
    body_schema: Schema,
    five_equal_docs: IndexSnapshot,
    offset: int,
    limit: int,
    expected_ids: tuple[str, ...],
    expected_more: bool,
) -> None:
    page = BM25SearchEngine(body_schema).search(five_equal_docs, "hello", offset=offset, limit=limit)

    assert page.doc_ids == expected_ids
    assert page.has_more is expected_more
    assert page.total == 5


def test_consecutive_pages_are_disjoint_and_contiguous(body_schema: Schema, five_equal_docs: IndexSnapshot) -> None:
    engine = BM25SearchEngine(body_schema)

    first = engine.search(five_equal_docs, "hello", offset=0, limit=3)
    second = engine.search(five_equal_docs, "hello", offset=3, limit=3)
    full = engine.search(five_equal_docs, "hello", offset=0, limit=100)

    assert first.doc_ids + second.doc_ids == full.doc_ids


def test_empty_results(body_schema: Schema) -> None:
    engine = BM25SearchEngine(body_schema)
    snapshot = _snapshot(body_schema, {"m1": ["hello"]})

    assert engine.search(IndexSnapshot.empty(body_schema), "hello", offset=0, limit=10) == SearchPage.empty()
    assert engine.search(snapshot, "nonexistent", offset=0, limit=10) == SearchPage.empty()
    assert engine.search(snapshot, "  ?!  ", offset=0, limit=10) == SearchPage.empty()
    assert engine.tokenize_query("").is_empty()


def test_search_page_unpacks_as_ids_and_has_more() -> None:
    ids, has_more = SearchPage(("m1", "m2"), True, 3)

    assert ids == ["m1", "m2"]
    assert has_more is True
    assert len(SearchPage(("m1",), False, 1)) == 1
