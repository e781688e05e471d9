"""Unit tests for immutable index snapshots."""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timezone
from types import MappingProxyType

import pytest

from mail_index.search.indexer import DocumentAnalyzer
from mail_index.search.schema import Schema, TextField
from mail_index.search.session import ChangeSet
from mail_index.search.snapshot import IndexSnapshot
from mail_index.search.stats import compute_field_length_stats


pytestmark = pytest.mark.unit


@pytest.fixture
def schema() -> Schema:
    return Schema(fields=[TextField("subject", boost=2.0), TextField("body")])


@pytest.fixture
def analyzer(schema: Schema) -> DocumentAnalyzer:
    return DocumentAnalyzer(schema)


@pytest.fixture
def base(schema: Schema, analyzer: DocumentAnalyzer) -> IndexSnapshot:
    return IndexSnapshot.from_documents(
        schema,
        [
            analyzer.analyze("m2", ["quarterly report", "alpha beta"]),
            analyzer.analyze("m1", ["lunch", "alpha gamma"]),
        ],
        generation=3,
    )


def _upserts(*documents) -> ChangeSet:
    return ChangeSet(upserts=MappingProxyType({document.doc_id: document for document in documents}))


def test_empty_snapshot(schema: Schema) -> None:
    snapshot = IndexSnapshot.empty(schema)

    assert snapshot.doc_count == 0
    assert snapshot.term_count == 0
    assert snapshot.doc_ids() == []
    assert snapshot.get_postings("body", "alpha") == ()
    assert snapshot.generation == 0


def test_from_documents_sorts_postings_by_doc_id(base: IndexSnapshot) -> None:
    assert [posting.doc_id for posting in base.get_postings("body", "alpha")] == ["m1", "m2"]
    assert base.doc_ids() == ["m1", "m2"]
    assert base.contains("m1")
    assert not base.contains("m3")
    assert base.generation == 3


def test_apply_returns_new_snapshot_and_leaves_old_untouched(
    base: IndexSnapshot, analyzer: DocumentAnalyzer
) -> None:
    updated = base.apply(_upserts(analyzer.analyze("m3", ["alpha"])))

    assert updated is not base
    assert updated.doc_ids() == ["m1", "m2", "m3"]
    assert updated.generation == 4
    assert base.doc_ids() == ["m1", "m2"]
    assert [posting.doc_id for posting in base.get_postings("subject", "alpha")] == []
    assert [posting.doc_id for posting in updated.get_postings("subject", "alpha")] == ["m3"]


def test_apply_shares_untouched_posting_lists(base: IndexSnapshot, analyzer: DocumentAnalyzer) -> None:
    updated = base.apply(_upserts(analyzer.analyze("m3", ["", "delta"])))

    assert updated.postings["subject"] is base.postings["subject"]
    assert updated.get_postings("body", "alpha") is base.get_postings("body", "alpha")
    assert [posting.doc_id for posting in updated.get_postings("body", "delta")] == ["m3"]


def test_apply_replaces_existing_document(base: IndexSnapshot, analyzer: DocumentAnalyzer) -> None:
    updated = base.apply(_upserts(analyzer.analyze("m1", ["dinner", "omega"])))

    assert updated.doc_count == 2
    assert updated.get_postings("subject", "lunch") == ()
    assert [posting.doc_id for posting in updated.get_postings("body", "alpha")] == ["m2"]
    assert [posting.doc_id for posting in updated.get_postings("subject", "dinner")] == ["m1"]


def test_apply_removal_drops_empty_terms(base: IndexSnapshot) -> None:
    updated = base.apply(ChangeSet(removals=frozenset({"m1", "missing"})))

    assert updated.doc_ids() == ["m2"]
    assert "lunch" not in updated.get_field_postings("subject")
    assert "gamma" not in updated.get_field_postings("body")
    assert dict(updated.field_stats) == compute_field_length_stats(updated.documents.values())


def test_incremental_apply_matches_full_rebuild(
    schema: Schema, base: IndexSnapshot, analyzer: DocumentAnalyzer
) -> None:
    changes = ChangeSet(
        upserts=MappingProxyType({"m2": analyzer.analyze("m2", ["report", "beta beta"])}),
        removals=frozenset({"m1"}),
    )

    updated = base.apply(changes)
    rebuilt = IndexSnapshot.from_documents(schema, updated.documents.values())

    assert {field: dict(terms) for field, terms in updated.postings.items()} == {
        field: dict(terms) for field, terms in rebuilt.postings.items()
    }
    assert dict(updated.field_stats) == dict(rebuilt.field_stats)


def test_apply_empty_change_set_keeps_maps(base: IndexSnapshot) -> None:
    committed_at = datetime(2026, 1, 1, tzinfo=timezone.utc)

    updated = base.apply(ChangeSet(), generation=10, committed_at=committed_at)

    assert updated.postings is base.postings
    assert updated.documents is base.documents
    assert updated.generation == 10
    assert updated.committed_at == committed_at


def test_snapshot_is_immutable(base: IndexSnapshot) -> None:
    with pytest.raises(FrozenInstanceError):
        base.generation = 99  # type: ignore[misc]
    with pytest.raises(TypeError):
        base.documents["m9"] = base.documents["m1"]  # type: ignore[index]
