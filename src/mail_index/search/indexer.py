"""Turn raw message strings into analyzed documents."""

from __future__ import annotations

from collections.abc import Sequence

from mail_index.search.analyzers import Analyzer, get_analyzer
from mail_index.search.models import IndexedDocument, freeze_terms
from mail_index.search.schema import Schema


class DocumentAnalyzer:
    """Applies each schema field's analyzer to the matching message string.

    Query parsing uses the same per-field analyzers, which keeps indexing and
    querying tokenization symmetric.
    """

    def __init__(self, schema: Schema) -> None:
        self.schema = schema
        self._analyzers: dict[str, Analyzer] = {
            field.name: get_analyzer(field.analyzer_name) for field in schema.fields
        }

    def analyzer_for(self, field_name: str) -> Analyzer:
        return self._analyzers[field_name]

    def analyze(self, doc_id: str, values: Sequence[str]) -> IndexedDocument:
        terms: dict[str, dict[str, list[int]]] = {}
        for field_name, text in self.schema.assign(values).items():
            field_terms: dict[str, list[int]] = {}
            for token in self._analyzers[field_name](text):
                if not token.text:
                    continue
                field_terms.setdefault(token.text, []).append(token.position)
            if field_terms:
                terms[field_name] = field_terms

        return IndexedDocument(
            doc_id=doc_id,
            terms=freeze_terms(
                {
                    field_name: {term: tuple(positions) for term, positions in field_terms.items()}
                    for field_name, field_terms in terms.items()
                }
            ),
        )
