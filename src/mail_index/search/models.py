"""Search data models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True, slots=True)
class Posting:
    """A posting represents the occurrences of a term in one document.

    Frequency is derived from the number of positions.
    """

    doc_id: str
    positions: tuple[int, ...]

    @property
    def frequency(self) -> int:
        return len(self.positions)


@dataclass(frozen=True, slots=True)
class IndexedDocument:
    """Analyzed form of a message: field -> term -> token positions.

    This is the unit the document store persists and the unit snapshots are
    built from. A document with no terms is valid and still counts as indexed.
    """

    doc_id: str
    terms: Mapping[str, Mapping[str, tuple[int, ...]]]
    lengths: Mapping[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        lengths = {
            field_name: sum(len(positions) for positions in field_terms.values())
            for field_name, field_terms in self.terms.items()
        }
        object.__setattr__(self, "lengths", MappingProxyType(lengths))

    def field_length(self, field_name: str) -> int:
        """Number of tokens the document has in a field."""
        return self.lengths.get(field_name, 0)

    def postings(self) -> dict[str, dict[str, Posting]]:
        """Return one posting per (field, term) pair."""
        return {
            field_name: {term: Posting(self.doc_id, positions) for term, positions in field_terms.items()}
            for field_name, field_terms in self.terms.items()
        }

    def to_dict(self) -> dict[str, Any]:
        """Serialize with minimal keys: i=id, t=terms."""
        return {
            "i": self.doc_id,
            "t": {
                field_name: {term: list(positions) for term, positions in field_terms.items()}
                for field_name, field_terms in self.terms.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> IndexedDocument:
        raw_terms = data.get("t") or {}
        return cls(
            doc_id=str(data["i"]),
            terms=freeze_terms(
                {
                    field_name: {term: tuple(int(pos) for pos in positions) for term, positions in field_terms.items()}
                    for field_name, field_terms in raw_terms.items()
                }
            ),
        )


def freeze_terms(terms: Mapping[str, Mapping[str, tuple[int, ...]]]) -> Mapping[str, Mapping[str, tuple[int, ...]]]:
    """Wrap a nested term map in read-only views."""
    return MappingProxyType(
        {field_name: MappingProxyType(dict(field_terms)) for field_name, field_terms in terms.items() if field_terms}
    )
