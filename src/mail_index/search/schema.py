"""
Schema definition for the mail search index.

A message is handed to the index as an ordered sequence of strings. The schema
names those positions and gives each one an analyzer and a boost used by the
BM25F scorer:

- subject: message subject (boost 2.0)
- sender: From header (boost 1.5)
- recipients: To/Cc headers (boost 1.0)
- body: decoded message text (boost 1.0)

Strings beyond the last field are folded into the last field, so producers that
pass a single concatenated string still get full-text search.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class TextField:
    """
    Analyzed text field for full-text search.

    Args:
        name: Field name (e.g., "subject", "body")
        boost: Field weight in scoring (default: 1.0)
        analyzer_name: Name of analyzer to use (default: None = standard)
    """

    name: str
    boost: float = 1.0
    analyzer_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize field definition to dict."""
        data: dict[str, Any] = {"name": self.name, "boost": self.boost}
        if self.analyzer_name:
            data["analyzer_name"] = self.analyzer_name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TextField:
        """Deserialize field definition from dict."""
        return cls(
            name=data["name"],
            boost=float(data.get("boost", 1.0)),
            analyzer_name=data.get("analyzer_name"),
        )


@dataclass
class Schema:
    """
    Ordered field layout of indexed messages.

    Example:
        schema = Schema(
            fields=[
                TextField("subject", boost=2.0),
                TextField("body"),
            ],
        )
    """

    fields: list[TextField]
    name: str = "default"

    def __post_init__(self) -> None:
        """Validate schema after initialization."""
        if not self.fields:
            raise ValueError("Schema requires at least one field")
        self._field_map: dict[str, TextField] = {f.name: f for f in self.fields}
        if len(self._field_map) != len(self.fields):
            msg = f"Duplicate field names in schema '{self.name}'"
            raise ValueError(msg)

    def __getitem__(self, name: str) -> TextField:
        """Get field by name."""
        return self._field_map[name]

    def __contains__(self, name: str) -> bool:
        """Check if field exists."""
        return name in self._field_map

    def __iter__(self):
        """Iterate over fields."""
        return iter(self.fields)

    def __len__(self) -> int:
        """Return number of fields."""
        return len(self.fields)

    def get_boost(self, field_name: str) -> float:
        """Get boost factor for a field."""
        if field_name in self._field_map:
            return self._field_map[field_name].boost
        return 1.0

    def assign(self, values: Sequence[str]) -> dict[str, str]:
        """Map positional message strings onto schema field names.

        The i-th value goes to the i-th field; overflow values are joined into
        the last field and missing values leave trailing fields out.
        """

        assigned: dict[str, list[str]] = {}
        last_index = len(self.fields) - 1
        for index, value in enumerate(values):
            if value is None:
                continue
            target = self.fields[min(index, last_index)].name
            assigned.setdefault(target, []).append(str(value))
        return {name: "\n".join(parts) for name, parts in assigned.items()}

    def to_dict(self) -> dict[str, Any]:
        """Serialize schema to dict."""
        return {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Schema:
        """Deserialize schema from dict."""
        fields = [TextField.from_dict(f) for f in data["fields"]]
        return cls(fields=fields, name=data.get("name", "default"))


def create_mail_schema() -> Schema:
    """Create the default schema for cached mail messages."""
    return Schema(
        name="mail",
        fields=[
            TextField("subject", boost=2.0),
            TextField("sender", boost=1.5),
            TextField("recipients", boost=1.0),
            TextField("body", boost=1.0),
        ],
    )
