"""Data models for dataset records and store documents."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ExternalRecord:
    """
    One natural key's worth of the authoritative dataset, normalized.

    Rows sharing a natural key are folded into a single record; the
    last row seen supplies scalar values while aggregate fields collect
    every distinct value in first-seen order.
    """

    # Stable external identifier (e.g. employee uid, invoice number)
    natural_key: str

    # Typed values keyed by store field name
    fields: dict[str, Any] = field(default_factory=dict)

    # Raw reference names keyed by the reference's id field
    references: dict[str, Optional[str]] = field(default_factory=dict)

    # 1-based spreadsheet row numbers that contributed to this record
    source_rows: list[int] = field(default_factory=list)

    def merge(self, other: "ExternalRecord", aggregate_fields: set[str]) -> None:
        """Fold a later row with the same natural key into this record."""
        for name, value in other.fields.items():
            if name in aggregate_fields:
                merged = list(self.fields.get(name) or [])
                for item in value or []:
                    if item not in merged:
                        merged.append(item)
                self.fields[name] = merged
            else:
                self.fields[name] = value
        self.references.update(other.references)
        self.source_rows.extend(other.source_rows)


@dataclass
class StoreDocument:
    """A persisted document as fetched from the store."""

    id: str
    collection: str
    data: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)


@dataclass
class RejectedRow:
    """A dataset row dropped during normalization."""

    row_number: int
    reason: str
    natural_key: Optional[str] = None


@dataclass
class UnresolvedReference:
    """A reference name that could not be resolved or created."""

    collection: str
    name: str
    reason: str
    dependent_keys: list[str] = field(default_factory=list)
