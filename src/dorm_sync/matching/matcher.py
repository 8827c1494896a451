"""
Identity matcher.
Groups existing documents by natural key and pairs them with dataset records.
"""

from dataclasses import dataclass, field
from typing import Iterable
import logging

from ..models.records import ExternalRecord, StoreDocument
from ..parsers.normalizer import coerce_string

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Existing documents per dataset key, plus everything left over."""

    # Dataset key -> documents sharing it, in store order (0, 1 or N)
    matches: dict[str, list[StoreDocument]] = field(default_factory=dict)
    # Documents whose key is absent from the dataset
    orphans: list[StoreDocument] = field(default_factory=list)
    # Documents with no natural key at all
    unkeyed: list[StoreDocument] = field(default_factory=list)
    # Documents whose key only appears on rejected rows; left as they are
    protected: list[StoreDocument] = field(default_factory=list)

    @property
    def duplicate_keys(self) -> list[str]:
        return [key for key, docs in self.matches.items() if len(docs) > 1]


class IdentityMatcher:
    """Matches records to documents by an opaque natural key."""

    def __init__(self, natural_key_field: str):
        self.natural_key_field = natural_key_field

    def document_key(self, doc: StoreDocument):
        return coerce_string(doc.get(self.natural_key_field))

    def match(
        self,
        records: list[ExternalRecord],
        documents: list[StoreDocument],
        protected_keys: Iterable[str] = (),
    ) -> MatchResult:
        """
        Pair records with existing documents.

        Args:
            records: Normalized records, one per natural key
            documents: Full target collection in store order
            protected_keys: Keys present in the dataset on rows that were
                rejected; their documents are neither updated nor orphaned

        Returns:
            MatchResult keyed by the records' natural keys
        """
        grouped: dict[str, list[StoreDocument]] = {}
        result = MatchResult()
        dataset_keys = {record.natural_key for record in records}
        protected = set(protected_keys) - dataset_keys

        for doc in documents:
            key = self.document_key(doc)
            if key is None:
                result.unkeyed.append(doc)
            elif key in dataset_keys:
                grouped.setdefault(key, []).append(doc)
            elif key in protected:
                result.protected.append(doc)
            else:
                result.orphans.append(doc)

        for record in records:
            result.matches[record.natural_key] = grouped.get(record.natural_key, [])

        logger.info(
            f"Matched {len(records)} records: "
            f"{sum(1 for d in result.matches.values() if d)} existing, "
            f"{len(result.duplicate_keys)} with duplicates, {len(result.orphans)} orphans, "
            f"{len(result.protected)} kept for rejected rows"
        )
        return result
