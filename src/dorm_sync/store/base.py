"""Document store interface."""

from abc import ABC, abstractmethod
from typing import Sequence

from ..models.operations import MutationOp
from ..models.records import StoreDocument

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"

# Store-only fields never produced from the dataset
BOOKKEEPING_FIELDS = frozenset({CREATED_AT, UPDATED_AT})


class DocumentStore(ABC):
    """Abstract base class for document store backends."""

    @abstractmethod
    def fetch_all(self, collection: str) -> list[StoreDocument]:
        """
        Fetch every document of a collection.

        Args:
            collection: Collection name

        Returns:
            Documents in a stable store order
        """
        pass

    @abstractmethod
    def new_id(self, collection: str) -> str:
        """Allocate a fresh document id without writing anything."""
        pass

    @abstractmethod
    def commit(self, ops: Sequence[MutationOp]) -> None:
        """
        Apply a batch of operations atomically.

        Either every operation is applied or none is.

        Raises:
            StoreError: If the batch could not be committed
        """
        pass

    def close(self) -> None:
        """Release backend resources."""
        pass
