"""
Batched applier.
Commits planned operations as a sequence of size-bounded atomic batches.
"""

from dataclasses import dataclass, field
from typing import Sequence
import logging

from ..models.operations import MutationOp
from ..utils.exceptions import BatchCommitFailed
from .base import DocumentStore

logger = logging.getLogger(__name__)


def chunked(ops: Sequence[MutationOp], size: int) -> list[list[MutationOp]]:
    """Split ops into consecutive batches of at most ``size`` items."""
    if size <= 0:
        raise ValueError("batch size must be positive")
    return [list(ops[i : i + size]) for i in range(0, len(ops), size)]


@dataclass
class ApplyResult:
    """Outcome of applying an op list."""

    batches: list[list[MutationOp]] = field(default_factory=list)
    committed_batches: int = 0
    dry_run: bool = False

    @property
    def total_batches(self) -> int:
        return len(self.batches)


class BatchedApplier:
    """Applies ops batch by batch, in order, stopping at the first failure."""

    def __init__(self, store: DocumentStore, batch_size_limit: int):
        self.store = store
        self.batch_size_limit = batch_size_limit

    def apply(self, ops: Sequence[MutationOp], dry_run: bool = False) -> ApplyResult:
        """
        Apply operations to the store.

        Args:
            ops: Ordered operations
            dry_run: Partition and count, but write nothing

        Returns:
            ApplyResult describing the batches

        Raises:
            BatchCommitFailed: If a batch fails; earlier batches stay committed
        """
        result = ApplyResult(batches=chunked(ops, self.batch_size_limit), dry_run=dry_run)

        if dry_run:
            logger.info(
                f"Dry run: {len(ops)} operations in {result.total_batches} batches, no writes"
            )
            return result

        for index, batch in enumerate(result.batches):
            try:
                self.store.commit(batch)
            except Exception as e:
                logger.error(f"Batch {index + 1}/{result.total_batches} failed: {e}")
                raise BatchCommitFailed(index, result.total_batches, e) from e
            result.committed_batches += 1
            logger.info(
                f"Committed batch {index + 1}/{result.total_batches} ({len(batch)} operations)"
            )

        return result
