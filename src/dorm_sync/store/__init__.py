"""Document store backends and the batched applier."""

from pathlib import Path

from ..config import StoreConfig
from ..utils.clock import Clock, system_clock
from .applier import ApplyResult, BatchedApplier, chunked
from .base import BOOKKEEPING_FIELDS, DocumentStore
from .memory import InMemoryDocumentStore, SnapshotDocumentStore


def open_store(store_config: StoreConfig, clock: Clock = system_clock) -> DocumentStore:
    """Build the configured store backend."""
    if store_config.backend == "mongodb":
        from .mongo import MongoDocumentStore

        return MongoDocumentStore.from_config(store_config, clock=clock)
    if store_config.backend == "memory":
        return InMemoryDocumentStore(clock=clock)
    return SnapshotDocumentStore(Path(store_config.snapshot_dir), clock=clock)


__all__ = [
    "ApplyResult",
    "BatchedApplier",
    "chunked",
    "BOOKKEEPING_FIELDS",
    "DocumentStore",
    "InMemoryDocumentStore",
    "SnapshotDocumentStore",
    "open_store",
]
