"""Data models for dataset sync."""

from .records import ExternalRecord, StoreDocument, RejectedRow, UnresolvedReference
from .operations import CreateOp, UpdateOp, DeleteOp, MutationOp, OpKind, OpReason
from .run_log import CollectionLog, RunLog, SyncResult, build_collection_logs

__all__ = [
    "ExternalRecord",
    "StoreDocument",
    "RejectedRow",
    "UnresolvedReference",
    "CreateOp",
    "UpdateOp",
    "DeleteOp",
    "MutationOp",
    "OpKind",
    "OpReason",
    "CollectionLog",
    "RunLog",
    "SyncResult",
    "build_collection_logs",
]
