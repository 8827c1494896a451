"""Run log and summary models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .operations import MutationOp, OpKind, OpReason, describe_op
from .records import RejectedRow, UnresolvedReference


@dataclass(frozen=True)
class CollectionLog:
    """Affected document ids for one collection."""

    collection: str
    created: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    deleted_duplicate: tuple[str, ...] = ()
    deleted_orphan: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return (
            len(self.created)
            + len(self.updated)
            + len(self.deleted_duplicate)
            + len(self.deleted_orphan)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "created": list(self.created),
            "updated": list(self.updated),
            "deletedDuplicate": list(self.deleted_duplicate),
            "deletedOrphan": list(self.deleted_orphan),
        }


_DUPLICATE_REASONS = {OpReason.DUPLICATE, OpReason.REFERENCE_DUPLICATE}


def build_collection_logs(ops: list[MutationOp]) -> dict[str, CollectionLog]:
    """Group planned operations into per-collection id lists, in op order."""
    buckets: dict[str, dict[str, list[str]]] = {}
    for op in ops:
        bucket = buckets.setdefault(
            op.collection,
            {"created": [], "updated": [], "deleted_duplicate": [], "deleted_orphan": []},
        )
        if op.kind is OpKind.CREATE:
            bucket["created"].append(op.doc_id)
        elif op.kind is OpKind.UPDATE:
            bucket["updated"].append(op.doc_id)
        elif op.reason in _DUPLICATE_REASONS:
            bucket["deleted_duplicate"].append(op.doc_id)
        else:
            bucket["deleted_orphan"].append(op.doc_id)

    return {
        name: CollectionLog(
            collection=name,
            created=tuple(b["created"]),
            updated=tuple(b["updated"]),
            deleted_duplicate=tuple(b["deleted_duplicate"]),
            deleted_orphan=tuple(b["deleted_orphan"]),
        )
        for name, b in buckets.items()
    }


@dataclass(frozen=True)
class RunLog:
    """
    Immutable record of one reconciliation run.

    Built once at the end of a run (live, dry or failed) and never
    mutated afterwards.
    """

    timestamp: datetime
    collection: str
    dry_run: bool
    status: str
    source: str
    collections: dict[str, CollectionLog]
    operations: tuple[MutationOp, ...]
    rejected_rows: tuple[RejectedRow, ...] = ()
    unresolved_references: tuple[UnresolvedReference, ...] = ()
    skipped_blank_rows: int = 0
    batches_total: int = 0
    batches_committed: int = 0
    error: Optional[str] = None

    def counts(self) -> dict[str, dict[str, int]]:
        return {
            name: {
                "created": len(log.created),
                "updated": len(log.updated),
                "deletedDuplicate": len(log.deleted_duplicate),
                "deletedOrphan": len(log.deleted_orphan),
            }
            for name, log in self.collections.items()
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "collection": self.collection,
            "dryRun": self.dry_run,
            "status": self.status,
            "source": self.source,
            "collections": {name: log.to_dict() for name, log in self.collections.items()},
            "counts": self.counts(),
            "rejectedRows": [
                {"row": r.row_number, "reason": r.reason, "naturalKey": r.natural_key}
                for r in self.rejected_rows
            ],
            "unresolvedReferences": [
                {
                    "collection": u.collection,
                    "name": u.name,
                    "reason": u.reason,
                    "dependentKeys": list(u.dependent_keys),
                }
                for u in self.unresolved_references
            ],
            "skippedBlankRows": self.skipped_blank_rows,
            "batches": {"total": self.batches_total, "committed": self.batches_committed},
            "error": self.error,
            "operations": [describe_op(op) for op in self.operations],
        }


@dataclass
class SyncResult:
    """Everything a caller needs after a run: ops, counts and the run log."""

    run_log: RunLog
    records_total: int
    processing_time_seconds: float = 0.0
    log_path: Optional[str] = None

    @property
    def operations(self) -> tuple[MutationOp, ...]:
        return self.run_log.operations

    @property
    def rejected_count(self) -> int:
        return len(self.run_log.rejected_rows)

    @property
    def unresolved_count(self) -> int:
        return len(self.run_log.unresolved_references)

    @property
    def skipped_record_count(self) -> int:
        return sum(len(u.dependent_keys) for u in self.run_log.unresolved_references)

    def count(self, kind: OpKind, reason: Optional[OpReason] = None) -> int:
        return sum(
            1
            for op in self.operations
            if op.kind is kind and (reason is None or op.reason is reason)
        )
