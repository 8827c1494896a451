"""Mutation operations planned against the document store."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class OpKind(Enum):
    """Kind of store write."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OpReason(Enum):
    """Why an operation was planned, for the audit trail."""

    NEW_RECORD = "new_record"
    CHANGED_FIELDS = "changed_fields"
    DUPLICATE = "duplicate"
    ORPHAN = "orphan"
    NEW_REFERENCE = "new_reference"
    REFERENCE_RENAME = "reference_rename"
    REFERENCE_DUPLICATE = "reference_duplicate"


@dataclass(frozen=True)
class CreateOp:
    """Create a document with the given data."""

    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
    reason: OpReason = OpReason.NEW_RECORD
    natural_key: str | None = None

    kind = OpKind.CREATE


@dataclass(frozen=True)
class UpdateOp:
    """Merge ``delta`` into an existing document."""

    collection: str
    doc_id: str
    delta: dict[str, Any] = field(default_factory=dict)
    reason: OpReason = OpReason.CHANGED_FIELDS
    natural_key: str | None = None

    kind = OpKind.UPDATE


@dataclass(frozen=True)
class DeleteOp:
    """Remove a document."""

    collection: str
    doc_id: str
    reason: OpReason = OpReason.ORPHAN
    natural_key: str | None = None

    kind = OpKind.DELETE


MutationOp = Union[CreateOp, UpdateOp, DeleteOp]


def describe_op(op: MutationOp) -> dict[str, Any]:
    """Flatten an operation into a JSON-friendly dict."""
    entry: dict[str, Any] = {
        "kind": op.kind.value,
        "collection": op.collection,
        "id": op.doc_id,
        "reason": op.reason.value,
        "natural_key": op.natural_key,
    }
    if isinstance(op, CreateOp):
        entry["data"] = dict(op.data)
    elif isinstance(op, UpdateOp):
        entry["delta"] = dict(op.delta)
    return entry
