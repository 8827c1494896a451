"""
In-memory and JSON-snapshot document stores.
Used for tests, offline runs and dry runs against exported backups.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence
import copy
import hashlib
import json
import logging
import os
import tempfile

from ..models.operations import CreateOp, DeleteOp, MutationOp, UpdateOp
from ..models.records import StoreDocument
from ..utils.clock import Clock, system_clock
from ..utils.exceptions import StoreError
from .base import CREATED_AT, UPDATED_AT, DocumentStore

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store; collections keep insertion order as store order."""

    def __init__(
        self,
        collections: Optional[dict[str, list[dict[str, Any]]]] = None,
        clock: Clock = system_clock,
    ):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._clock = clock
        # Per-collection id sequence, restarted whenever a collection is fetched
        self._sequence: dict[str, int] = {}
        # Committed batches in order, for inspection
        self.commits: list[list[MutationOp]] = []

        for name, docs in (collections or {}).items():
            for doc in docs:
                doc = dict(doc)
                doc_id = doc.pop("id", None)
                self.insert(name, doc, doc_id=doc_id)

    def insert(self, collection: str, data: dict[str, Any], doc_id: Optional[str] = None) -> str:
        """Seed a document directly, bypassing batches."""
        doc_id = str(doc_id) if doc_id is not None else self.new_id(collection)
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        return doc_id

    def documents(self, collection: str) -> dict[str, dict[str, Any]]:
        """Copy of a collection keyed by document id."""
        return copy.deepcopy(self._collections.get(collection, {}))

    def collection_names(self) -> list[str]:
        return list(self._collections)

    def fetch_all(self, collection: str) -> list[StoreDocument]:
        self._sequence[collection] = 0
        return [
            StoreDocument(id=doc_id, collection=collection, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(collection, {}).items()
        ]

    def new_id(self, collection: str) -> str:
        # Depends only on the stored documents since the last fetch, so a dry
        # run leaves the ids of a following live run unchanged
        docs = self._collections.get(collection, {})
        while True:
            self._sequence[collection] = self._sequence.get(collection, 0) + 1
            seed = f"{collection}:{self._sequence[collection]}"
            candidate = hashlib.sha1(seed.encode()).hexdigest()[:20]
            if candidate not in docs:
                return candidate

    def commit(self, ops: Sequence[MutationOp]) -> None:
        staged = copy.deepcopy(self._collections)
        now = self._clock()
        for op in ops:
            self._apply(staged, op, now)
        self._collections = staged
        self.commits.append(list(ops))

    def _apply(self, staged: dict[str, dict[str, dict[str, Any]]], op: MutationOp, now: datetime) -> None:
        docs = staged.setdefault(op.collection, {})

        if isinstance(op, CreateOp):
            if op.doc_id in docs:
                raise StoreError(f"{op.collection}/{op.doc_id} already exists")
            data = copy.deepcopy(op.data)
            data[CREATED_AT] = now
            data[UPDATED_AT] = now
            docs[op.doc_id] = data

        elif isinstance(op, UpdateOp):
            if op.doc_id not in docs:
                raise StoreError(f"{op.collection}/{op.doc_id} does not exist")
            docs[op.doc_id].update(copy.deepcopy(op.delta))
            docs[op.doc_id][UPDATED_AT] = now

        elif isinstance(op, DeleteOp):
            if docs.pop(op.doc_id, None) is None:
                logger.debug(f"Delete of missing document {op.collection}/{op.doc_id}")

        else:
            raise StoreError(f"Unsupported operation: {op!r}")


_TIMESTAMP_SHAPES = ({"_seconds", "_nanoseconds"}, {"seconds", "nanoseconds"})


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: dict[str, Any]) -> Any:
    if set(obj) == {"$date"}:
        return datetime.fromisoformat(obj["$date"])
    if set(obj) in _TIMESTAMP_SHAPES:
        # Timestamps as serialized by the hosted store's backup export
        seconds = obj.get("_seconds", obj.get("seconds"))
        nanos = obj.get("_nanoseconds", obj.get("nanoseconds"))
        moment = datetime.fromtimestamp(seconds + nanos / 1e9, tz=timezone.utc)
        return moment.replace(tzinfo=None)
    return obj


class SnapshotDocumentStore(InMemoryDocumentStore):
    """
    Store persisted as one JSON file per collection.

    Files follow the backup layout: a list of ``{"id": ..., **fields}``.
    Every committed batch rewrites the touched collection files.
    """

    def __init__(self, directory: Path, clock: Clock = system_clock):
        super().__init__(clock=clock)
        self.directory = Path(directory)
        if self.directory.exists():
            for path in sorted(self.directory.glob("*.json")):
                self._load_file(path)
        logger.info(
            f"Loaded snapshot store {self.directory} "
            f"({len(self.collection_names())} collections)"
        )

    def _load_file(self, path: Path) -> None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                docs = json.load(f, object_hook=_decode)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read snapshot {path}: {e}") from e
        if not isinstance(docs, list):
            raise StoreError(f"Snapshot {path} must contain a list of documents")
        self._collections.setdefault(path.stem, {})
        for doc in docs:
            doc = dict(doc)
            doc_id = doc.pop("id", None)
            if doc_id is None:
                raise StoreError(f"Snapshot {path} has a document without an id")
            self.insert(path.stem, doc, doc_id=doc_id)

    def commit(self, ops: Sequence[MutationOp]) -> None:
        super().commit(ops)
        for name in {op.collection for op in ops}:
            self._write_file(name)

    def _write_file(self, collection: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / f"{collection}.json"
        docs = [{"id": doc_id, **data} for doc_id, data in self._collections.get(collection, {}).items()]
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(docs, f, ensure_ascii=False, indent=2, default=_encode)
            os.replace(tmp_name, target)
        except OSError as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreError(f"Cannot write snapshot {target}: {e}") from e
