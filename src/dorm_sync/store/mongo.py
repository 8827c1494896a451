"""MongoDB document store adapter."""

from typing import Any, Sequence
import logging

from bson import ObjectId
from pymongo import ASCENDING, DeleteOne, InsertOne, MongoClient, UpdateOne
from pymongo.errors import PyMongoError

from ..config import StoreConfig
from ..models.operations import CreateOp, DeleteOp, MutationOp, UpdateOp
from ..models.records import StoreDocument
from ..utils.clock import Clock, system_clock
from ..utils.exceptions import StoreError
from .base import CREATED_AT, UPDATED_AT, DocumentStore

logger = logging.getLogger(__name__)


class MongoDocumentStore(DocumentStore):
    """
    Store backed by a MongoDB database.

    Each batch runs as one multi-document transaction, so the server must
    be a replica set or sharded cluster.
    """

    def __init__(self, client: MongoClient, database: str, clock: Clock = system_clock):
        self._client = client
        self._db = client[database]
        self._clock = clock
        # Native _id values for ids handed out as strings
        self._raw_ids: dict[tuple[str, str], Any] = {}

    @classmethod
    def from_config(cls, store_config: StoreConfig, clock: Clock = system_clock) -> "MongoDocumentStore":
        client = MongoClient(store_config.uri, serverSelectionTimeoutMS=store_config.timeout_ms)
        return cls(client, store_config.database, clock=clock)

    def fetch_all(self, collection: str) -> list[StoreDocument]:
        documents: list[StoreDocument] = []
        try:
            for raw in self._db[collection].find({}).sort("$natural", ASCENDING):
                raw_id = raw.pop("_id")
                doc_id = str(raw_id)
                self._raw_ids[(collection, doc_id)] = raw_id
                documents.append(StoreDocument(id=doc_id, collection=collection, data=raw))
        except PyMongoError as e:
            raise StoreError(f"Failed to fetch {collection}: {e}") from e
        logger.debug(f"Fetched {len(documents)} documents from {collection}")
        return documents

    def new_id(self, collection: str) -> str:
        return str(ObjectId())

    def commit(self, ops: Sequence[MutationOp]) -> None:
        now = self._clock()
        requests: dict[str, list] = {}
        for op in ops:
            requests.setdefault(op.collection, []).append(self._request(op, now))

        def _write(session) -> None:
            for name, reqs in requests.items():
                self._db[name].bulk_write(reqs, ordered=True, session=session)

        try:
            with self._client.start_session() as session:
                session.with_transaction(_write)
        except PyMongoError as e:
            raise StoreError(f"Transaction failed: {e}") from e

    def _request(self, op: MutationOp, now):
        key = self._raw_ids.get((op.collection, op.doc_id), op.doc_id)
        if isinstance(op, CreateOp):
            return InsertOne({"_id": key, **op.data, CREATED_AT: now, UPDATED_AT: now})
        if isinstance(op, UpdateOp):
            return UpdateOne({"_id": key}, {"$set": {**op.delta, UPDATED_AT: now}})
        if isinstance(op, DeleteOp):
            return DeleteOne({"_id": key})
        raise StoreError(f"Unsupported operation: {op!r}")

    def close(self) -> None:
        self._client.close()
