import json
from datetime import datetime

import pytest

from dorm_sync.config import StoreConfig
from dorm_sync.models.operations import CreateOp, DeleteOp, UpdateOp
from dorm_sync.store import open_store
from dorm_sync.store.applier import BatchedApplier, chunked
from dorm_sync.store.memory import InMemoryDocumentStore, SnapshotDocumentStore
from dorm_sync.utils.exceptions import BatchCommitFailed, StoreError

from helpers import FIXED_NOW, FailingStore


def _creates(n, collection="employees"):
    return [CreateOp(collection=collection, doc_id=f"U{i}", data={"uid": f"U{i}"}) for i in range(n)]


def test_chunked_respects_limit():
    batches = chunked(_creates(1000), 450)
    assert [len(b) for b in batches] == [450, 450, 100]
    assert chunked([], 450) == []


def test_chunked_rejects_bad_size():
    with pytest.raises(ValueError):
        chunked(_creates(3), 0)


def test_apply_commits_in_order():
    store = InMemoryDocumentStore()
    ops = _creates(5)

    result = BatchedApplier(store, 2).apply(ops)

    assert result.total_batches == 3
    assert result.committed_batches == 3
    assert [len(b) for b in store.commits] == [2, 2, 1]
    assert [op for batch in store.commits for op in batch] == ops
    assert list(store.documents("employees")) == [f"U{i}" for i in range(5)]


def test_dry_run_writes_nothing():
    store = InMemoryDocumentStore()
    result = BatchedApplier(store, 2).apply(_creates(5), dry_run=True)

    assert result.total_batches == 3
    assert result.committed_batches == 0
    assert store.commits == []
    assert store.documents("employees") == {}


def test_failed_batch_stops_and_keeps_earlier_batches():
    store = FailingStore(fail_on=2)

    with pytest.raises(BatchCommitFailed) as exc_info:
        BatchedApplier(store, 2).apply(_creates(5))

    error = exc_info.value
    assert error.batch_index == 1
    assert error.last_committed_batch == 0
    assert error.total_batches == 3
    assert isinstance(error.cause, StoreError)
    assert list(store.documents("employees")) == ["U0", "U1"]
    assert store.attempts == 2


def test_memory_commit_is_atomic():
    store = InMemoryDocumentStore({"employees": [{"id": "U1", "uid": "U1"}]})

    with pytest.raises(StoreError):
        store.commit(
            [
                DeleteOp(collection="employees", doc_id="U1"),
                UpdateOp(collection="employees", doc_id="missing", delta={"x": 1}),
            ]
        )

    assert store.documents("employees") == {"U1": {"uid": "U1"}}


def test_memory_commit_stamps_bookkeeping_fields():
    store = InMemoryDocumentStore(clock=lambda: FIXED_NOW)
    store.commit([CreateOp(collection="properties", doc_id="p1", data={"name": "東海"})])
    store.commit([UpdateOp(collection="properties", doc_id="p1", delta={"name": "東海 A"})])

    doc = store.documents("properties")["p1"]
    assert doc["name"] == "東海 A"
    assert doc["created_at"] == FIXED_NOW
    assert doc["updated_at"] == FIXED_NOW


def test_new_id_is_deterministic_and_unique():
    first = InMemoryDocumentStore()
    second = InMemoryDocumentStore()

    ids = [first.new_id("properties") for _ in range(3)]

    assert ids == [second.new_id("properties") for _ in range(3)]
    assert len(set(ids)) == 3


def test_snapshot_store_round_trip(tmp_path):
    (tmp_path / "properties.json").write_text(
        json.dumps([{"id": "p1", "name": "東海"}], ensure_ascii=False), encoding="utf-8"
    )
    store = SnapshotDocumentStore(tmp_path, clock=lambda: FIXED_NOW)

    assert [d.id for d in store.fetch_all("properties")] == ["p1"]

    store.commit(
        [
            CreateOp(
                collection="employees",
                doc_id="U1",
                data={"uid": "U1", "arrival": datetime(2025, 3, 1)},
            )
        ]
    )

    reloaded = SnapshotDocumentStore(tmp_path)
    doc = reloaded.documents("employees")["U1"]
    assert doc["arrival"] == datetime(2025, 3, 1)
    assert doc["created_at"] == FIXED_NOW
    assert reloaded.documents("properties") == {"p1": {"name": "東海"}}


def test_snapshot_store_rejects_bad_file(tmp_path):
    (tmp_path / "employees.json").write_text('{"not": "a list"}', encoding="utf-8")
    with pytest.raises(StoreError):
        SnapshotDocumentStore(tmp_path)


def test_open_store_backends(tmp_path):
    assert type(open_store(StoreConfig(backend="memory"))) is InMemoryDocumentStore
    store = open_store(StoreConfig(backend="snapshot", snapshot_dir=str(tmp_path)))
    assert isinstance(store, SnapshotDocumentStore)


def test_snapshot_store_reads_backup_timestamps(tmp_path):
    backup = [
        {
            "id": "U1",
            "uid": "U1",
            "arrival": {"_seconds": 1740787200, "_nanoseconds": 0},
            "end_date": {"seconds": 1756598400, "nanoseconds": 0},
        }
    ]
    (tmp_path / "employees.json").write_text(json.dumps(backup), encoding="utf-8")

    doc = SnapshotDocumentStore(tmp_path).documents("employees")["U1"]

    assert doc["arrival"] == datetime(2025, 3, 1)
    assert doc["end_date"] == datetime(2025, 8, 31)


def test_new_id_restarts_after_fetch():
    store = InMemoryDocumentStore({"properties": [{"id": "p1", "name": "東海"}]})

    store.fetch_all("properties")
    planned = store.new_id("properties")
    store.fetch_all("properties")

    assert store.new_id("properties") == planned
