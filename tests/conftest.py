import pytest

from dorm_sync.config import SyncConfig, get_default_config
from dorm_sync.matching.engine import ReconciliationEngine
from dorm_sync.store.memory import InMemoryDocumentStore
from dorm_sync.utils.clock import fixed_clock

from helpers import FIXED_NOW


@pytest.fixture
def clock():
    return fixed_clock(FIXED_NOW)


@pytest.fixture
def config(tmp_path):
    data = get_default_config()
    data["audit"]["log_dir"] = str(tmp_path / "logs")
    data["store"]["backend"] = "memory"
    return SyncConfig(**data)


@pytest.fixture
def make_engine(config, clock):
    def _make(seed=None, store=None):
        store = store or InMemoryDocumentStore(seed, clock=clock)
        return ReconciliationEngine(config, store, clock=clock), store

    return _make
