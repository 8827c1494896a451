from datetime import datetime

import pytest

from dorm_sync.config import generate_default_config, load_config
from dorm_sync.utils.clock import clock_for_threshold, fixed_clock
from dorm_sync.utils.exceptions import ConfigurationError

from helpers import FIXED_NOW


def test_defaults():
    config = load_config(None)

    assert config.engine.batch_size_limit == 450
    assert config.engine.alias_table["东海"] == "東海"
    assert set(config.collections) == {"employees", "invoices"}
    assert config.collection("employees").natural_key == "uid"


def test_unknown_collection():
    with pytest.raises(ConfigurationError, match="properties"):
        load_config(None).collection("properties")


def test_yaml_overrides_merge(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "engine:\n  batch_size_limit: 100\nstore:\n  backend: memory\n", encoding="utf-8"
    )

    config = load_config(path)

    assert config.engine.batch_size_limit == 100
    assert config.store.backend == "memory"
    # Untouched nested defaults survive the merge
    assert config.engine.alias_table["文华楼"] == "文華樓"
    assert config.config_file_path == str(path)


@pytest.mark.parametrize(
    "content",
    [
        "engine:\n  batch_size_limit: 600\n",
        "engine:\n  batch_size_limit: 0\n",
        "engine:\n  status_threshold_date: someday\n",
        "collections:\n  employees:\n    orphan_policy: archive\n",
        "engine: [unclosed\n",
    ],
)
def test_invalid_config(tmp_path, content):
    path = tmp_path / "config.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(path)


def test_generated_config_loads(tmp_path):
    path = tmp_path / "nested" / "config.yaml"
    generate_default_config(path)

    text = path.read_text(encoding="utf-8")
    assert "東海" in text

    config = load_config(path)
    assert config.engine.alias_table == load_config(None).engine.alias_table


def test_threshold_clock():
    assert clock_for_threshold("2024-01-05")() == datetime(2024, 1, 5)
    fallback = fixed_clock(FIXED_NOW)
    assert clock_for_threshold("today", fallback) is fallback
