import json
import logging

import pytest
import yaml
from click.testing import CliRunner

from dorm_sync.cli import main

from helpers import csv_bytes, employee_row


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logging.getLogger("dorm_sync").handlers = []


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "store").mkdir()
    (tmp_path / "store" / "properties.json").write_text(
        json.dumps([{"id": "p-east", "name": "東海"}], ensure_ascii=False), encoding="utf-8"
    )
    (tmp_path / "dormitory.csv").write_bytes(
        csv_bytes([employee_row("U1"), employee_row("U2", assignedproperty="东海")])
    )
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "store": {"backend": "snapshot", "snapshot_dir": str(tmp_path / "store")},
                "audit": {"log_dir": str(tmp_path / "logs")},
            }
        ),
        encoding="utf-8",
    )
    return tmp_path


def _invoke(*args):
    return CliRunner().invoke(main, [str(a) for a in args])


def test_init_config(tmp_path):
    output = tmp_path / "config.yaml"
    result = _invoke("init-config", "-o", output)

    assert result.exit_code == 0
    assert output.exists()


def test_parse(workspace):
    result = _invoke("parse", "employees", workspace / "dormitory.csv", "-c", workspace / "config.yaml")

    assert result.exit_code == 0
    assert "Total records: 2" in result.output


def test_reconcile_dry_run_then_live(workspace):
    config = workspace / "config.yaml"
    data = workspace / "dormitory.csv"
    report = workspace / "report.xlsx"

    dry = _invoke("reconcile", "employees", "-f", data, "-c", config, "--dry-run", "-r", report)
    assert dry.exit_code == 0
    assert not (workspace / "store" / "employees.json").exists()
    assert report.exists()

    live = _invoke("reconcile", "employees", "-f", data, "-c", config)
    assert live.exit_code == 0

    with open(workspace / "store" / "employees.json", encoding="utf-8") as f:
        docs = json.load(f)
    assert sorted(d["id"] for d in docs) == ["U1", "U2"]
    assert {d["assigned_property_id"] for d in docs} == {"p-east"}
    assert len(list((workspace / "logs").glob("sync-employees-*.json"))) == 2


def test_unknown_collection_exit_code(workspace):
    result = _invoke(
        "reconcile", "tenants", "-f", workspace / "dormitory.csv", "-c", workspace / "config.yaml"
    )
    assert result.exit_code == 2


def test_missing_columns_exit_code(workspace):
    bad = workspace / "bad.csv"
    bad.write_bytes(csv_bytes([{"uid": "U1"}], columns=["uid"]))

    result = _invoke("reconcile", "employees", "-f", bad, "-c", workspace / "config.yaml")

    assert result.exit_code == 1
    assert not (workspace / "store" / "employees.json").exists()


def test_bad_input_is_reported_before_the_store_is_opened(workspace):
    (workspace / "store" / "employees.json").write_text("{broken", encoding="utf-8")
    bad = workspace / "bad.csv"
    bad.write_bytes(csv_bytes([{"uid": "U1"}], columns=["uid"]))

    result = _invoke("reconcile", "employees", "-f", bad, "-c", workspace / "config.yaml")

    assert result.exit_code == 1
    assert "Missing required columns" in result.output
    assert "Cannot read snapshot" not in result.output
