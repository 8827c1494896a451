import json
from datetime import datetime

from openpyxl import load_workbook

from dorm_sync.models.operations import CreateOp, DeleteOp, OpReason
from dorm_sync.models.records import RejectedRow
from dorm_sync.models.run_log import RunLog, SyncResult, build_collection_logs
from dorm_sync.reports.audit_log import AuditLogger
from dorm_sync.reports.excel_generator import ExcelReportGenerator

from helpers import FIXED_NOW, csv_bytes, employee_row


def _run_log():
    ops = [
        CreateOp(collection="employees", doc_id="U1", data={"uid": "U1", "arrival": datetime(2025, 3, 1)}),
        DeleteOp(collection="employees", doc_id="x", reason=OpReason.DUPLICATE, natural_key="U2"),
        DeleteOp(collection="employees", doc_id="U3", natural_key="U3"),
    ]
    return RunLog(
        timestamp=FIXED_NOW,
        collection="employees",
        dry_run=False,
        status="committed",
        source="dormitory.xlsx",
        collections=build_collection_logs(ops),
        operations=tuple(ops),
        rejected_rows=(RejectedRow(row_number=4, reason="invalid date", natural_key="U9"),),
        batches_total=1,
        batches_committed=1,
    )


def test_audit_logger_never_overwrites(tmp_path):
    logger = AuditLogger(tmp_path / "logs")
    run_log = _run_log()

    first = logger.write(run_log)
    second = logger.write(run_log)

    assert first != second
    assert first.name == "sync-employees-20250310T153000000000.json"
    assert second.name == "sync-employees-20250310T153000000000-1.json"

    with open(first, encoding="utf-8") as f:
        logged = json.load(f)
    assert logged["collections"]["employees"]["deletedDuplicate"] == ["x"]
    assert logged["collections"]["employees"]["deletedOrphan"] == ["U3"]
    assert logged["rejectedRows"] == [{"row": 4, "reason": "invalid date", "naturalKey": "U9"}]


def test_unwritable_log_dir_does_not_fail_run(make_engine, config, tmp_path):
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory", encoding="utf-8")
    config.audit.log_dir = str(blocker)
    engine, store = make_engine()

    result = engine.reconcile("employees", csv_bytes([employee_row("U1")]), filename="d.csv")

    assert result.log_path is None
    assert result.run_log.status == "committed"
    assert "U1" in store.documents("employees")


def test_excel_report(tmp_path):
    result = SyncResult(run_log=_run_log(), records_total=2)
    path = ExcelReportGenerator().generate_report(result, tmp_path / "out" / "report.xlsx")

    wb = load_workbook(path)
    assert wb.sheetnames == ["Summary", "Operations", "Rejected Rows", "Unresolved References"]

    ops_sheet = wb["Operations"]
    assert ops_sheet.max_row == 4
    assert ops_sheet["B2"].value == "create"
    assert ops_sheet["F3"].value == "duplicate"
    assert wb["Rejected Rows"]["A2"].value == 4
