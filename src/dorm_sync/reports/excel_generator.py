"""
Excel report generator for sync runs.
Creates a multi-sheet workbook describing one run's operations.
"""

from pathlib import Path
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..models.operations import CreateOp, OpKind, UpdateOp
from ..models.run_log import SyncResult

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
CREATE_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
UPDATE_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
DELETE_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

KIND_FILLS = {
    OpKind.CREATE: CREATE_FILL,
    OpKind.UPDATE: UPDATE_FILL,
    OpKind.DELETE: DELETE_FILL,
}


class ExcelReportGenerator:
    """Generates Excel run reports with multiple sheets."""

    def generate_report(self, result: SyncResult, output_path: Path) -> Path:
        """
        Generate the complete run report.

        Args:
            result: Finished (or partially failed) sync result
            output_path: Path for output file

        Returns:
            Path to generated report
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()
        if wb.active:
            wb.remove(wb.active)

        self._create_summary_sheet(wb, result)
        self._create_operations_sheet(wb, result)
        self._create_rejected_sheet(wb, result)
        self._create_unresolved_sheet(wb, result)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(output_path)
        logger.info(f"Report saved: {output_path}")

        return output_path

    def _create_summary_sheet(self, wb: Workbook, result: SyncResult) -> None:
        run_log = result.run_log
        ws = wb.create_sheet("Summary")

        ws["A1"] = "Dataset Sync Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        run_info = [
            ("Collection:", run_log.collection),
            ("Source:", run_log.source),
            ("Run At:", run_log.timestamp.strftime("%Y-%m-%d %H:%M:%S")),
            ("Mode:", "dry run" if run_log.dry_run else "live"),
            ("Status:", run_log.status),
            ("Batches Committed:", f"{run_log.batches_committed}/{run_log.batches_total}"),
            ("Records:", result.records_total),
            ("Rejected Rows:", result.rejected_count),
            ("Unresolved References:", result.unresolved_count),
            ("Records Skipped:", result.skipped_record_count),
            ("Blank Rows:", run_log.skipped_blank_rows),
        ]
        for i, (label, value) in enumerate(run_info, start=3):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = value

        row = len(run_info) + 4
        ws[f"A{row}"] = "Operations by Collection"
        ws[f"A{row}"].font = Font(bold=True)
        row += 1

        headers = ["Collection", "Created", "Updated", "Deleted (duplicate)", "Deleted (orphan)"]
        self._write_headers(ws, row, headers)
        for name, counts in run_log.counts().items():
            row += 1
            values = [
                name,
                counts["created"],
                counts["updated"],
                counts["deletedDuplicate"],
                counts["deletedOrphan"],
            ]
            for col, value in enumerate(values, start=1):
                ws.cell(row=row, column=col, value=value).border = THIN_BORDER

        if run_log.error:
            row += 2
            ws[f"A{row}"] = "Error:"
            ws[f"B{row}"] = run_log.error
            ws[f"B{row}"].alignment = Alignment(wrap_text=True)

        ws.column_dimensions["A"].width = 26
        ws.column_dimensions["B"].width = 40

    def _create_operations_sheet(self, wb: Workbook, result: SyncResult) -> None:
        ws = wb.create_sheet("Operations")
        headers = ["#", "Kind", "Collection", "Document ID", "Natural Key", "Reason", "Fields"]
        self._write_headers(ws, 1, headers)

        for row_num, op in enumerate(result.operations, start=2):
            if isinstance(op, CreateOp):
                fields = ", ".join(f"{k}={v}" for k, v in op.data.items())
            elif isinstance(op, UpdateOp):
                fields = ", ".join(f"{k}={v}" for k, v in op.delta.items())
            else:
                fields = ""
            row_data = [
                row_num - 1,
                op.kind.value,
                op.collection,
                op.doc_id,
                op.natural_key or "",
                op.reason.value,
                fields,
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = KIND_FILLS[op.kind]

        self._auto_fit_columns(ws)

    def _create_rejected_sheet(self, wb: Workbook, result: SyncResult) -> None:
        ws = wb.create_sheet("Rejected Rows")
        self._write_headers(ws, 1, ["Row", "Natural Key", "Reason"])
        for row_num, rejected in enumerate(result.run_log.rejected_rows, start=2):
            row_data = [rejected.row_number, rejected.natural_key or "", rejected.reason]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = DELETE_FILL
        self._auto_fit_columns(ws)

    def _create_unresolved_sheet(self, wb: Workbook, result: SyncResult) -> None:
        ws = wb.create_sheet("Unresolved References")
        self._write_headers(ws, 1, ["Collection", "Name", "Reason", "Skipped Records"])
        for row_num, entry in enumerate(result.run_log.unresolved_references, start=2):
            row_data = [entry.collection, entry.name, entry.reason, ", ".join(entry.dependent_keys)]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
        self._auto_fit_columns(ws)

    def _write_headers(self, ws: Worksheet, row: int, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = column_cells[0].column_letter

            for cell in column_cells:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))

            ws.column_dimensions[column].width = min(max_length + 2, 60)
