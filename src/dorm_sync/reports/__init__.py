"""Run logs and reports."""

from .audit_log import AuditLogger
from .excel_generator import ExcelReportGenerator

__all__ = ["AuditLogger", "ExcelReportGenerator"]
