"""Utility modules."""

from .exceptions import (
    SyncError,
    RowRejected,
    InvalidDate,
    ReferenceUnresolvable,
    BatchCommitFailed,
    FatalInputError,
    MissingColumnsError,
    ConfigurationError,
    StoreError,
    AuditLogError,
)
from .logging_config import setup_logging

__all__ = [
    "SyncError",
    "RowRejected",
    "InvalidDate",
    "ReferenceUnresolvable",
    "BatchCommitFailed",
    "FatalInputError",
    "MissingColumnsError",
    "ConfigurationError",
    "StoreError",
    "AuditLogError",
    "setup_logging",
]
