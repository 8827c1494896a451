"""Custom exceptions for the sync application."""

from typing import Optional


class SyncError(Exception):
    """Base exception for sync errors."""

    pass


class RowRejected(SyncError):
    """A single dataset row failed normalization and was dropped."""

    def __init__(self, row_number: int, reason: str, natural_key: Optional[str] = None):
        self.row_number = row_number
        self.reason = reason
        self.natural_key = natural_key
        super().__init__(f"Row {row_number}: {reason}")


class InvalidDate(RowRejected):
    """A date cell could not be parsed."""

    def __init__(self, row_number: int, column: str, value, natural_key: Optional[str] = None):
        self.column = column
        self.value = value
        super().__init__(
            row_number,
            f"invalid date in column '{column}': {value!r}",
            natural_key=natural_key,
        )


class ReferenceUnresolvable(SyncError):
    """A referenced entity is missing and could not be created."""

    def __init__(self, collection: str, name: str, reason: str):
        self.collection = collection
        self.name = name
        self.reason = reason
        super().__init__(f"Cannot resolve {collection} '{name}': {reason}")


class BatchCommitFailed(SyncError):
    """A batch write failed; earlier batches remain committed."""

    def __init__(self, batch_index: int, total_batches: int, cause: Exception):
        self.batch_index = batch_index
        self.total_batches = total_batches
        self.last_committed_batch = batch_index - 1
        self.cause = cause
        # Set by the engine so callers can still report the partial run
        self.result = None
        super().__init__(
            f"Batch {batch_index + 1}/{total_batches} failed to commit: {cause} "
            f"(last committed batch index: {self.last_committed_batch})"
        )


class FatalInputError(SyncError):
    """Input dataset is unreadable or unusable."""

    pass


class MissingColumnsError(FatalInputError):
    """Required columns are absent from the input header row."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required columns: {', '.join(missing)}")


class ConfigurationError(SyncError):
    """Error in configuration."""

    pass


class StoreError(SyncError):
    """Document store read or write failure."""

    pass


class AuditLogError(SyncError):
    """Error persisting a run log."""

    pass
