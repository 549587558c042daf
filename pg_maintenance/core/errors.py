"""
Error taxonomy for maintenance runs.

Every failure that should stop a run derives from MaintenanceError and carries
the exit code the CLI uses. Nothing in the core calls sys.exit; main() is the
single place errors are turned into a process status.
"""
from typing import Optional


class MaintenanceError(Exception):
    """Base class for failures that abort a maintenance run."""

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        column: Optional[str] = None,
        deleted: int = 0,
        batches: int = 0,
    ) -> None:
        super().__init__(message)
        self.table = table
        self.column = column
        # Rows already committed for `table` before the failure.
        self.deleted = deleted
        self.batches = batches

    def context(self) -> dict:
        details: dict = {"error": str(self), "error_type": type(self).__name__}
        if self.table is not None:
            details["table"] = self.table
        if self.column is not None:
            details["column"] = self.column
        if self.table is not None:
            details["committed_rows"] = self.deleted
            details["committed_batches"] = self.batches
        return details


class ConfigError(MaintenanceError, ValueError):
    """Malformed table spec, invalid identifier or missing setting."""

    exit_code = 2


class DatabaseConnectionError(MaintenanceError):
    """The database could not be reached or pinged at startup."""


class TransactionError(MaintenanceError):
    """A batch transaction could not be started."""


class QueryError(TransactionError):
    """The delete statement failed or was cancelled by its deadline."""


class CommitError(TransactionError):
    """Commit failed after a delete; the batch is not assumed applied."""
