from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import DateTime, Integer, bindparam, text
from sqlalchemy.sql.elements import TextClause

from ..core.errors import ConfigError, MaintenanceError
from ..core.logging import get_logger
from ..db import Database
from ..schemas.table_spec import TableSpec

logger = get_logger(__name__)

# Engine-level row locators; user primary keys are never assumed.
ROW_ID_COLUMNS = {
    "postgresql": "ctid",
    "sqlite": "rowid",
}


def compute_cutoff(now: datetime, retention_days: int) -> datetime:
    """Subtract whole calendar days from ``now``.

    Arithmetic on an aware datetime keeps the wall-clock time, so with a
    zoneinfo ``now`` the cutoff lands on the same local hour across DST.
    """
    try:
        return now - timedelta(days=retention_days)
    except OverflowError as exc:
        raise ConfigError(
            f"Retention of {retention_days} days reaches before the earliest representable date"
        ) from exc


@dataclass
class DeletionJobState:
    cutoff: datetime
    batch_size: int
    total_deleted: int = 0
    batches: int = 0


@dataclass(frozen=True)
class TableResult:
    table: str
    column: str
    retention_days: int
    cutoff: datetime
    deleted: int
    batches: int
    completed: bool


class BatchDeleter:
    """Deletes aged rows from one table in bounded, independently committed batches."""

    def __init__(self, database: Database, *, batch_size: int = 0, timeout: float = 60.0) -> None:
        if batch_size < 0:
            raise ConfigError("Batch size must not be negative")
        self._database = database
        self._batch_size = batch_size
        self._timeout = timeout

    def build_statement(self, spec: TableSpec) -> TextClause:
        dialect = self._database.engine.dialect
        row_id = ROW_ID_COLUMNS.get(dialect.name)
        if row_id is None:
            raise ConfigError(f"Unsupported database dialect for batch deletes: {dialect.name}")

        # Identifiers were validated when the spec was parsed.
        quote = dialect.identifier_preparer.quote
        table = quote(spec.table_name)
        column = quote(spec.timestamp_column)

        subquery = f"SELECT {row_id} FROM {table} WHERE {column} < :cutoff ORDER BY {column}"
        binds = [bindparam("cutoff", type_=DateTime(timezone=True))]
        if self._batch_size > 0:
            subquery += " LIMIT :batch_size"
            binds.append(bindparam("batch_size", type_=Integer))

        return text(f"DELETE FROM {table} WHERE {row_id} IN ({subquery})").bindparams(*binds)

    def _run_batch(self, statement: TextClause, params: dict) -> int:
        transaction = self._database.begin(self._timeout)
        try:
            rows = transaction.execute(statement, params)
        except Exception:
            transaction.rollback()
            raise
        transaction.commit()
        return rows

    def purge(self, spec: TableSpec, now: datetime) -> TableResult:
        state = DeletionJobState(
            cutoff=compute_cutoff(now, spec.retention_days),
            batch_size=self._batch_size,
        )
        statement = self.build_statement(spec)
        params: dict = {"cutoff": state.cutoff}
        if state.batch_size > 0:
            params["batch_size"] = state.batch_size

        log = logger.bind(table=spec.table_name, column=spec.timestamp_column)
        log.info(
            "cleanup.table_started",
            retention_days=spec.retention_days,
            cutoff=state.cutoff.isoformat(),
            batch_size=state.batch_size,
            timeout_sec=self._timeout,
        )
        if spec.retention_days == 0 and state.batch_size == 0:
            log.warning("cleanup.full_table_delete", cutoff=state.cutoff.isoformat())

        while True:
            try:
                rows = self._run_batch(statement, params)
            except MaintenanceError as exc:
                exc.table = spec.table_name
                exc.column = spec.timestamp_column
                exc.deleted = state.total_deleted
                exc.batches = state.batches
                log.error("cleanup.batch_failed", error=str(exc), total=state.total_deleted)
                raise

            if rows == 0:
                log.info("cleanup.table_exhausted", total=state.total_deleted)
                break

            state.total_deleted += rows
            state.batches += 1
            log.info("cleanup.batch_deleted", rows=rows, total=state.total_deleted)

            if state.batch_size == 0 or rows < state.batch_size:
                break

        log.info("cleanup.table_completed", deleted=state.total_deleted, batches=state.batches)
        return TableResult(
            table=spec.table_name,
            column=spec.timestamp_column,
            retention_days=spec.retention_days,
            cutoff=state.cutoff,
            deleted=state.total_deleted,
            batches=state.batches,
            completed=True,
        )
