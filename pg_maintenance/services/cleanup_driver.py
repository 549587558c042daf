from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

from ..core.errors import ConfigError, MaintenanceError
from ..core.logging import get_logger
from ..db import Database
from ..schemas.table_spec import TableSpec
from .batch_deleter import BatchDeleter, TableResult, compute_cutoff

logger = get_logger(__name__)


@dataclass(frozen=True)
class CleanupConfig:
    tables: Sequence[TableSpec]
    batch_size: int = 0
    timeout: float = 60.0
    # Captured once per run so every table shares the same notion of "now".
    now: datetime = field(default_factory=lambda: datetime.now().astimezone())


@dataclass
class RunReport:
    results: list[TableResult] = field(default_factory=list)
    error: Optional[MaintenanceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total_deleted(self) -> int:
        return sum(result.deleted for result in self.results)


class CleanupDriver:
    """Runs the batch deleter over every table, one after another.

    The first fatal error stops the run; later tables are not attempted so an
    operator never has to work out which tables were silently skipped.
    """

    def __init__(self, database: Database, config: CleanupConfig) -> None:
        self._config = config
        self._deleter = BatchDeleter(
            database,
            batch_size=config.batch_size,
            timeout=config.timeout,
        )

    def run(self) -> RunReport:
        report = RunReport()
        now = self._config.now
        try:
            cutoffs = [compute_cutoff(now, spec.retention_days) for spec in self._config.tables]
        except ConfigError as exc:
            report.error = exc
            skipped = [s.table_name for s in self._config.tables]
            logger.error("run.aborted", skipped=skipped, **exc.context())
            return report

        logger.info(
            "run.started",
            tables=[spec.table_name for spec in self._config.tables],
            now=now.isoformat(),
        )
        for spec, cutoff in zip(self._config.tables, cutoffs):
            try:
                result = self._deleter.purge(spec, now)
            except MaintenanceError as exc:
                report.results.append(
                    TableResult(
                        table=spec.table_name,
                        column=spec.timestamp_column,
                        retention_days=spec.retention_days,
                        cutoff=cutoff,
                        deleted=exc.deleted,
                        batches=exc.batches,
                        completed=False,
                    )
                )
                report.error = exc
                skipped = [s.table_name for s in self._config.tables[len(report.results):]]
                logger.error("run.aborted", spec=spec.raw, skipped=skipped, **exc.context())
                break
            report.results.append(result)
        return report
