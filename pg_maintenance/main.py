"""
Command-line entry point.

Deletes rows older than a per-table retention window, optionally in bounded
batches:

    DB_USERNAME=app DB_PASSWORD=... pg-maintenance --dbname app \\
        --table events:created_at:30 --table audit_log::90 --batch 1000

Connection settings come from the environment (see core.config.Settings);
flags override them.
"""
import argparse
import sys
from datetime import datetime
from typing import Optional, Sequence

from pydantic import ValidationError

from .core.config import Settings, build_database_url, resolve_timezone, validate_settings
from .core.errors import ConfigError, MaintenanceError
from .core.logging import configure_structlog, get_logger
from .db import Database
from .schemas.table_spec import parse_table_specs
from .services.batch_deleter import compute_cutoff
from .services.cleanup_driver import CleanupConfig, CleanupDriver

logger = get_logger(__name__)

# argparse dest -> Settings field
_FLAG_FIELDS = {
    "database_url": "database_url",
    "host": "db_host",
    "port": "db_port",
    "dbname": "db_name",
    "ssl_mode": "db_ssl_mode",
    "tables": "tables",
    "batch": "batch_size",
    "timeout": "timeout",
    "connect_timeout": "connect_timeout",
    "timezone": "timezone",
    "log_level": "log_level",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg-maintenance",
        description="Delete aged rows from database tables in bounded batches.",
    )
    parser.add_argument("--database-url", help="Full database URL; replaces host/port/dbname/credentials")
    parser.add_argument("--host", help="Database host (default: localhost)")
    parser.add_argument("--port", type=int, help="Database port (default: 5432)")
    parser.add_argument("--dbname", help="Database name")
    parser.add_argument("--ssl-mode", help="SSL mode: disable, require (default), verify-ca, verify-full")
    parser.add_argument(
        "--table",
        dest="tables",
        action="append",
        metavar="TABLE[:COLUMN[:DAYS]]",
        help="Table to clean up; COLUMN defaults to created_at, DAYS to 0. Repeatable.",
    )
    parser.add_argument("--batch", type=int, help="Rows per transaction, 0 for a single transaction (default: 0)")
    parser.add_argument("--timeout", help="Per-operation timeout, e.g. 60s or 1m30s; 0 disables (default: 60s)")
    parser.add_argument("--connect-timeout", help="Connect and ping timeout (default: 10s)")
    parser.add_argument("--timezone", help="IANA timezone used for day arithmetic (default: UTC)")
    parser.add_argument("--log-level", help="Log level (default: INFO)")
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    overrides = {
        field: getattr(args, dest)
        for dest, field in _FLAG_FIELDS.items()
        if getattr(args, dest, None) is not None
    }
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args)
        validate_settings(settings)
        specs = parse_table_specs(settings.tables)
        database_url = build_database_url(settings)
        now = datetime.now(resolve_timezone(settings.timezone))
        for spec in specs:
            compute_cutoff(now, spec.retention_days)
    except ConfigError as exc:
        configure_structlog()
        logger.error("config.invalid", **exc.context())
        return exc.exit_code

    configure_structlog(settings.log_level)

    config = CleanupConfig(
        tables=tuple(specs),
        batch_size=settings.batch_size,
        timeout=settings.timeout,
        now=now,
    )

    try:
        database = Database.connect(database_url, connect_timeout=settings.connect_timeout)
    except MaintenanceError as exc:
        logger.error("db.connect_failed", **exc.context())
        return exc.exit_code

    try:
        try:
            database.ping(settings.connect_timeout)
        except MaintenanceError as exc:
            logger.error("db.connect_failed", **exc.context())
            return exc.exit_code
        report = CleanupDriver(database, config).run()
    finally:
        database.dispose()

    summary = {result.table: result.deleted for result in report.results}
    if not report.ok:
        logger.error("run.failed", deleted=summary, total=report.total_deleted, **report.error.context())
        return report.error.exit_code

    logger.info("run.completed", deleted=summary, total=report.total_deleted)
    return 0


if __name__ == "__main__":
    sys.exit(main())
