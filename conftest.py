"""
Root conftest.py for pytest configuration and shared fixtures.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator

import pytest
from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, create_engine, insert
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

# Keep developer/CI environment out of Settings defaults
for _var in (
    "DATABASE_URL",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_USERNAME",
    "DB_PASSWORD",
    "DB_SSL_MODE",
    "TABLES",
    "BATCH_SIZE",
    "TIMEOUT",
    "CONNECT_TIMEOUT",
    "TIMEZONE",
    "LOG_LEVEL",
):
    os.environ.pop(_var, None)

# Fixed reference time shared by fixtures and assertions
NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_environment():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def sqlite_engine() -> Generator[Engine, None, None]:
    """
    In-memory SQLite engine.
    Function-scoped so each test starts from empty tables.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Required for SQLite in-memory
        echo=False,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def database(sqlite_engine):
    from pg_maintenance.db import Database

    return Database(sqlite_engine)


def make_events_table(metadata: MetaData, name: str, column: str = "created_at") -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True),
        Column("label", String(32)),
        Column(column, DateTime(timezone=True)),
    )


@pytest.fixture
def create_table(sqlite_engine) -> Callable[..., Table]:
    """
    Factory creating a table and seeding it with rows aged in days relative to NOW.

    Usage: create_table("dev", ages=[10, 5, 1])
    """
    metadata = MetaData()

    def _create(name: str, ages=(), column: str = "created_at") -> Table:
        table = make_events_table(metadata, name, column)
        metadata.create_all(sqlite_engine, tables=[table])
        rows = [
            {"label": f"{age}d", column: NOW - timedelta(days=age)}
            for age in ages
        ]
        if rows:
            with sqlite_engine.begin() as connection:
                connection.execute(insert(table), rows)
        return table

    return _create


@pytest.fixture
def remaining_labels(sqlite_engine) -> Callable[[Table], list]:
    """Labels still present in a table, oldest first."""

    def _labels(table: Table) -> list:
        column = [c for c in table.columns if c.name not in ("id", "label")][0]
        with sqlite_engine.connect() as connection:
            rows = connection.execute(table.select().order_by(column)).all()
        return [row.label for row in rows]

    return _labels
