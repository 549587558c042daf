from typing import Any, Mapping, Optional, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection, Engine, RootTransaction, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.elements import TextClause

from .core.errors import (
    CommitError,
    DatabaseConnectionError,
    QueryError,
    TransactionError,
)
from .core.logging import get_logger

logger = get_logger(__name__)

# Scoped to the current transaction (is_local=true), so it lapses at commit/rollback.
_SET_STATEMENT_TIMEOUT = text("SELECT set_config('statement_timeout', :timeout_ms, true)")


def normalize_database_url(url: str) -> str:
    """Ensure SQLAlchemy uses psycopg driver explicitly.

    docker-compose provides postgresql://...; prefer postgresql+psycopg://...
    """
    if url.startswith("postgresql://") and "+" not in url:
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    return url


def _timeout_ms(timeout: float) -> str:
    # statement_timeout=0 would also mean "no limit"; round sub-millisecond values up
    return str(max(1, int(round(timeout * 1000))))


class Database:
    """Owns one connection pool for the lifetime of a run."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @classmethod
    def connect(
        cls,
        url: Union[str, URL],
        *,
        connect_timeout: float = 10.0,
        pool_size: int = 5,
        max_overflow: int = 5,
    ) -> "Database":
        try:
            if isinstance(url, str):
                url = make_url(normalize_database_url(url))
            if url.get_backend_name() == "sqlite":
                engine = create_engine(
                    url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                connect_args = {}
                if connect_timeout > 0:
                    connect_args["connect_timeout"] = max(1, int(connect_timeout))
                engine = create_engine(
                    url,
                    pool_pre_ping=True,
                    pool_size=pool_size,
                    max_overflow=max_overflow,
                    connect_args=connect_args,
                )
        except (ArgumentError, SQLAlchemyError, ImportError) as exc:
            raise DatabaseConnectionError(f"Failed to connect to database: {exc}") from exc
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    @property
    def supports_statement_timeout(self) -> bool:
        return self.dialect_name == "postgresql"

    def _apply_timeout(self, connection: Connection, timeout: float) -> None:
        if timeout <= 0:
            return
        if not self.supports_statement_timeout:
            logger.debug("db.timeout_unsupported", dialect=self.dialect_name)
            return
        connection.execute(_SET_STATEMENT_TIMEOUT, {"timeout_ms": _timeout_ms(timeout)})

    def ping(self, timeout: float) -> None:
        """Verify the database answers; raise DatabaseConnectionError otherwise."""
        try:
            with self._engine.connect() as connection:
                with connection.begin():
                    self._apply_timeout(connection, timeout)
                    result = connection.execute(text("SELECT 1")).scalar()
        except SQLAlchemyError as exc:
            raise DatabaseConnectionError(f"Database ping failed: {exc}") from exc
        if result != 1:
            raise DatabaseConnectionError(f"Database ping returned unexpected result: {result!r}")
        logger.info("db.connected", dialect=self.dialect_name)

    def begin(self, timeout: float) -> "Transaction":
        """Open a transaction whose statements are cancelled after ``timeout`` seconds.

        A timeout of 0 leaves the transaction without a deadline.
        """
        connection: Optional[Connection] = None
        try:
            connection = self._engine.connect()
            transaction = connection.begin()
            self._apply_timeout(connection, timeout)
        except SQLAlchemyError as exc:
            if connection is not None:
                connection.close()
            raise TransactionError(f"Failed to begin transaction: {exc}") from exc
        return Transaction(connection, transaction)

    def dispose(self) -> None:
        self._engine.dispose()


class Transaction:
    """A single transaction on a checked-out connection.

    The connection goes back to the pool after commit or rollback.
    """

    def __init__(self, connection: Connection, transaction: RootTransaction) -> None:
        self._connection = connection
        self._transaction = transaction

    def execute(self, statement: TextClause, params: Optional[Mapping[str, Any]] = None) -> int:
        try:
            result = self._connection.execute(statement, dict(params or {}))
        except SQLAlchemyError as exc:
            raise QueryError(f"Failed to execute query: {exc}") from exc
        return result.rowcount

    def commit(self) -> None:
        try:
            self._transaction.commit()
        except SQLAlchemyError as exc:
            raise CommitError(f"Failed to commit transaction: {exc}") from exc
        finally:
            self._connection.close()

    def rollback(self) -> None:
        try:
            self._transaction.rollback()
        except SQLAlchemyError as exc:
            logger.warning("db.rollback_failed", error=str(exc))
        finally:
            self._connection.close()
