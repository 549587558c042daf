from datetime import timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from ..db import normalize_database_url
from ..utils.durations import parse_duration
from .errors import ConfigError

SUPPORTED_SSL_MODES = ("disable", "require", "verify-ca", "verify-full")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
# Backends with a physical row locator for batched deletes
SUPPORTED_BACKENDS = ("postgresql", "sqlite")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, case_sensitive=False)

    # Connection. DATABASE_URL, when set, replaces the discrete fields.
    database_url: str | None = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = ""
    db_username: str = ""
    db_password: str = ""
    db_ssl_mode: str = "require"

    # Cleanup knobs
    tables: list[str] = []
    batch_size: int = 0  # 0 deletes every qualifying row in one transaction
    timeout: float = 60.0  # seconds per db operation, 0 disables the deadline
    connect_timeout: float = 10.0  # also the startup ping budget
    timezone: str = "UTC"

    log_level: str = "INFO"

    @field_validator("timeout", "connect_timeout", mode="before")
    @classmethod
    def _parse_durations(cls, value):
        if isinstance(value, str):
            return parse_duration(value)
        return value


def validate_settings(settings: Settings) -> None:
    """Fail fast on anything that would otherwise surface mid-run."""
    if not (settings.database_url or "").strip():
        if not settings.db_name.strip():
            raise ConfigError("DB_NAME (--dbname) is required")
        if not settings.db_username:
            raise ConfigError("Environment variable DB_USERNAME is required")
        if not settings.db_password:
            raise ConfigError("Environment variable DB_PASSWORD is required")
        if settings.db_ssl_mode not in SUPPORTED_SSL_MODES:
            raise ConfigError(
                f"Unsupported SSL mode {settings.db_ssl_mode!r}, "
                f"supported: {', '.join(SUPPORTED_SSL_MODES)}"
            )
        if not 0 < settings.db_port < 65536:
            raise ConfigError(f"Invalid database port: {settings.db_port}")
    if settings.batch_size < 0:
        raise ConfigError("Batch size must not be negative")
    if settings.timeout < 0:
        raise ConfigError("Timeout must not be negative")
    if settings.connect_timeout < 0:
        raise ConfigError("Connect timeout must not be negative")
    if settings.log_level.upper() not in LOG_LEVELS:
        raise ConfigError(f"Unknown log level: {settings.log_level}")
    resolve_timezone(settings.timezone)


def resolve_timezone(name: str) -> tzinfo:
    if name.strip().upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown timezone: {name}") from exc


def build_database_url(settings: Settings) -> URL:
    """Reduce the connection settings to a single SQLAlchemy URL."""
    if (settings.database_url or "").strip():
        try:
            url = make_url(normalize_database_url(settings.database_url.strip()))
        except ArgumentError as exc:
            raise ConfigError(f"Invalid DATABASE_URL: {exc}") from exc
        if url.get_backend_name() not in SUPPORTED_BACKENDS:
            raise ConfigError(
                f"Unsupported database backend {url.get_backend_name()!r}, "
                f"supported: {', '.join(SUPPORTED_BACKENDS)}"
            )
        return url

    return URL.create(
        "postgresql+psycopg",
        username=settings.db_username,
        password=settings.db_password,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        query={"sslmode": settings.db_ssl_mode},
    )
