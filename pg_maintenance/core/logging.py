import logging
import re
from typing import Any, Dict

import structlog

# Keys whose values never reach the log stream
SECRET_KEYS = {"password", "db_password", "database_url", "dsn", "url"}

_URL_PASSWORD = re.compile(r"(://[^:/@\s]+:)[^@\s]+@")
_KV_PASSWORD = re.compile(r"(password=)\S+", re.IGNORECASE)


def _configure_stdlib_logging(level: int) -> None:
    logging.basicConfig(
        format="%(message)s",
        level=level,
    )


def _redact_event_logger(_logger, _name, event_dict: Dict[str, Any]):  # type: ignore[override]
    for k in list(event_dict.keys()):
        if str(k).lower() in SECRET_KEYS:
            event_dict[k] = "[REDACTED]"
    # driver error text can echo the connection string
    for k, v in list(event_dict.items()):
        if isinstance(v, str):
            if "://" in v:
                v = _URL_PASSWORD.sub(r"\1[REDACTED]@", v)
            if "password=" in v.lower():
                v = _KV_PASSWORD.sub(r"\1[REDACTED]", v)
            event_dict[k] = v
    return event_dict


def configure_structlog(level: str = "INFO") -> None:
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    _configure_stdlib_logging(numeric_level)

    structlog.configure(
        processors=[
            _redact_event_logger,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return structlog.get_logger(name)
