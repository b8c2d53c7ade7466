"""
TeoVerse - Structured Logging

structlog setup shared by the API and the services. Production writes JSON
lines; development gets coloured console output with rich tracebacks.

Two processors run on every entry before rendering:

- ``sanitize_sensitive_data`` masks passwords, tokens and keys at any depth
- ``shorten_data_uris`` keeps base64 images from the image model out of the logs
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from teoverse import __version__

SENSITIVE_KEYS = frozenset({
    "password",
    "secret",
    "token",
    "credential",
    "api_key",
    "apikey",
    "authorization",
    "cookie",
    "private_key",
})

MAX_DATA_URI_CHARS = 64

NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "neo4j", "botocore", "boto3")


def _is_sensitive(key: Any) -> bool:
    return isinstance(key, str) and any(s in key.lower() for s in SENSITIVE_KEYS)


def _walk(obj: Any, visit: Any, depth: int = 0) -> Any:
    """Apply ``visit(key, value)`` to every dict entry, recursing into dicts and lists."""
    if depth > 10:
        return obj
    if isinstance(obj, dict):
        return {k: visit(k, _walk(v, visit, depth + 1)) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk(item, visit, depth + 1) for item in obj]
    return obj


def sanitize_sensitive_data(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask values stored under sensitive-looking keys."""
    result: EventDict = _walk(event_dict, lambda k, v: "[REDACTED]" if _is_sensitive(k) else v)
    return result


def shorten_data_uris(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    def _shorten(key: Any, value: Any) -> Any:
        if isinstance(value, str) and value.startswith("data:") and len(value) > MAX_DATA_URI_CHARS:
            return f"{value[:MAX_DATA_URI_CHARS]}...[{len(value)} chars]"
        return value

    result: EventDict = _walk(event_dict, _shorten)
    return result


def add_release(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("release", f"teoverse@{__version__}")
    return event_dict


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog and route the standard library loggers to stdout."""
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_release,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        sanitize_sensitive_data,
        shorten_data_uris,
    ]

    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=True, exception_formatter=structlog.dev.rich_traceback)
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=getattr(logging, level.upper()))
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    bound_logger: structlog.BoundLogger = structlog.get_logger(name)
    return bound_logger


def bind_context(**kwargs: Any) -> None:
    """Bind values (e.g. ``correlation_id``) to every entry logged in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def log_duration(
    logger: structlog.BoundLogger,
    operation: str,
    level: str = "info",
    **extra_context: Any,
) -> Iterator[None]:
    """
    Log ``{operation}_completed`` or ``{operation}_failed`` with the elapsed time.

    Usage:
        with log_duration(logger, "geny_generation", hash=key):
            data_uri = await images.generate(...)
    """
    start_time = time.monotonic()
    try:
        yield
    except Exception as e:
        logger.error(
            f"{operation}_failed",
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            error=str(e),
            **extra_context,
        )
        raise
    getattr(logger, level)(
        f"{operation}_completed",
        duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        **extra_context,
    )


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "log_duration",
    "sanitize_sensitive_data",
    "shorten_data_uris",
]
