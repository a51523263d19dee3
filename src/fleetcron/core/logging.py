"""
fleetcron logging - structured logging plus the job logger capability.

Two layers live here:

1. **Process logging** (``configure_logging`` / ``get_logger``): structlog
   with a JSON renderer for log aggregation or a colored console renderer
   for development, ECS-compatible field names.
2. **Job logger capability** (``JobLogger`` / ``resolve_logger``): the
   object every component logs through. Hosts may hand in their own logger
   as long as it exposes ``log``, ``error``, ``warn`` and ``debug``
   (``info`` defaults to ``log``). stdlib and structlog loggers are adapted
   automatically.

Architecture:
    ::

        resolve_logger(candidate)
              │
              ├── None ─────────────────► StructlogJobLogger(get_logger("fleetcron"))
              ├── logging.Logger ───────► StdlibJobLogger(candidate)
              ├── structlog logger ─────► StructlogJobLogger(candidate)
              └── capability object ────► CapabilityJobLogger(candidate)
                                          (log/error/warn/debug required)

        Every JobLogger exposes: log, info, warn, error, debug
        taking (event: str, **fields).

Examples:
    >>> from fleetcron.core.logging import configure_logging, resolve_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> log = resolve_logger(None)
    >>> log.info("job_started", job_id="nightly-report", attempt=1)

Tags:
    logging, structlog, observability, fleetcron

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Protocol, runtime_checkable

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from fleetcron.core.errors import InvalidLoggerError

_SERVICE_NAME = "fleetcron"

REQUIRED_LOGGER_METHODS = ("log", "error", "warn", "debug")


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "fleetcron",
) -> None:
    """Configure structured logging for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # APScheduler and redis log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structlog logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


class LogContext:
    """Context manager for scoped logging context.

    Example:
        async with LogContext(job_id="nightly-report"):
            log.info("tick_started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *args) -> None:
        structlog.contextvars.unbind_contextvars(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *args) -> None:
        self.__exit__(*args)


# =============================================================================
# Job logger capability
# =============================================================================


@runtime_checkable
class JobLogger(Protocol):
    """Logger interface used by every fleetcron component."""

    def log(self, event: str, **fields: Any) -> None: ...

    def info(self, event: str, **fields: Any) -> None: ...

    def warn(self, event: str, **fields: Any) -> None: ...

    def error(self, event: str, **fields: Any) -> None: ...

    def debug(self, event: str, **fields: Any) -> None: ...


class StructlogJobLogger:
    """JobLogger backed by a structlog logger."""

    def __init__(self, logger: Any = None):
        self._logger = logger if logger is not None else get_logger("fleetcron")

    def log(self, event: str, **fields: Any) -> None:
        self._logger.info(event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._logger.info(event, **fields)

    def warn(self, event: str, **fields: Any) -> None:
        self._logger.warning(event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._logger.error(event, **fields)

    def debug(self, event: str, **fields: Any) -> None:
        self._logger.debug(event, **fields)


def _render(event: str, fields: dict[str, Any]) -> str:
    if not fields:
        return event
    rendered = " ".join(f"{key}={value}" for key, value in fields.items())
    return f"{event} {rendered}"


class StdlibJobLogger:
    """JobLogger backed by a ``logging.Logger``."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def _emit(self, level: int, event: str, fields: dict[str, Any]) -> None:
        exc_info = fields.pop("exc_info", None)
        self._logger.log(level, _render(event, fields), exc_info=exc_info)

    def log(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, fields)

    def warn(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, event, fields)

    def debug(self, event: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, event, fields)


class CapabilityJobLogger:
    """JobLogger wrapping a host-provided ``log/error/warn/debug[/info]`` object.

    Host loggers receive a single pre-rendered message string.
    """

    def __init__(self, target: Any):
        missing = [
            name for name in REQUIRED_LOGGER_METHODS if not callable(getattr(target, name, None))
        ]
        if missing:
            raise InvalidLoggerError(missing)
        self._target = target
        info = getattr(target, "info", None)
        self._info = info if callable(info) else target.log

    @staticmethod
    def _message(event: str, fields: dict[str, Any]) -> str:
        fields.pop("exc_info", None)
        return f"fleetcron: {_render(event, fields)}"

    def log(self, event: str, **fields: Any) -> None:
        self._target.log(self._message(event, fields))

    def info(self, event: str, **fields: Any) -> None:
        self._info(self._message(event, fields))

    def warn(self, event: str, **fields: Any) -> None:
        self._target.warn(self._message(event, fields))

    def error(self, event: str, **fields: Any) -> None:
        self._target.error(self._message(event, fields))

    def debug(self, event: str, **fields: Any) -> None:
        self._target.debug(self._message(event, fields))


def resolve_logger(candidate: Any = None) -> JobLogger:
    """Turn whatever the host passed as ``logger`` into a JobLogger.

    Raises:
        InvalidLoggerError: If a custom object lacks a required method
    """
    if candidate is None:
        return StructlogJobLogger()
    if isinstance(candidate, (StructlogJobLogger, StdlibJobLogger, CapabilityJobLogger)):
        return candidate
    if isinstance(candidate, logging.Logger):
        return StdlibJobLogger(candidate)
    if isinstance(candidate, structlog.BoundLoggerBase) or type(candidate).__module__.startswith(
        "structlog"
    ):
        return StructlogJobLogger(candidate)
    return CapabilityJobLogger(candidate)


__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
    "JobLogger",
    "StructlogJobLogger",
    "StdlibJobLogger",
    "CapabilityJobLogger",
    "resolve_logger",
    "REQUIRED_LOGGER_METHODS",
]
