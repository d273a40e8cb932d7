"""readiness-guard — Structured logging configuration.

structlog renders every entry, whether it comes from our own loggers or from
uvicorn / starlette through stdlib logging, with:
    - timestamp (ISO-8601), level and logger name
    - request_id / client_ip / user_id, bound per request by the middleware
    - credential-bearing fields masked (``LoggingConfig.redact_keys``)

Security events routinely carry headers, cookies and request bodies, so the
redaction step runs before any renderer sees an entry.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, WrappedLogger

if TYPE_CHECKING:
    from readiness_guard.config import LoggingConfig

REDACTED = "***"

_REQUEST_KEYS = ("request_id", "client_ip", "user_id")
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "asyncio")


def bind_request_context(**values: str | None) -> None:
    """Attach request-scoped fields (``request_id``, ``client_ip``, ``user_id``)
    to every entry logged from the current task.  ``None`` values are skipped."""
    unknown = set(values) - set(_REQUEST_KEYS)
    if unknown:
        raise TypeError(f"Unsupported request context keys: {sorted(unknown)}")
    structlog.contextvars.bind_contextvars(**{k: v for k, v in values.items() if v is not None})


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


class RedactSecrets:
    """Mask the value of any field whose name contains one of *keys*.

    Matching is a case-insensitive substring test, applied recursively to
    nested mappings and lists.  Booleans and ``None`` are left alone since
    they cannot carry a credential, so ``csrf_enabled=True`` stays readable.
    The ``event`` name itself is never masked.
    """

    def __init__(self, keys: Iterable[str]) -> None:
        self._keys = tuple(k.lower() for k in keys if k)

    def __call__(self, _logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
        if not self._keys:
            return event_dict
        for key, value in event_dict.items():
            if key != "event":
                event_dict[key] = self._scrub(key, value)
        return event_dict

    def _sensitive(self, key: object) -> bool:
        lowered = str(key).lower()
        return any(k in lowered for k in self._keys)

    def _scrub(self, key: object, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return value
        if self._sensitive(key):
            return REDACTED
        if isinstance(value, Mapping):
            return {k: self._scrub(k, v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._scrub(key, v) if isinstance(v, Mapping) else v for v in value]
        return value


def _drop_color_message(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Remove uvicorn's ``color_message`` duplicate field."""
    event_dict.pop("color_message", None)
    return event_dict


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog and route stdlib logging through the same pipeline.

    Call once at server startup.  With no argument the ``LoggingConfig``
    defaults apply (info level, console output, standard redaction list).
    """
    if config is None:
        from readiness_guard.config import LoggingConfig

        config = LoggingConfig()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _drop_color_message,
        RedactSecrets(config.redact_keys),
    ]

    if config.format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.file is not None:
        handlers.append(logging.FileHandler(config.file.expanduser()))
    for handler in handlers:
        handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(config.level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*.

    Usage::

        log = get_logger(__name__)
        log.info("route_denied", path="/admin", user_role="user")
    """
    return structlog.get_logger(name)
