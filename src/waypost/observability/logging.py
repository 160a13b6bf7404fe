"""Structured logging configuration for waypost.

structlog is configured once per process with either a console renderer
(development) or a JSON renderer (production). Every module obtains its logger
through ``get_logger`` and emits dotted event names such as
``waypost.route_test.completed``.

Environment Variables:
    WAYPOST_LOG_FORMAT: "json" for JSON lines, "console" for colored output
    WAYPOST_LOG_LEVEL: Minimum level (DEBUG, INFO, WARNING, ERROR)
    WAYPOST_SERVICE_NAME: Service name bound into every log record

Example:
    >>> from waypost.observability.logging import configure_logging, get_logger
    >>> configure_logging(log_format="json", log_level="INFO")
    >>> logger = get_logger("waypost.manager")
    >>> logger.info("waypost.endpoint.registered", path="/llms.txt")
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.typing import Processor

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "console"
DEFAULT_SERVICE_NAME = "waypost"

ENV_LOG_FORMAT = "WAYPOST_LOG_FORMAT"
ENV_LOG_LEVEL = "WAYPOST_LOG_LEVEL"
ENV_SERVICE_NAME = "WAYPOST_SERVICE_NAME"

REDACTED_PLACEHOLDER = "***REDACTED***"

# Case-insensitive key fragments whose values never reach a log sink
_SENSITIVE_KEY_PATTERNS = frozenset(
    {"password", "token", "secret", "api_key", "apikey", "authorization", "cookie"}
)

_logging_configured = False


def _is_sensitive_key(key: str) -> bool:
    lower = key.lower()
    return any(pattern in lower for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_for_logging(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive values redacted.

    Used before logging request headers or proxy payloads. Nested dicts and
    lists of dicts are walked recursively.

    Args:
        data: Mapping about to be logged.

    Returns:
        A new dict with sensitive values replaced by REDACTED_PLACEHOLDER.

    Example:
        >>> sanitize_for_logging({"Authorization": "Bearer abc", "path": "/ask"})
        {'Authorization': '***REDACTED***', 'path': '/ask'}
    """
    if not data:
        return {}
    result: dict[str, Any] = {}
    for key, value in data.items():
        if _is_sensitive_key(str(key)):
            result[key] = REDACTED_PLACEHOLDER
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value)
        elif isinstance(value, list):
            result[key] = [
                sanitize_for_logging(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            result[key] = value
    return result


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer_for(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    service_name: str | None = None,
    force: bool = False,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        log_format: "json" or "console". Defaults to WAYPOST_LOG_FORMAT or "console".
        log_level: Minimum level. Defaults to WAYPOST_LOG_LEVEL or "INFO".
        service_name: Bound as ``service`` on every record.
        force: Reconfigure even when logging was already configured. Context
            bound before reconfiguring is dropped.
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    log_format = (log_format or os.environ.get(ENV_LOG_FORMAT, DEFAULT_LOG_FORMAT)).lower()
    log_level = (log_level or os.environ.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL)).upper()
    service_name = service_name or os.environ.get(ENV_SERVICE_NAME, DEFAULT_SERVICE_NAME)

    shared = _shared_processors()
    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer_for(log_format),
        ],
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    clear_context()
    bind_context(service=service_name)
    _logging_configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger, configuring defaults on first use.

    Example:
        >>> logger = get_logger(__name__).bind(path="/llms.txt")
        >>> logger.info("waypost.block.applied", block_id="write-static-file")
    """
    if not _logging_configured:
        configure_logging()
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables included in every subsequent log record."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
