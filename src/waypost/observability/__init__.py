"""Structured logging and in-process metrics for waypost.

Example:
    >>> from waypost.observability import get_logger, get_metrics
    >>> logger = get_logger(__name__)
    >>> logger.info("waypost.endpoint.registered", path="/llms.txt")
    >>> get_metrics().increment_counter("waypost_strategy_runs_total", {"outcome": "success"})
"""

from waypost.observability.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    sanitize_for_logging,
)
from waypost.observability.metrics import MetricsCollector, get_metrics, reset_metrics

__all__ = [
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_metrics",
    "reset_metrics",
    "MetricsCollector",
    "sanitize_for_logging",
]
