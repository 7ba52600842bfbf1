"""structlog configuration with trace correlation.

Log lines emitted inside an active OpenTelemetry span carry its ``trace_id``
and ``span_id``, so a BuildRun's logs can be joined with its trace.

Example:
    >>> configure_logging(log_level="DEBUG", json_output=False)
    >>> structlog.get_logger().info("configured")
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import INVALID_SPAN_ID, INVALID_TRACE_ID

EventDict = MutableMapping[str, Any]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def add_trace_context(
    logger: Any,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """structlog processor adding trace_id/span_id from the active span.

    Args:
        logger: Unused, required by the processor signature.
        method_name: Unused, required by the processor signature.
        event_dict: Event being logged.

    Returns:
        The event, enriched when a valid span is active.
    """
    ctx = trace.get_current_span().get_span_context()
    if ctx.trace_id != INVALID_TRACE_ID and ctx.span_id != INVALID_SPAN_ID:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the service.

    Args:
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: JSON lines when True, human-readable console otherwise.

    Raises:
        ValueError: If ``log_level`` is not a known level.
    """
    level_name = log_level.upper()
    if level_name not in LOG_LEVELS:
        msg = f"Unknown log level: {log_level}"
        raise ValueError(msg)
    level = logging.getLevelName(level_name)

    renderer: structlog.typing.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_trace_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    # uvicorn and kubernetes log through the stdlib
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s %(message)s")


__all__ = ["add_trace_context", "configure_logging"]
