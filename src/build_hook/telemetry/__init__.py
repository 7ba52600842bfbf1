"""Logging and tracing setup for build-hook."""

from __future__ import annotations

from build_hook.telemetry.logging import add_trace_context, configure_logging
from build_hook.telemetry.tracer_factory import get_tracer, reset_tracer, set_tracer

__all__ = [
    "add_trace_context",
    "configure_logging",
    "get_tracer",
    "reset_tracer",
    "set_tracer",
]
