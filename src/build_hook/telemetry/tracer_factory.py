"""Cached OpenTelemetry tracers.

Tracers are created lazily per instrumentation name and cached. If the
OpenTelemetry global state cannot produce a tracer, a NoOpTracer is returned
and later calls do not retry, so tracing problems never break a build.

Only the OpenTelemetry API is required. Without an SDK configured by the
host process every span is a no-op.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

_tracers: dict[str, Tracer] = {}
_init_failed = False
_lock = threading.Lock()


def get_tracer(name: str = "build_hook") -> Tracer:
    """Return the cached tracer for ``name``, creating it on first use.

    Example:
        >>> tracer = get_tracer("build_hook.orchestrator")
        >>> with tracer.start_as_current_span("build_hook.trigger"):
        ...     pass
    """
    global _init_failed

    tracer = _tracers.get(name)
    if tracer is not None:
        return tracer
    if _init_failed:
        return trace.NoOpTracer()

    with _lock:
        if name in _tracers:
            return _tracers[name]
        try:
            tracer = trace.get_tracer(name)
        except Exception:
            _init_failed = True
            return trace.NoOpTracer()
        _tracers[name] = tracer
        return tracer


def set_tracer(name: str, tracer: Tracer | None) -> None:
    """Install (or with None, drop) the tracer used for ``name``. For tests."""
    with _lock:
        if tracer is None:
            _tracers.pop(name, None)
        else:
            _tracers[name] = tracer


def reset_tracer() -> None:
    """Forget every cached tracer and the failure flag."""
    global _init_failed
    with _lock:
        _tracers.clear()
        _init_failed = False


__all__ = ["get_tracer", "reset_tracer", "set_tracer"]
