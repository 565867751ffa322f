"""
Duration metrics.

One measured block == one METRIC_TIMER event through observability.logger.
Durations come from the monotonic clock; the event's ts_ms stays wall-clock.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def timed(
    name: str,
    *,
    component: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Time the enclosed block and emit exactly one METRIC_TIMER event.

    A block that raises is reported with ok=False and the exception type;
    the exception itself propagates unchanged.

    Usage:
        with timed("clip_decode", component="player"):
            clip = decode_clip(...)
    """
    start_ns = time.monotonic_ns()
    error: str | None = None
    try:
        yield
    except BaseException as e:
        error = type(e).__name__
        raise
    finally:
        log_event({
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": (time.monotonic_ns() - start_ns) / 1_000_000,
            "component": component,
            "ok": error is None,
            "error": error,
            "details": details or {},
        })
