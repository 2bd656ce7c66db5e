"""
Timing metrics for observability.

Responsibilities:
- Measure durations using monotonic time (immune to clock changes)
- Emit metrics as JSONL events via observability.logger
- Never aggregate: one metric = one log event

Durations use monotonic time; event timestamps (ts_ms) use wall-clock time
for human readability.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event, now_ms


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Measure the duration of the enclosed block.

    Guarantees:
    - Metric is emitted exactly once, even if the block raises
    - Exceptions inside the block are NOT suppressed; the metric records
      the exception type under "outcome"

    The yielded dict is merged into "details", so callers can attach
    results discovered inside the block:

        with timed("channel_connect", session_id=sid) as extra:
            await channel.start_session(...)
            extra["generation"] = gen
    """
    start_ns = time.monotonic_ns()
    extra: dict[str, Any] = {}
    outcome = "ok"
    try:
        yield extra
    except BaseException as exc:
        outcome = type(exc).__name__
        raise
    finally:
        duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        log_event({
            "ts_ms": now_ms(),
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": duration_ms,
            "outcome": outcome,
            "session_id": session_id,
            "details": {**(details or {}), **extra},
        })
