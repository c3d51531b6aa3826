"""
Latency metrics for the voice session.

Responsibilities:
- Measure durations using monotonic time (immune to clock changes)
- Emit metrics as JSONL events via observability.logger
- Never aggregate: one metric = one log event

Design notes:
- Durations use monotonic time for correctness
- Event timestamps (ts_ms) use wall-clock time for human readability
- The `timed()` context manager is the only entry point; it cannot leak
"""

from __future__ import annotations

import asyncio
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from observability.logger import log_event


@dataclass
class Measurement:
    """
    Mutable handle yielded by `timed()`.

    The block may attach details (e.g. payload size) or mark an outcome
    before the metric is emitted.
    """
    name: str
    details: dict[str, Any] = field(default_factory=dict)
    outcome: str = "ok"
    duration_ms: int | None = None


@contextmanager
def timed(
    name: str,
    *,
    state: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[Measurement]:
    """
    Context manager for measuring durations safely.

    Guarantees:
    - Metric is emitted exactly once
    - Exceptions inside the block do NOT suppress timing; the outcome is
      recorded as "error" and the exception propagates

    Usage:
        with timed("backend_query_latency", details={"query_id": 3}) as m:
            response = await client.post(...)
            m.details["status"] = response.status_code
    """
    measurement = Measurement(name=name, details=dict(details or {}))
    start_ns = time.monotonic_ns()
    try:
        yield measurement
    except asyncio.CancelledError:
        measurement.outcome = "cancelled"
        raise
    except Exception:
        measurement.outcome = "error"
        raise
    finally:
        measurement.duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        log_event({
            # Wall-clock timestamp for log correlation / readability
            "ts_ms": int(time.time() * 1000),
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": measurement.duration_ms,
            "state": state,
            "outcome": measurement.outcome,
            "details": measurement.details,
        })
