"""Connection pool counters for the datastore engine, reported through telemetry."""

from __future__ import annotations

import os
import time
import weakref
from dataclasses import dataclass, field
from typing import Dict

from sqlalchemy import event
from sqlalchemy.engine import Engine

from ..telemetry import emit_event

POOL_EVENTS = ("connect", "checkout", "checkin")


@dataclass
class PoolCounters:
    counts: Dict[str, int] = field(default_factory=lambda: {name: 0 for name in POOL_EVENTS})
    last_emit: float = 0.0


_COUNTERS: weakref.WeakKeyDictionary[Engine, PoolCounters] = weakref.WeakKeyDictionary()


def _report_interval() -> float:
    return float(os.getenv("CURRICULUM_DB_TELEMETRY_INTERVAL", "60"))


def pool_status(engine: Engine) -> str:
    try:
        return engine.pool.status()  # type: ignore[no-untyped-call]
    except Exception as exc:  # noqa: BLE001
        return f"unavailable: {exc}"


def instrument_engine(engine: Engine) -> None:
    """Count pool connects, checkouts and checkins; emit ``db_pool_status`` at most once per interval."""
    if engine in _COUNTERS:
        return
    counters = PoolCounters()
    _COUNTERS[engine] = counters

    def record(name: str) -> None:
        counters.counts[name] += 1
        interval = _report_interval()
        now = time.time()
        if interval > 0 and now - counters.last_emit < interval:
            return
        counters.last_emit = now
        emit_event("db_pool_status", pool_event=name, status=pool_status(engine), **counters.counts)

    # Pool events pass differing positional arguments.
    for name in POOL_EVENTS:
        event.listen(engine, name, lambda *args, _name=name: record(_name))


def pool_snapshot(engine: Engine) -> Dict[str, object]:
    counters = _COUNTERS.get(engine)
    snapshot: Dict[str, object] = {"status": pool_status(engine)}
    for name in POOL_EVENTS:
        snapshot[name] = counters.counts[name] if counters else 0
    return snapshot


__all__ = [
    "instrument_engine",
    "pool_snapshot",
    "pool_status",
]
