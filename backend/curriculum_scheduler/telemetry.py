"""In-process telemetry events for scheduling runs and notification sweeps."""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List

logger = logging.getLogger("curriculum_scheduler.telemetry")


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]


_listeners: List[Callable[[TelemetryEvent], None]] = []
_lock = RLock()


def register_listener(listener: Callable[[TelemetryEvent], None]) -> None:
    """Register an in-process listener (used in tests)."""
    with _lock:
        _listeners.append(listener)


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def emit_event(name: str, **fields: Any) -> None:
    """Emit a structured event to listeners and to the telemetry logger."""
    payload = {key: _jsonable(value) for key, value in fields.items()}
    event = TelemetryEvent(name=name, payload=payload)

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    logger.info("%s", json.dumps({"event": name, **payload}, default=str, sort_keys=True))


@contextmanager
def timed_event(name: str, **fields: Any) -> Iterator[Dict[str, Any]]:
    """Emit ``name`` once the block exits, with ``duration_ms`` and any fields set on the yielded dict.

    A failing block is reported with ``status="error"`` and the exception re-raised.
    """
    started = time.perf_counter()
    extra: Dict[str, Any] = dict(fields)
    try:
        yield extra
    except Exception as exc:
        extra.setdefault("status", "error")
        extra.setdefault("error", str(exc))
        raise
    finally:
        extra.setdefault("status", "success")
        extra["duration_ms"] = round((time.perf_counter() - started) * 1000, 3)
        emit_event(name, **extra)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


__all__ = [
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
    "timed_event",
]
