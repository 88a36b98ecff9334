from __future__ import annotations

from sqlalchemy import create_engine, text

from curriculum_scheduler.db import monitoring


def test_instrument_engine_emits_pool_status(monkeypatch) -> None:
    emitted: list[tuple[str, dict[str, object]]] = []

    def record(event_name: str, **payload: object) -> None:
        emitted.append((event_name, payload))

    monkeypatch.setenv("CURRICULUM_DB_TELEMETRY_INTERVAL", "0")
    monkeypatch.setattr(monitoring, "emit_event", record)

    engine = create_engine("sqlite:///:memory:")
    try:
        monitoring.instrument_engine(engine)
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        assert emitted, "Expected a pool status event once the engine is instrumented."
        event_name, payload = emitted[0]
        assert event_name == "db_pool_status"
        assert payload["pool_event"] == "connect"
        assert payload["connect"] >= 1

        snapshot = monitoring.pool_snapshot(engine)
        assert snapshot["checkout"] >= 1
        assert snapshot["checkin"] >= 1
        assert isinstance(snapshot["status"], str)
    finally:
        engine.dispose()


def test_events_are_throttled_by_interval(monkeypatch) -> None:
    emitted: list[str] = []
    monkeypatch.setenv("CURRICULUM_DB_TELEMETRY_INTERVAL", "3600")
    monkeypatch.setattr(monitoring, "emit_event", lambda name, **payload: emitted.append(name))

    engine = create_engine("sqlite:///:memory:")
    try:
        monitoring.instrument_engine(engine)
        for _ in range(3):
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        assert emitted == ["db_pool_status"]
    finally:
        engine.dispose()


def test_snapshot_of_uninstrumented_engine() -> None:
    engine = create_engine("sqlite:///:memory:")
    try:
        snapshot = monitoring.pool_snapshot(engine)
        assert snapshot["connect"] == 0
        assert snapshot["checkout"] == 0
    finally:
        engine.dispose()
