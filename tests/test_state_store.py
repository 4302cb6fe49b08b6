"""Local state store tests."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

from timeline_viewer.db.state_store import DATE_KEY, StateStore, StateStoreError


def test_remember_and_reload_last_used(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "state.sqlite"
    store = StateStore(db_path)
    assert store.last_used() == (None, None)

    store.remember("device-1", date(2026, 1, 29))
    store.remember("device-2", date(2026, 1, 30))
    store.close()

    reopened = StateStore(db_path)
    assert reopened.last_used() == ("device-2", date(2026, 1, 30))
    reopened.close()


def test_malformed_stored_date_is_ignored(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state.sqlite")
    store.set(DATE_KEY, "not-a-date")

    assert store.last_used() == (None, None)
    assert store.get(DATE_KEY) == "not-a-date"


def test_state_store_retries_when_locked(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    store = StateStore(tmp_path / "state.sqlite", retry_backoff_seconds=0.0)
    monkeypatch.setattr("timeline_viewer.db.state_store.time.sleep", lambda _seconds: None)

    calls = {"count": 0}

    def flaky_operation() -> str:
        if calls["count"] == 0:
            calls["count"] += 1
            raise OperationalError("UPDATE viewer_state", {}, Exception("database is locked"))
        return "ok"

    assert store._run(flaky_operation) == "ok"
    assert calls["count"] == 1


def test_state_store_raises_after_non_retryable_error(tmp_path: Path) -> None:
    store = StateStore(tmp_path / "state.sqlite", retry_backoff_seconds=0.0)

    def failing_operation() -> None:
        raise OperationalError("SELECT", {}, Exception("no such table: missing"))

    with pytest.raises(StateStoreError):
        store._run(failing_operation)


def test_state_store_gives_up_after_max_retries(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    store = StateStore(tmp_path / "state.sqlite", max_retries=2, retry_backoff_seconds=0.0)
    monkeypatch.setattr("timeline_viewer.db.state_store.time.sleep", lambda _seconds: None)
    calls = {"count": 0}

    def always_locked() -> None:
        calls["count"] += 1
        raise OperationalError("UPDATE", {}, Exception("database is busy"))

    with pytest.raises(StateStoreError):
        store._run(always_locked)
    assert calls["count"] == 3
