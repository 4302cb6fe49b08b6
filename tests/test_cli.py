"""CLI tests."""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any

import pytest

import timeline_viewer.cli as cli
from timeline_viewer.cli import main
from timeline_viewer.config import ConfigError
from timeline_viewer.domain.timeline_types import GeometryCollection, Summary, TimelineView
from timeline_viewer.map.engine import MapEngine
from timeline_viewer.services.map_sync import sync
from timeline_viewer.services.normalizer import normalize


def test_cli_timeline_json_output(capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_get_timeline_view(**kwargs: Any) -> TimelineView:
        captured.update(kwargs)
        return _view()

    monkeypatch.setattr(cli, "get_timeline_view", fake_get_timeline_view)

    exit_code = main(
        [
            "timeline",
            "--device-id",
            "device-1",
            "--date",
            "2026-01-29",
            "--output",
            "json",
        ]
    )

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["query_date"] == "2026-01-29"
    assert payload["summary"]["stay_count"] == 1
    assert payload["geometry"]["type"] == "FeatureCollection"
    assert captured["device_id"] == "device-1"
    assert captured["day_offset"] == 0
    assert captured["map_engine"] is None


def test_cli_prev_flag_sets_negative_offset(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_get_timeline_view(**kwargs: Any) -> TimelineView:
        captured.update(kwargs)
        return _view()

    monkeypatch.setattr(cli, "get_timeline_view", fake_get_timeline_view)

    assert main(["timeline", "--prev", "--no-emoji"]) == 0
    assert captured["day_offset"] == -1
    assert captured["date_expr"] is None


def test_cli_writes_map_html(
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    def fake_get_timeline_view(map_engine: MapEngine | None = None, **_: Any) -> TimelineView:
        view = _view()
        assert map_engine is not None
        sync(map_engine, view.collection)
        return view

    monkeypatch.setattr(cli, "get_timeline_view", fake_get_timeline_view)
    output_path = tmp_path / "day.html"

    exit_code = main(["timeline", "--device-id", "device-1", "--map-html", str(output_path)])

    assert exit_code == 0
    assert output_path.exists()
    assert "总距离" in capsys.readouterr().out


def test_cli_reports_transport_error_with_exit_code(
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    failed = TimelineView(
        device_id="device-1",
        query_date=date(2026, 1, 29),
        collection=GeometryCollection(),
        summary=Summary(),
        ok=False,
        status_message="HTTP 503",
        error_body={"message": "maintenance"},
    )
    monkeypatch.setattr(cli, "get_timeline_view", lambda **_: failed)

    exit_code = main(["timeline", "--device-id", "device-1"])

    assert exit_code == 1
    output = capsys.readouterr().out
    assert "HTTP 503" in output
    assert "maintenance" in output


def test_cli_reports_config_error(
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def raise_config_error(**_: Any) -> TimelineView:
        raise ConfigError("Unable to resolve API base URL.")

    monkeypatch.setattr(cli, "get_timeline_view", raise_config_error)

    assert main(["timeline"]) == 1
    assert "Error: Unable to resolve API base URL." in capsys.readouterr().err


def test_cli_duration_units_option_overrides_env(monkeypatch: pytest.MonkeyPatch) -> None:
    styles: list[str] = []

    def fake_render(view: TimelineView, emoji: bool = True, duration_unit_style: str = "compact") -> str:
        styles.append(duration_unit_style)
        return ""

    monkeypatch.setattr(cli, "get_timeline_view", lambda **_: _view())
    monkeypatch.setattr(cli, "render_timeline_pretty", fake_render)
    monkeypatch.setenv("TIMELINE_DURATION_UNITS", "english")

    assert main(["timeline"]) == 0
    assert main(["timeline", "--duration-units", "zh"]) == 0
    monkeypatch.delenv("TIMELINE_DURATION_UNITS")
    assert main(["timeline"]) == 0

    assert styles == ["en", "cn", "compact"]


def _view() -> TimelineView:
    payload = {
        "trips": [{"route": [[139.70, 35.68], [139.71, 35.69]]}],
        "stays": [{"center": {"lat": 35.68, "lon": 139.70}, "label": "home"}],
    }
    return TimelineView(
        device_id="device-1",
        query_date=date(2026, 1, 29),
        collection=normalize(payload),
        summary=Summary(stay_count=1, trip_count=1, total_distance_km=1.43),
        stays=payload["stays"],
    )
