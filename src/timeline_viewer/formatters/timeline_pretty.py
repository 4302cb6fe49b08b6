"""可读时间线格式化。"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Literal

from timeline_viewer.domain.timeline_types import TimelineView
from timeline_viewer.services.normalizer import resolve_center

DurationUnitStyle = Literal["compact", "cn", "en"]
RecordKind = Literal["stay", "visit"]

EMOJI_BY_KIND = {
    "stay": "🏠",
    "visit": "📍",
}
TEXT_MARKER_BY_KIND = {
    "stay": "[stay]",
    "visit": "[visit]",
}
KIND_NAME = {
    "stay": "停留",
    "visit": "到访",
}
DURATION_SUFFIXES: dict[str, dict[str, str]] = {
    "compact": {"day": "d", "hour": "h", "minute": "m"},
    "cn": {"day": " 天", "hour": " 时", "minute": " 分"},
}
DURATION_STYLE_ALIASES: dict[str, DurationUnitStyle] = {
    "compact": "compact",
    "short": "compact",
    "cn": "cn",
    "zh": "cn",
    "en": "en",
    "english": "en",
}


def render_timeline_pretty(
    view: TimelineView,
    emoji: bool = True,
    duration_unit_style: DurationUnitStyle = "compact",
) -> str:
    """渲染可读时间线。"""

    lines: list[str] = []
    if emoji:
        lines.append(f"🗓️ 时间线 {view.query_date.isoformat()} ({view.device_id})")
    else:
        lines.append(f"Timeline {view.query_date.isoformat()} ({view.device_id})")
    lines.append("─" * 72)

    if not view.ok:
        lines.extend(_format_error(view, emoji=emoji))
        return "\n".join(lines)

    lines.extend(_format_summary(view, emoji=emoji))
    if view.is_stale:
        lines.append("（已有更新的加载，本结果未绘制到地图）")

    entries = _collect_entries(view)
    if entries:
        lines.append("")
    for kind, record in entries:
        lines.extend(
            _format_record(
                kind,
                record,
                emoji=emoji,
                duration_unit_style=duration_unit_style,
            )
        )
        lines.append("")

    if view.diary:
        if not entries:
            lines.append("")
        lines.append("📝 日记:" if emoji else "日记:")
        lines.extend(f"   {line}" for line in view.diary.splitlines())

    while lines and lines[-1] == "":
        lines.pop()
    return "\n".join(lines)


def _format_summary(view: TimelineView, emoji: bool) -> list[str]:
    summary = view.summary
    distance_text = f"{summary.total_distance_km:.2f} km"
    if emoji:
        return [
            f"📏 总距离: {distance_text}",
            f"🚗 行程: {summary.trip_count}   🏠 停留: {summary.stay_count}   "
            f"📍 到访: {summary.visit_count}",
        ]
    return [
        f"总距离: {distance_text}",
        f"行程: {summary.trip_count}   停留: {summary.stay_count}   到访: {summary.visit_count}",
    ]


def _format_error(view: TimelineView, emoji: bool) -> list[str]:
    marker = "⚠️ " if emoji else ""
    lines = [f"{marker}加载失败: {view.status_message}"]
    if view.error_body not in (None, {}, ""):
        body = view.error_body
        if isinstance(body, str):
            body_text = body
        else:
            body_text = json.dumps(body, ensure_ascii=False, indent=2)
        lines.append("   响应:")
        lines.extend(f"   {line}" for line in body_text.splitlines())
    return lines


def _collect_entries(view: TimelineView) -> list[tuple[RecordKind, Mapping[str, Any]]]:
    """收集可展示的停留/到访，按开始时间排序，无时间的排在最后。"""

    entries: list[tuple[RecordKind, Mapping[str, Any]]] = []
    for record in view.stays:
        if isinstance(record, Mapping):
            entries.append(("stay", record))
    for record in view.visits:
        if isinstance(record, Mapping):
            entries.append(("visit", record))

    def sort_key(entry: tuple[RecordKind, Mapping[str, Any]]) -> tuple[int, float]:
        start_at = _parse_timestamp(entry[1].get("start"))
        if start_at is None:
            return (1, 0.0)
        return (0, start_at.timestamp())

    return sorted(entries, key=sort_key)


def _format_record(
    kind: RecordKind,
    record: Mapping[str, Any],
    emoji: bool,
    duration_unit_style: DurationUnitStyle,
) -> list[str]:
    marker = EMOJI_BY_KIND[kind] if emoji else TEXT_MARKER_BY_KIND[kind]
    start_at = _parse_timestamp(record.get("start"))
    end_at = _parse_timestamp(record.get("end"))
    start_text = _format_timestamp(start_at, record.get("start"))
    end_text = _format_timestamp(end_at, record.get("end"))

    header = f"{marker} {start_text} -> {end_text}"
    if start_at is not None and end_at is not None:
        header = f"{header} ({_format_duration(start_at, end_at, style=duration_unit_style)})"

    label = _normalize_text(record.get("label") or record.get("name")) or "未知地点"
    lines = [header, f"   {KIND_NAME[kind]}: {label}"]
    if resolve_center(record) is None:
        lines.append("   （缺少坐标，未在地图上显示）")
    return lines


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.astimezone()
    return parsed


def _format_timestamp(parsed: datetime | None, raw: object) -> str:
    if parsed is not None:
        return f"{parsed:%Y-%m-%d %H:%M}"
    text = _normalize_text(raw)
    return text or "?"


def _normalize_text(value: object | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def resolve_duration_unit_style(raw: str | None) -> DurationUnitStyle:
    """时长单位别名归一，未知值按 compact 处理。"""

    if raw is None:
        return "compact"
    return DURATION_STYLE_ALIASES.get(raw.strip().lower(), "compact")


def _format_duration(
    start_at: datetime,
    end_at: datetime,
    style: DurationUnitStyle,
) -> str:
    total_minutes = int(max((end_at - start_at).total_seconds(), 0) // 60)
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)

    parts = [
        _duration_part(value, unit, style)
        for value, unit in ((days, "day"), (hours, "hour"))
        if value > 0
    ]
    parts.append(_duration_part(minutes, "minute", style))
    return " ".join(parts)


def _duration_part(value: int, unit: str, style: DurationUnitStyle) -> str:
    if style == "en":
        return f"{value} {unit}" if value == 1 else f"{value} {unit}s"
    suffixes = DURATION_SUFFIXES.get(style, DURATION_SUFFIXES["compact"])
    return f"{value}{suffixes[unit]}"
