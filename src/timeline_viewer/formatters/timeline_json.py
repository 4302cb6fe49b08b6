"""JSON 输出格式化。"""

from __future__ import annotations

import json
from typing import Any

from timeline_viewer.domain.timeline_types import TimelineView


def view_to_dict(view: TimelineView) -> dict[str, Any]:
    """加载结果转字典。"""

    summary = view.summary
    payload: dict[str, Any] = {
        "device_id": view.device_id,
        "query_date": view.query_date.isoformat(),
        "ok": view.ok,
        "status": view.status_message,
        "stale": view.is_stale,
        "summary": {
            "stay_count": summary.stay_count,
            "visit_count": summary.visit_count,
            "trip_count": summary.trip_count,
            "total_distance_km": round(summary.total_distance_km, 3),
        },
        "diary": view.diary,
        "geometry": view.collection.to_feature_collection(),
    }
    if not view.ok:
        payload["error_body"] = view.error_body
    return payload


def render_timeline_json(view: TimelineView) -> str:
    """渲染 JSON 文本。"""

    payload = view_to_dict(view)
    return json.dumps(payload, ensure_ascii=False, indent=2)
