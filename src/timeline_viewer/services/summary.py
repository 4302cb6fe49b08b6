"""单日汇总计算。"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from timeline_viewer.domain.timeline_types import GeometryCollection, Summary
from timeline_viewer.services.geometry_backend import GeometryBackend, HaversineBackend

LOGGER = logging.getLogger(__name__)


def summarize(
    collection: GeometryCollection,
    raw_stays: object,
    raw_visits: object,
    *,
    backend: GeometryBackend | None = None,
    raw_trips: object = None,
) -> Summary:
    """计算距离与各类记录数。

    停留/到访/行程数取自原始列表，集合里的行程端点不计入。
    """

    resolved_backend = backend or HaversineBackend()
    trip_lines = [line for line in collection.lines() if line.kind == "trip"]

    total_km = 0.0
    for line in trip_lines:
        total_km += resolved_backend.line_length_km(line)

    if not trip_lines and raw_trips is not None:
        total_km = precomputed_distance_km(raw_trips)
        if total_km:
            LOGGER.debug("No trip geometry; using precomputed distance %.3f km.", total_km)

    return Summary(
        stay_count=_count(raw_stays),
        visit_count=_count(raw_visits),
        trip_count=_trip_count(raw_trips, len(trip_lines)),
        total_distance_km=max(total_km, 0.0),
    )


def precomputed_distance_km(raw_trips: object) -> float:
    """累加行程自带的距离字段（distance_km 优先，其次 distance_m）。"""

    if not isinstance(raw_trips, list):
        return 0.0

    total_km = 0.0
    for trip in raw_trips:
        if not isinstance(trip, Mapping):
            continue
        distance_km = _to_distance(trip.get("distance_km"))
        if distance_km is None:
            distance_m = _to_distance(trip.get("distance_m"))
            distance_km = distance_m / 1000.0 if distance_m is not None else None
        if distance_km is not None:
            total_km += distance_km
    return total_km


def _count(records: object) -> int:
    if isinstance(records, list):
        return len(records)
    return 0


def _trip_count(raw_trips: object, line_count: int) -> int:
    """有原始行程列表时按条计数，否则按行程线条数。"""

    if isinstance(raw_trips, list) and raw_trips:
        return sum(1 for trip in raw_trips if isinstance(trip, Mapping))
    return line_count


def _to_distance(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number
