"""时间线载荷归一化。"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any, cast

from timeline_viewer.domain.timeline_types import (
    GEOMETRY_KINDS,
    Coordinate,
    EndpointRole,
    GeometryCollection,
    GeometryKind,
    LineGeometry,
    PointGeometry,
)

LOGGER = logging.getLogger(__name__)

COLLECTION_KEYS = ("geometryCollection", "geometry_collection", "geojson")
CENTER_CONTAINER_KEYS = ("center", "location")
CENTER_FIELD_PAIRS = (("lat", "lon"), ("latitude", "longitude"))
TRIP_GEOMETRY_KEYS = ("geometry", "route", "coordinates")
ENDPOINT_ROLES: dict[str, EndpointRole] = {"start": "start", "end": "end"}


def normalize(payload: object, *, with_trip_endpoints: bool = False) -> GeometryCollection:
    """把原始载荷归一化为带 kind 标记的几何集合。"""

    collection = GeometryCollection()
    if not isinstance(payload, Mapping):
        return collection

    base = _find_feature_collection(payload)
    if base is not None:
        for feature in base["features"]:
            _append_feature(collection, feature)
    else:
        for trip in _as_list(payload.get("trips")):
            line = trip_to_line(trip)
            if line is None:
                LOGGER.debug("Skipping trip without usable coordinates.")
                continue
            collection.append(line)

    if with_trip_endpoints:
        for line in collection.lines():
            collection.append(_endpoint(line, "start"))
            collection.append(_endpoint(line, "end"))

    for kind, key in (("stay", "stays"), ("visit", "visits")):
        for record in _as_list(payload.get(key)):
            point = record_to_point(record, cast(GeometryKind, kind))
            if point is None:
                LOGGER.debug("Dropping %s without resolvable center.", kind)
                continue
            collection.append(point)

    return collection


def resolve_center(record: object) -> tuple[float, float] | None:
    """解析记录中心点，返回 (纬度, 经度)。"""

    if not isinstance(record, Mapping):
        return None

    candidates: list[Mapping[str, Any]] = []
    for key in CENTER_CONTAINER_KEYS:
        nested = record.get(key)
        if isinstance(nested, Mapping):
            candidates.append(nested)
    candidates.append(record)

    for candidate in candidates:
        for lat_key, lon_key in CENTER_FIELD_PAIRS:
            latitude = _to_finite_float(candidate.get(lat_key))
            longitude = _to_finite_float(candidate.get(lon_key))
            if latitude is None or longitude is None:
                continue
            if _is_valid_lat_lon(latitude, longitude):
                return latitude, longitude
    return None


def record_to_point(record: object, kind: GeometryKind) -> PointGeometry | None:
    """停留/到访记录转点几何。"""

    center = resolve_center(record)
    if center is None:
        return None
    record_map = cast(Mapping[str, Any], record)
    latitude, longitude = center
    return PointGeometry(
        coordinates=(longitude, latitude),
        kind=kind,
        label=_normalize_text(record_map.get("label") or record_map.get("name")),
        start=_normalize_text(record_map.get("start")),
        end=_normalize_text(record_map.get("end")),
    )


def trip_to_line(trip: object) -> LineGeometry | None:
    """行程记录转线几何，坐标不足两个时返回 None。"""

    if not isinstance(trip, Mapping):
        return None

    for key in TRIP_GEOMETRY_KEYS:
        coordinates = _line_coordinates(trip.get(key))
        if coordinates is None:
            continue
        if len(coordinates) < 2:
            return None
        return LineGeometry(
            coordinates=coordinates,
            label=_normalize_text(trip.get("label")),
            from_label=_endpoint_label(trip.get("from")),
            to_label=_endpoint_label(trip.get("to")),
        )
    return None


def _find_feature_collection(payload: Mapping[str, Any]) -> Mapping[str, Any] | None:
    for key in COLLECTION_KEYS:
        candidate = payload.get(key)
        if isinstance(candidate, Mapping) and isinstance(candidate.get("features"), list):
            return candidate
    return None


def _append_feature(collection: GeometryCollection, feature: object) -> None:
    """服务端 feature 转内部几何，格式不对则丢弃。"""

    if not isinstance(feature, Mapping):
        return
    geometry = feature.get("geometry")
    if not isinstance(geometry, Mapping):
        return
    properties = feature.get("properties")
    if not isinstance(properties, Mapping):
        properties = {}

    geometry_type = geometry.get("type")
    raw_kind = properties.get("kind")
    label = _normalize_text(properties.get("label"))

    if geometry_type == "LineString":
        parts = [geometry.get("coordinates")]
    elif geometry_type == "MultiLineString":
        parts = _as_list(geometry.get("coordinates"))
    elif geometry_type == "Point":
        pair = _to_pair(geometry.get("coordinates"))
        if pair is None:
            return
        kind = raw_kind if isinstance(raw_kind, str) and raw_kind in GEOMETRY_KINDS else "trip"
        collection.append(
            PointGeometry(
                coordinates=pair,
                kind=cast(GeometryKind, kind),
                label=label,
                start=_normalize_text(properties.get("start")),
                end=_normalize_text(properties.get("end")),
                role=_endpoint_role(raw_kind, properties.get("role")),
            )
        )
        return
    else:
        LOGGER.debug("Dropping feature with geometry type %r.", geometry_type)
        return

    for part in parts:
        coordinates = _clean_coordinates(part)
        if len(coordinates) < 2:
            continue
        collection.append(
            LineGeometry(
                coordinates=coordinates,
                label=label,
                from_label=_normalize_text(properties.get("from_label")),
                to_label=_normalize_text(properties.get("to_label")),
            )
        )


def _line_coordinates(value: object) -> tuple[Coordinate, ...] | None:
    """取出坐标序列；值中没有序列时返回 None。"""

    if isinstance(value, Mapping):
        if value.get("type") not in (None, "LineString"):
            return None
        value = value.get("coordinates")
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return None
    return _clean_coordinates(value)


def _clean_coordinates(value: object) -> tuple[Coordinate, ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return ()
    pairs: list[Coordinate] = []
    for item in value:
        pair = _to_pair(item)
        if pair is not None:
            pairs.append(pair)
    return tuple(pairs)


def _to_pair(value: object) -> Coordinate | None:
    """[经度, 纬度] 转坐标元组。"""

    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        return None
    if len(value) < 2:
        return None
    longitude = _to_finite_float(value[0])
    latitude = _to_finite_float(value[1])
    if longitude is None or latitude is None:
        return None
    if not _is_valid_lat_lon(latitude, longitude):
        return None
    return longitude, latitude


def _endpoint(line: LineGeometry, role: EndpointRole) -> PointGeometry:
    if role == "start":
        return PointGeometry(
            coordinates=line.coordinates[0],
            kind="trip",
            label=line.from_label or "start",
            role="start",
        )
    return PointGeometry(
        coordinates=line.coordinates[-1],
        kind="trip",
        label=line.to_label or "end",
        role="end",
    )


def _endpoint_role(raw_kind: object, raw_role: object) -> EndpointRole | None:
    # 旧版服务端把端点标记写在 kind 上
    for value in (raw_kind, raw_role):
        role = ENDPOINT_ROLES.get(str(value))
        if role is not None:
            return role
    return None


def _endpoint_label(value: object) -> str | None:
    if isinstance(value, Mapping):
        return _normalize_text(value.get("label"))
    return None


def _as_list(value: object) -> list[Any]:
    if isinstance(value, list):
        return value
    return []


def _to_finite_float(value: object) -> float | None:
    """安全转换为有限浮点数。"""

    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _is_valid_lat_lon(latitude: float, longitude: float) -> bool:
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def _normalize_text(value: object | None) -> str | None:
    """标准化文本字段。"""

    if value is None:
        return None
    text = str(value).strip()
    return text if text else None
