"""几何计算后端：测地长度与包围盒。"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Protocol

from pyproj import Geod
from shapely.geometry import GeometryCollection as ShapelyCollection
from shapely.geometry import LineString, Point

from timeline_viewer.config import ConfigError
from timeline_viewer.domain.timeline_types import (
    BoundingBox,
    Coordinate,
    GeometryCollection,
    LineGeometry,
)

EARTH_RADIUS_KM = 6371.0


class GeometryBackend(Protocol):
    """几何计算能力接口。"""

    name: str

    def line_length_km(self, line: LineGeometry) -> float: ...

    def bounding_box(self, collection: GeometryCollection) -> BoundingBox | None: ...


class HaversineBackend:
    """球面近似实现，不依赖外部几何库。"""

    name = "haversine"

    def line_length_km(self, line: LineGeometry) -> float:
        return line_length_km(line.coordinates)

    def bounding_box(self, collection: GeometryCollection) -> BoundingBox | None:
        return scan_bounds(collection)


class GeodesicBackend:
    """WGS84 椭球测地长度 (pyproj) 与 shapely 包围盒。"""

    name = "pyproj"

    def __init__(self, ellps: str = "WGS84") -> None:
        self._geod = Geod(ellps=ellps)

    def line_length_km(self, line: LineGeometry) -> float:
        lons = [pair[0] for pair in line.coordinates]
        lats = [pair[1] for pair in line.coordinates]
        return float(self._geod.line_length(lons, lats)) / 1000.0

    def bounding_box(self, collection: GeometryCollection) -> BoundingBox | None:
        if collection.is_empty:
            return None
        shapes = [Point(item.coordinates) for item in collection.points()]
        shapes.extend(LineString(item.coordinates) for item in collection.lines())
        min_lon, min_lat, max_lon, max_lat = ShapelyCollection(shapes).bounds
        return float(min_lon), float(min_lat), float(max_lon), float(max_lat)


def build_geometry_backend(name: str) -> GeometryBackend:
    """按名称构建后端。"""

    if name == "pyproj":
        return GeodesicBackend()
    if name == "haversine":
        return HaversineBackend()
    raise ConfigError(f"Unknown geodesic backend: {name}. Allowed: pyproj, haversine.")


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """两点球面距离（千米），坐标为 (经度, 纬度)。"""

    lon_a, lat_a = a
    lon_b, lat_b = b
    phi_a = math.radians(lat_a)
    phi_b = math.radians(lat_b)
    d_phi = math.radians(lat_b - lat_a)
    d_lambda = math.radians(lon_b - lon_a)
    hav = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi_a) * math.cos(phi_b) * (math.sin(d_lambda / 2) ** 2)
    )
    # 浮点误差可能让 hav 略大于 1
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(hav, 1.0)))


def line_length_km(coordinates: Sequence[Coordinate]) -> float:
    """折线相邻点距离之和（千米）。"""

    return sum(
        haversine_km(previous, current)
        for previous, current in zip(coordinates, coordinates[1:])
    )


def scan_bounds(collection: GeometryCollection) -> BoundingBox | None:
    """逐点扫描求包围盒，集合为空时返回 None。"""

    return _bounds_of(_iter_coordinates(collection))


def _iter_coordinates(collection: GeometryCollection) -> Iterable[Coordinate]:
    for item in collection.geometries:
        if isinstance(item, LineGeometry):
            yield from item.coordinates
        else:
            yield item.coordinates


def _bounds_of(coordinates: Iterable[Coordinate]) -> BoundingBox | None:
    min_lon = min_lat = math.inf
    max_lon = max_lat = -math.inf
    for lon, lat in coordinates:
        min_lon = min(min_lon, lon)
        min_lat = min(min_lat, lat)
        max_lon = max(max_lon, lon)
        max_lat = max(max_lat, lat)
    if min_lon == math.inf:
        return None
    return min_lon, min_lat, max_lon, max_lat
