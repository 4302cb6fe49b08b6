"""时间线领域类型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal

GeometryKind = Literal["stay", "visit", "trip"]
EndpointRole = Literal["start", "end"]
Coordinate = tuple[float, float]
BoundingBox = tuple[float, float, float, float]

GEOMETRY_KINDS: frozenset[str] = frozenset({"stay", "visit", "trip"})


@dataclass(frozen=True, slots=True)
class PointGeometry:
    """点几何，坐标顺序为 (经度, 纬度)。"""

    coordinates: Coordinate
    kind: GeometryKind
    label: str | None = None
    start: str | None = None
    end: str | None = None
    role: EndpointRole | None = None
    geometry_type: Literal["Point"] = "Point"

    def to_feature(self) -> dict[str, Any]:
        properties: dict[str, Any] = {
            "kind": self.kind,
            "label": self.label or "",
            "start": self.start or "",
            "end": self.end or "",
        }
        if self.role is not None:
            properties["role"] = self.role
        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": list(self.coordinates)},
            "properties": properties,
        }


@dataclass(frozen=True, slots=True)
class LineGeometry:
    """行程线几何，至少两个坐标。"""

    coordinates: tuple[Coordinate, ...]
    kind: GeometryKind = "trip"
    label: str | None = None
    from_label: str | None = None
    to_label: str | None = None
    geometry_type: Literal["LineString"] = "LineString"

    def __post_init__(self) -> None:
        if len(self.coordinates) < 2:
            raise ValueError("LineGeometry requires at least two coordinates.")

    def to_feature(self) -> dict[str, Any]:
        properties: dict[str, Any] = {
            "kind": self.kind,
            "label": self.label or "",
            "start": "",
            "end": "",
        }
        if self.from_label:
            properties["from_label"] = self.from_label
        if self.to_label:
            properties["to_label"] = self.to_label
        return {
            "type": "Feature",
            "geometry": {
                "type": "LineString",
                "coordinates": [list(pair) for pair in self.coordinates],
            },
            "properties": properties,
        }


Geometry = PointGeometry | LineGeometry


@dataclass(slots=True)
class GeometryCollection:
    """归一化后的几何集合，保持插入顺序。"""

    geometries: list[Geometry] = field(default_factory=list)

    def append(self, geometry: Geometry) -> None:
        self.geometries.append(geometry)

    def points(self) -> list[PointGeometry]:
        return [item for item in self.geometries if isinstance(item, PointGeometry)]

    def lines(self) -> list[LineGeometry]:
        return [item for item in self.geometries if isinstance(item, LineGeometry)]

    def of_kind(self, kind: GeometryKind) -> list[Geometry]:
        return [item for item in self.geometries if item.kind == kind]

    @property
    def is_empty(self) -> bool:
        return not self.geometries

    def __len__(self) -> int:
        return len(self.geometries)

    def to_feature_collection(self) -> dict[str, Any]:
        """转换为 GeoJSON FeatureCollection。"""

        return {
            "type": "FeatureCollection",
            "features": [item.to_feature() for item in self.geometries],
        }


@dataclass(frozen=True, slots=True)
class Summary:
    """单日汇总。"""

    stay_count: int = 0
    visit_count: int = 0
    trip_count: int = 0
    total_distance_km: float = 0.0


@dataclass(slots=True)
class TimelineView:
    """一次加载的结果。"""

    device_id: str
    query_date: date
    collection: GeometryCollection
    summary: Summary
    stays: list[Any] = field(default_factory=list)
    visits: list[Any] = field(default_factory=list)
    diary: str | None = None
    ok: bool = True
    status_message: str = "ok"
    error_body: Any = None
    sequence: int = 0
    is_stale: bool = False
