"""Domain types."""

from timeline_viewer.domain.timeline_types import (
    Geometry,
    GeometryCollection,
    LineGeometry,
    PointGeometry,
    Summary,
    TimelineView,
)

__all__ = [
    "Geometry",
    "GeometryCollection",
    "LineGeometry",
    "PointGeometry",
    "Summary",
    "TimelineView",
]
