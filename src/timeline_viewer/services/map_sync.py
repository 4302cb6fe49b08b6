"""地图图层同步。"""

from __future__ import annotations

import logging

from timeline_viewer.domain.timeline_types import GeometryCollection
from timeline_viewer.map.engine import LayerSpec, MapEngine
from timeline_viewer.services.geometry_backend import GeometryBackend, scan_bounds

LOGGER = logging.getLogger(__name__)

TRIP_SOURCE_ID = "timeline-trips"
POINT_SOURCE_ID = "timeline-points"
TRIP_LAYER_ID = "timeline-trips-line"
STAY_LAYER_ID = "timeline-stays"
VISIT_LAYER_ID = "timeline-visits"

MANAGED_LAYER_IDS = (TRIP_LAYER_ID, STAY_LAYER_ID, VISIT_LAYER_ID)
MANAGED_SOURCE_IDS = (TRIP_SOURCE_ID, POINT_SOURCE_ID)
DEFAULT_PADDING = 40
POPUP_FIELDS = ("label", "start", "end")

TRIP_PAINT = {"line-color": "#e11d48", "line-width": 4, "line-opacity": 0.85}
STAY_PAINT = {
    "circle-radius": 7,
    "circle-color": "#2563eb",
    "circle-stroke-width": 2,
    "circle-stroke-color": "#ffffff",
}
VISIT_PAINT = {
    "circle-radius": 5,
    "circle-color": "#f59e0b",
    "circle-stroke-width": 2,
    "circle-stroke-color": "#ffffff",
}


def sync(
    engine: MapEngine,
    collection: GeometryCollection,
    *,
    backend: GeometryBackend | None = None,
    padding: int = DEFAULT_PADDING,
) -> None:
    """用集合完整替换受管图层，然后调整视野。"""

    clear_managed_layers(engine)

    lines = collection.lines()
    points = collection.points()
    stay_features = [item.to_feature() for item in points if item.kind == "stay"]
    visit_features = [item.to_feature() for item in points if item.kind == "visit"]

    if lines:
        engine.add_source(
            TRIP_SOURCE_ID,
            {"type": "FeatureCollection", "features": [item.to_feature() for item in lines]},
        )
        engine.add_layer(
            LayerSpec(
                layer_id=TRIP_LAYER_ID,
                layer_type="line",
                source_id=TRIP_SOURCE_ID,
                paint=dict(TRIP_PAINT),
                popup_fields=("label",),
            )
        )

    if stay_features or visit_features:
        engine.add_source(
            POINT_SOURCE_ID,
            {"type": "FeatureCollection", "features": stay_features + visit_features},
        )
    for layer_id, features, kind, paint in (
        (STAY_LAYER_ID, stay_features, "stay", STAY_PAINT),
        (VISIT_LAYER_ID, visit_features, "visit", VISIT_PAINT),
    ):
        if not features:
            continue
        engine.add_layer(
            LayerSpec(
                layer_id=layer_id,
                layer_type="circle",
                source_id=POINT_SOURCE_ID,
                paint=dict(paint),
                filter=("kind", kind),
                popup_fields=POPUP_FIELDS,
            )
        )

    LOGGER.debug(
        "Synced map layers: %d line(s), %d stay(s), %d visit(s).",
        len(lines),
        len(stay_features),
        len(visit_features),
    )
    fit_viewport(engine, collection, backend=backend, padding=padding)


def clear_managed_layers(engine: MapEngine) -> None:
    """先删图层再删 source。"""

    for layer_id in MANAGED_LAYER_IDS:
        if engine.has_layer(layer_id):
            engine.remove_layer(layer_id)
    for source_id in MANAGED_SOURCE_IDS:
        if engine.has_source(source_id):
            engine.remove_source(source_id)


def fit_viewport(
    engine: MapEngine,
    collection: GeometryCollection,
    *,
    backend: GeometryBackend | None = None,
    padding: int = DEFAULT_PADDING,
) -> None:
    """视野适配数据范围，集合为空时保持不变。"""

    if collection.is_empty:
        return
    bbox = backend.bounding_box(collection) if backend is not None else scan_bounds(collection)
    if bbox is None:
        return
    engine.fit_bounds(bbox, padding)
