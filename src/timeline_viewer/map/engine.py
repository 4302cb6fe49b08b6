"""地图引擎：图层注册表与 folium 渲染。"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Protocol

import folium

from timeline_viewer.domain.timeline_types import BoundingBox

LOGGER = logging.getLogger(__name__)

LayerType = Literal["line", "circle"]
LayerFilter = tuple[str, str]
DEFAULT_CENTER = (35.68, 139.70)
DEFAULT_ZOOM = 9


class MapEngineError(RuntimeError):
    """地图引擎操作失败。"""


@dataclass(frozen=True, slots=True)
class LayerSpec:
    """图层定义。"""

    layer_id: str
    layer_type: LayerType
    source_id: str
    paint: dict[str, Any] = field(default_factory=dict)
    filter: LayerFilter | None = None
    popup_fields: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Viewport:
    """最近一次请求的视野。"""

    bbox: BoundingBox
    padding: int


class MapEngine(Protocol):
    """地图引擎能力接口。"""

    def has_source(self, source_id: str) -> bool: ...

    def add_source(self, source_id: str, data: dict[str, Any]) -> None: ...

    def remove_source(self, source_id: str) -> None: ...

    def has_layer(self, layer_id: str) -> bool: ...

    def add_layer(self, layer: LayerSpec) -> None: ...

    def remove_layer(self, layer_id: str) -> None: ...

    def fit_bounds(self, bbox: BoundingBox, padding: int) -> None: ...


class FoliumMapEngine:
    """保存 source/layer 注册表，按需渲染成 folium 地图。

    重复 id、删除不存在的对象、图层引用缺失的 source 都会抛
    MapEngineError，与浏览器端地图引擎的行为一致。
    """

    def __init__(
        self,
        center: tuple[float, float] = DEFAULT_CENTER,
        zoom: int = DEFAULT_ZOOM,
        tiles: str = "OpenStreetMap",
    ) -> None:
        self._center = center
        self._zoom = zoom
        self._tiles = tiles
        self._sources: dict[str, dict[str, Any]] = {}
        self._layers: dict[str, LayerSpec] = {}
        self.viewport: Viewport | None = None

    @property
    def source_ids(self) -> list[str]:
        return list(self._sources)

    @property
    def layer_ids(self) -> list[str]:
        return list(self._layers)

    def get_source(self, source_id: str) -> dict[str, Any]:
        if source_id not in self._sources:
            raise MapEngineError(f"Source does not exist: {source_id}")
        return self._sources[source_id]

    def get_layer(self, layer_id: str) -> LayerSpec:
        if layer_id not in self._layers:
            raise MapEngineError(f"Layer does not exist: {layer_id}")
        return self._layers[layer_id]

    def has_source(self, source_id: str) -> bool:
        return source_id in self._sources

    def add_source(self, source_id: str, data: dict[str, Any]) -> None:
        if source_id in self._sources:
            raise MapEngineError(f"Source already exists: {source_id}")
        self._sources[source_id] = copy.deepcopy(data)

    def remove_source(self, source_id: str) -> None:
        if source_id not in self._sources:
            raise MapEngineError(f"Source does not exist: {source_id}")
        users = [item.layer_id for item in self._layers.values() if item.source_id == source_id]
        if users:
            raise MapEngineError(
                f"Source {source_id} is still used by layer(s): {', '.join(users)}"
            )
        del self._sources[source_id]

    def has_layer(self, layer_id: str) -> bool:
        return layer_id in self._layers

    def add_layer(self, layer: LayerSpec) -> None:
        if layer.layer_id in self._layers:
            raise MapEngineError(f"Layer already exists: {layer.layer_id}")
        if layer.source_id not in self._sources:
            raise MapEngineError(
                f"Layer {layer.layer_id} references missing source: {layer.source_id}"
            )
        self._layers[layer.layer_id] = layer

    def remove_layer(self, layer_id: str) -> None:
        if layer_id not in self._layers:
            raise MapEngineError(f"Layer does not exist: {layer_id}")
        del self._layers[layer_id]

    def fit_bounds(self, bbox: BoundingBox, padding: int) -> None:
        self.viewport = Viewport(bbox=bbox, padding=padding)

    def layer_features(self, layer_id: str) -> list[dict[str, Any]]:
        """图层过滤后的 feature 列表。"""

        layer = self.get_layer(layer_id)
        features = self.get_source(layer.source_id).get("features", [])
        if layer.filter is None:
            return list(features)
        attribute, value = layer.filter
        return [
            feature
            for feature in features
            if (feature.get("properties") or {}).get(attribute) == value
        ]

    def render(self) -> folium.Map:
        """按当前注册表生成 folium 地图。"""

        fmap = folium.Map(location=list(self._center), zoom_start=self._zoom, tiles=self._tiles)
        for layer in self._layers.values():
            features = self.layer_features(layer.layer_id)
            if not features:
                continue
            _build_geojson_layer(layer, features).add_to(fmap)

        if self._layers:
            folium.LayerControl(collapsed=True).add_to(fmap)

        if self.viewport is not None:
            min_lon, min_lat, max_lon, max_lat = self.viewport.bbox
            padding = self.viewport.padding
            fmap.fit_bounds([[min_lat, min_lon], [max_lat, max_lon]], padding=(padding, padding))
        return fmap

    def save(self, path: Path | str) -> Path:
        """渲染并写出 HTML。"""

        output_path = Path(path).expanduser()
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            self.render().save(str(output_path))
        except OSError as exc:
            raise MapEngineError(f"Failed to write map HTML to {output_path}: {exc}") from exc
        LOGGER.info("Map written to %s", output_path)
        return output_path


def _build_geojson_layer(layer: LayerSpec, features: list[dict[str, Any]]) -> folium.GeoJson:
    data = {"type": "FeatureCollection", "features": features}
    tooltip = (
        folium.GeoJsonTooltip(fields=list(layer.popup_fields))
        if layer.popup_fields
        else None
    )
    paint = layer.paint

    if layer.layer_type == "line":
        style = {
            "color": paint.get("line-color", "#e11d48"),
            "weight": paint.get("line-width", 4),
            "opacity": paint.get("line-opacity", 0.85),
        }
        return folium.GeoJson(
            data,
            name=layer.layer_id,
            style_function=lambda _feature: style,
            tooltip=tooltip,
        )

    marker = folium.CircleMarker(
        radius=paint.get("circle-radius", 6),
        color=paint.get("circle-stroke-color", "#ffffff"),
        weight=paint.get("circle-stroke-width", 2),
        fill=True,
        fill_color=paint.get("circle-color", "#111827"),
        fill_opacity=paint.get("circle-opacity", 0.9),
    )
    popup = (
        folium.GeoJsonPopup(fields=list(layer.popup_fields))
        if layer.popup_fields
        else None
    )
    return folium.GeoJson(
        data,
        name=layer.layer_id,
        marker=marker,
        tooltip=tooltip,
        popup=popup,
    )
