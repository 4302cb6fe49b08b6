"""Map engine."""

from timeline_viewer.map.engine import FoliumMapEngine, LayerSpec, MapEngine, MapEngineError

__all__ = ["FoliumMapEngine", "LayerSpec", "MapEngine", "MapEngineError"]
