"""Local state helpers."""

from timeline_viewer.db.state_store import StateStore, StateStoreError

__all__ = ["StateStore", "StateStoreError"]
