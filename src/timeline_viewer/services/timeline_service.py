"""时间线加载服务。"""

from __future__ import annotations

import itertools
import logging
import re
import threading
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Protocol

from timeline_viewer.config import ConfigError, load_app_config
from timeline_viewer.db.state_store import StateStore, StateStoreError
from timeline_viewer.domain.timeline_types import GeometryCollection, Summary, TimelineView
from timeline_viewer.map.engine import MapEngine, MapEngineError
from timeline_viewer.repositories.timeline_repository import (
    TimelineFetchError,
    TimelineRepository,
)
from timeline_viewer.services.geometry_backend import GeometryBackend, build_geometry_backend
from timeline_viewer.services.map_sync import sync
from timeline_viewer.services.normalizer import normalize
from timeline_viewer.services.summary import summarize

LOGGER = logging.getLogger(__name__)

MONTH_DAY_PATTERN = re.compile(r"^(\d{1,2})-(\d{1,2})$")


class TimelineSource(Protocol):
    """时间线数据来源。"""

    def fetch_timeline(self, device_id: str, query_date: date) -> dict[str, Any]: ...


class TimelineService:
    """一次加载：请求、归一化、汇总、同步地图。"""

    def __init__(
        self,
        repository: TimelineSource,
        backend: GeometryBackend,
        map_engine: MapEngine | None = None,
        state_store: StateStore | None = None,
        with_trip_endpoints: bool = False,
    ) -> None:
        self._repository = repository
        self._backend = backend
        self._map_engine = map_engine
        self._state_store = state_store
        self._with_trip_endpoints = with_trip_endpoints
        self._sequence = itertools.count(1)
        self._latest_sequence = 0
        self._sequence_lock = threading.Lock()
        self._map_lock = threading.Lock()

    def load(self, device_id: str, query_date: date) -> TimelineView:
        """加载指定设备与日期的时间线。"""

        sequence = self._begin_load()
        self._remember(device_id, query_date)

        try:
            payload = self._repository.fetch_timeline(device_id, query_date)
        except TimelineFetchError as exc:
            LOGGER.warning("Timeline load failed for %s on %s: %s", device_id, query_date, exc)
            return TimelineView(
                device_id=device_id,
                query_date=query_date,
                collection=GeometryCollection(),
                summary=Summary(),
                ok=False,
                status_message=str(exc),
                error_body=exc.body,
                sequence=sequence,
                is_stale=not self.is_latest(sequence),
            )

        if not isinstance(payload, dict):
            payload = {}
        stays = _as_list(payload.get("stays"))
        visits = _as_list(payload.get("visits"))
        collection = normalize(payload, with_trip_endpoints=self._with_trip_endpoints)
        summary = summarize(
            collection,
            stays,
            visits,
            backend=self._backend,
            raw_trips=payload.get("trips"),
        )
        view = TimelineView(
            device_id=device_id,
            query_date=query_date,
            collection=collection,
            summary=summary,
            stays=stays,
            visits=visits,
            diary=_diary_text(payload.get("diary")),
            sequence=sequence,
        )

        if not self.is_latest(sequence):
            LOGGER.info("Discarding stale load #%d for %s on %s.", sequence, device_id, query_date)
            view.is_stale = True
            return view

        if self._map_engine is not None:
            self._sync_map(view)
        return view

    def is_latest(self, sequence: int) -> bool:
        with self._sequence_lock:
            return sequence == self._latest_sequence

    def _begin_load(self) -> int:
        with self._sequence_lock:
            sequence = next(self._sequence)
            self._latest_sequence = sequence
        return sequence

    def _remember(self, device_id: str, query_date: date) -> None:
        if self._state_store is None:
            return
        try:
            self._state_store.remember(device_id, query_date)
        except StateStoreError as exc:
            LOGGER.warning("Unable to persist last-used device/date: %s", exc)

    def _sync_map(self, view: TimelineView) -> None:
        assert self._map_engine is not None
        with self._map_lock:
            # 拿到锁后再确认一次，避免旧结果覆盖新结果
            if not self.is_latest(view.sequence):
                view.is_stale = True
                return
            try:
                sync(self._map_engine, view.collection, backend=self._backend)
            except MapEngineError as exc:
                LOGGER.error("Map synchronization failed: %s", exc)
                view.ok = False
                view.status_message = f"Map error: {exc}"


def get_timeline_view(
    device_id: str | None = None,
    date_expr: str | None = None,
    day_offset: int = 0,
    api_base: str | None = None,
    api_key: str | None = None,
    geodesic: str | None = None,
    with_trip_endpoints: bool = False,
    map_engine: MapEngine | None = None,
) -> TimelineView:
    """加载配置并获取指定设备/日期的时间线，缺省值取上次使用的设备与日期。"""

    config = load_app_config(api_base=api_base, api_key=api_key, geodesic_backend=geodesic)
    state_store = StateStore(config.state_path)
    try:
        last_device_id, last_date = state_store.last_used()
        resolved_device_id = device_id or last_device_id
        if not resolved_device_id:
            raise ConfigError("Device id is required on first use. Pass --device-id.")

        if date_expr:
            query_date = parse_query_date(date_expr, config.timezone)
        elif last_date is not None:
            query_date = last_date
        else:
            query_date = datetime.now(config.timezone).date()
        query_date = shift_date(query_date, day_offset)

        repository = TimelineRepository(
            api_base=config.api_base,
            api_key=config.api_key,
            timeout=config.request_timeout,
        )
        service = TimelineService(
            repository=repository,
            backend=build_geometry_backend(config.geodesic_backend),
            map_engine=map_engine,
            state_store=state_store,
            with_trip_endpoints=with_trip_endpoints,
        )
        return service.load(resolved_device_id, query_date)
    finally:
        state_store.close()


def parse_query_date(date_expr: str, tz: tzinfo) -> date:
    """解析 today/yesterday/ISO 日期/月-日。"""

    normalized = date_expr.strip().lower()
    today = datetime.now(tz).date()
    if normalized == "today":
        return today
    if normalized == "yesterday":
        return today - timedelta(days=1)

    month_day = MONTH_DAY_PATTERN.match(normalized)
    try:
        if month_day:
            return date(today.year, int(month_day.group(1)), int(month_day.group(2)))
        parts = normalized.split("-")
        if len(parts) == 3 and all(part.isdigit() for part in parts):
            return date(int(parts[0]), int(parts[1]), int(parts[2]))
    except ValueError as exc:
        raise ValueError(f"Invalid date: {date_expr}.") from exc

    raise ValueError(
        f"Invalid date expression: {date_expr}. Use today, yesterday or YYYY-MM-DD."
    )


def shift_date(value: date, days: int) -> date:
    """前后翻日。"""

    return value + timedelta(days=days)


def _as_list(value: object) -> list[Any]:
    if isinstance(value, list):
        return value
    return []


def _diary_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None
