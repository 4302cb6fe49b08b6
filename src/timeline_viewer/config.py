"""应用配置加载。"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Literal, cast
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

GeodesicBackendName = Literal["pyproj", "haversine"]
GEODESIC_BACKEND_NAMES: frozenset[str] = frozenset({"pyproj", "haversine"})
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_STATE_PATH = Path("~/.timeline_viewer/state.sqlite")


class ConfigError(ValueError):
    """配置相关错误。"""


@dataclass(frozen=True, slots=True)
class AppConfig:
    """应用运行配置。"""

    api_base: str
    api_key: str | None
    state_path: Path
    timezone: tzinfo
    timezone_name: str
    geodesic_backend: GeodesicBackendName
    request_timeout: float


def load_app_config(
    api_base: str | None = None,
    api_key: str | None = None,
    state_path: str | None = None,
    timezone_name: str | None = None,
    geodesic_backend: str | None = None,
) -> AppConfig:
    """加载应用配置，优先级：参数 > 环境变量 > 默认值。"""

    load_dotenv(override=False)
    resolved_timezone, resolved_timezone_name = resolve_timezone(timezone_name)
    return AppConfig(
        api_base=resolve_api_base(api_base),
        api_key=api_key or _normalize_text(os.getenv("TIMELINE_API_KEY")),
        state_path=resolve_state_path(state_path),
        timezone=resolved_timezone,
        timezone_name=resolved_timezone_name,
        geodesic_backend=resolve_geodesic_backend(geodesic_backend),
        request_timeout=resolve_request_timeout(),
    )


def resolve_api_base(api_base: str | None = None) -> str:
    """解析 API 根地址。"""

    candidate = _normalize_text(api_base) or _normalize_text(os.getenv("TIMELINE_API_BASE"))
    if not candidate:
        raise ConfigError(
            "Unable to resolve API base URL. Set TIMELINE_API_BASE or pass --api-base."
        )
    if not candidate.startswith(("http://", "https://")):
        raise ConfigError(f"API base must be an http(s) URL: {candidate}")
    return candidate.rstrip("/")


def resolve_state_path(state_path: str | None = None) -> Path:
    """解析本地状态库路径。"""

    raw_path = _normalize_text(state_path) or _normalize_text(os.getenv("TIMELINE_STATE_PATH"))
    path = Path(raw_path) if raw_path else DEFAULT_STATE_PATH
    return path.expanduser().resolve()


def resolve_geodesic_backend(name: str | None = None) -> GeodesicBackendName:
    """解析测地距离实现。"""

    raw = name or os.getenv("TIMELINE_GEODESIC") or "pyproj"
    value = raw.strip().lower()
    if value not in GEODESIC_BACKEND_NAMES:
        raise ConfigError(f"Unknown geodesic backend: {raw}. Allowed: pyproj, haversine.")
    return cast(GeodesicBackendName, value)


def resolve_request_timeout() -> float:
    """解析请求超时（秒）。"""

    raw = os.getenv("TIMELINE_REQUEST_TIMEOUT")
    if raw is None or not raw.strip():
        return DEFAULT_REQUEST_TIMEOUT
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid request timeout: {raw}") from exc
    if not math.isfinite(value) or value <= 0:
        raise ConfigError(f"Request timeout must be positive: {raw}")
    return value


def resolve_timezone(timezone_name: str | None = None) -> tuple[tzinfo, str]:
    """解析查询日期所用时区：参数、TIMELINE_TIMEZONE，最后是系统时区。"""

    name = _normalize_text(timezone_name) or _normalize_text(os.getenv("TIMELINE_TIMEZONE"))
    if name is not None:
        try:
            return ZoneInfo(name), name
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unknown timezone: {name}") from exc

    local_now = datetime.now().astimezone()
    if local_now.tzinfo is None:
        raise ConfigError("Unable to determine system timezone.")
    zone_key = getattr(local_now.tzinfo, "key", None)
    return local_now.tzinfo, zone_key or local_now.tzname() or "local"


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text if text else None
