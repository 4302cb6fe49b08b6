"""时间线 HTTP 仓储。"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import requests

from timeline_viewer.config import DEFAULT_REQUEST_TIMEOUT

LOGGER = logging.getLogger(__name__)


class TimelineFetchError(RuntimeError):
    """时间线请求失败。"""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = {} if body is None else body


class TimelineRepository:
    """封装时间线接口请求。"""

    def __init__(
        self,
        api_base: str,
        api_key: str | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self._api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._session = session or requests.Session()

    def fetch_timeline(self, device_id: str, query_date: date) -> dict[str, Any]:
        """获取单日时间线载荷。

        非 2xx 抛 TimelineFetchError，响应体尽量解析后附在异常上。
        2xx 但响应体不是 JSON 对象时返回空字典。
        """

        url = f"{self._api_base}/timeline"
        params = {"deviceId": device_id, "date": query_date.isoformat()}
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key

        LOGGER.debug("GET %s params=%s", url, params)
        try:
            response = self._session.get(
                url,
                params=params,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise TimelineFetchError(f"Network error: {exc}") from exc

        body = _parse_body(response)
        if not response.ok:
            LOGGER.warning("Timeline request failed: HTTP %s", response.status_code)
            raise TimelineFetchError(
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        if not isinstance(body, dict):
            LOGGER.debug("Timeline response is not a JSON object; using empty payload.")
            return {}
        return body


def _parse_body(response: requests.Response) -> Any:
    """解析响应体：JSON > 非空文本 > 空字典。"""

    try:
        return response.json()
    except ValueError:
        text = response.text.strip() if response.text else ""
        return text if text else {}
