"""本地键值状态存储（上次使用的设备与日期）。"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Callable, TypeVar

from sqlalchemy import Column, MetaData, String, Table, create_engine, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

LOGGER = logging.getLogger(__name__)

DEVICE_ID_KEY = "deviceId"
DATE_KEY = "date"

T = TypeVar("T")

metadata = MetaData()
state_table = Table(
    "viewer_state",
    metadata,
    Column("key", String, primary_key=True),
    Column("value", String, nullable=False),
)


class StateStoreError(RuntimeError):
    """状态读写失败。"""


@dataclass(slots=True)
class StateStore:
    """带锁重试的 SQLite 键值存储。"""

    db_path: Path | str
    max_retries: int = 3
    retry_backoff_seconds: float = 0.05
    busy_timeout_seconds: float = 3.0
    _engine: Engine = field(init=False, repr=False)

    def __post_init__(self) -> None:
        resolved_path = Path(self.db_path).expanduser().resolve()
        self.db_path = resolved_path
        try:
            resolved_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StateStoreError(f"Unable to create state directory: {exc}") from exc
        # 驱动层先等待 busy_timeout_seconds，仍被锁住才进入 _run 的重试
        self._engine = create_engine(
            f"sqlite+pysqlite:///{resolved_path}",
            connect_args={"timeout": self.busy_timeout_seconds},
        )
        self._run(lambda: metadata.create_all(self._engine))

    def get(self, key: str) -> str | None:
        """读取键值。"""

        def _read() -> str | None:
            with self._engine.connect() as connection:
                row = connection.execute(
                    select(state_table.c.value).where(state_table.c.key == key)
                ).first()
            return None if row is None else str(row[0])

        return self._run(_read)

    def set(self, key: str, value: str) -> None:
        """写入键值，已存在则覆盖。"""

        statement = insert(state_table).values(key=key, value=value)
        statement = statement.on_conflict_do_update(
            index_elements=[state_table.c.key],
            set_={"value": statement.excluded["value"]},
        )

        def _write() -> None:
            with self._engine.begin() as connection:
                connection.execute(statement)

        self._run(_write)

    def remember(self, device_id: str, query_date: date) -> None:
        """记录本次加载的设备与日期。"""

        self.set(DEVICE_ID_KEY, device_id)
        self.set(DATE_KEY, query_date.isoformat())

    def last_used(self) -> tuple[str | None, date | None]:
        """上次使用的设备与日期，日期损坏时视为缺失。"""

        device_id = self.get(DEVICE_ID_KEY)
        raw_date = self.get(DATE_KEY)
        last_date: date | None = None
        if raw_date:
            try:
                last_date = date.fromisoformat(raw_date)
            except ValueError:
                LOGGER.debug("Ignoring malformed stored date: %r", raw_date)
        return device_id, last_date

    def close(self) -> None:
        self._engine.dispose()

    def _run(self, operation: Callable[[], T]) -> T:
        """执行操作，遇到锁冲突时线性退避重试。"""

        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                return operation()
            except OperationalError as exc:
                if not self._is_retryable(exc) or attempt >= self.max_retries:
                    raise StateStoreError(
                        f"State store failed after {attempt + 1} attempt(s): {exc}"
                    ) from exc
                time.sleep(self.retry_backoff_seconds * (attempt + 1))
            except SQLAlchemyError as exc:
                raise StateStoreError(f"State store failed: {exc}") from exc

        raise StateStoreError("State store failed unexpectedly.")

    @staticmethod
    def _is_retryable(exc: OperationalError) -> bool:
        """判断是否可重试。"""

        message = str(exc).lower()
        return "locked" in message or "busy" in message
