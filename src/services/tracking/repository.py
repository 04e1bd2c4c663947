# src/services/tracking/repository.py
"""
Репозитории трекинга в PostgreSQL.

Каждому автобусу соответствуют свои таблицы (busN_locations, busN_status),
схема — migrations/init.sql.
"""

from __future__ import annotations

import re
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

import asyncpg

from src.common.logger import log_error
from src.common.constants import BusState
from src.infra.database import CONNECTION_ERRORS, DatabaseManager
from src.services.tracking.exceptions import PersistenceError, TrackingError
from src.services.tracking.stores import (
    DEFAULT_LOCATIONS_LIMIT,
    MAX_LOCATIONS_LIMIT,
    check_bus,
    check_sample,
    check_status_fields,
    clamp_limit,
)
from src.shared.models.tracking import BusStatus, LocationSample

T = TypeVar("T")

_TABLE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")

_LOCATION_COLUMNS = "bus_id, latitude, longitude, speed_kph, heading, accuracy, captured_at"
_STATUS_COLUMNS = (
    "bus_id, status, trip_started_at, trip_ended_at, "
    "last_location_update_at, driver_connection_id"
)

_STORAGE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    RuntimeError,  # пул не инициализирован
    *CONNECTION_ERRORS,
)


def _check_table(name: str) -> str:
    """Имя таблицы подставляется в SQL, поэтому допускаем только идентификаторы."""
    if not _TABLE_NAME_RE.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


def _to_db(value: Any) -> Any:
    """Значение поля статуса в формат колонки."""
    if isinstance(value, BusState):
        return value.value
    return value


def storage_errors(
    operation: str,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Оборачивает ошибки драйвера в PersistenceError.

    Ошибки трекинга (ValidationError и т.п.) пропускаются как есть.
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
            try:
                return await func(self, *args, **kwargs)
            except TrackingError:
                raise
            except _STORAGE_ERRORS as e:
                await log_error(
                    f"Ошибка хранилища ({operation}) для {self.bus_id}: {e}",
                    extra={"bus_id": self.bus_id, "table": self.table},
                )
                raise PersistenceError(str(e), bus_id=self.bus_id) from e

        return wrapper

    return decorator


class PostgresLocationRepository:
    """История точек автобуса в таблице busN_locations."""

    def __init__(
        self,
        db: DatabaseManager,
        bus_id: str,
        table: str,
        default_limit: int = DEFAULT_LOCATIONS_LIMIT,
        max_limit: int = MAX_LOCATIONS_LIMIT,
    ) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
            bus_id: Автобус, которому принадлежит таблица
            table: Имя таблицы истории
            default_limit: Размер выборки по умолчанию
            max_limit: Максимальный размер выборки
        """
        self._db = db
        self.bus_id = bus_id
        self.table = _check_table(table)
        self._default_limit = default_limit
        self._max_limit = max_limit

    @storage_errors("append")
    async def append(self, sample: LocationSample) -> LocationSample:
        check_sample(sample, self.bus_id)
        await self._db.execute(
            f"""
            INSERT INTO {self.table} ({_LOCATION_COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            sample.bus_id,
            sample.latitude,
            sample.longitude,
            sample.speed_kph,
            sample.heading,
            sample.accuracy,
            sample.captured_at,
        )
        return sample

    @storage_errors("recent")
    async def recent(self, bus_id: str, limit: int | None = None) -> list[LocationSample]:
        check_bus(bus_id, self.bus_id)
        limit = clamp_limit(limit, self._default_limit, self._max_limit)
        rows = await self._db.fetch(
            f"""
            SELECT {_LOCATION_COLUMNS}
            FROM {self.table}
            WHERE bus_id = $1
            ORDER BY captured_at DESC, id DESC
            LIMIT $2
            """,
            bus_id,
            limit,
        )
        return [LocationSample.model_validate(dict(row)) for row in rows]

    async def latest(self, bus_id: str) -> LocationSample | None:
        samples = await self.recent(bus_id, 1)
        return samples[0] if samples else None


class PostgresStatusRepository:
    """Статус автобуса в таблице busN_status (одна строка, ключ bus_id)."""

    def __init__(self, db: DatabaseManager, bus_id: str, table: str) -> None:
        self._db = db
        self.bus_id = bus_id
        self.table = _check_table(table)

    @storage_errors("upsert")
    async def upsert(self, bus_id: str, **fields: Any) -> BusStatus:
        """
        Создаёт запись, если её нет, иначе обновляет только переданные поля.

        Args:
            bus_id: Идентификатор автобуса
            **fields: Поля статуса (status, trip_started_at, ...)

        Returns:
            Запись после обновления
        """
        check_bus(bus_id, self.bus_id)
        check_status_fields(fields)

        columns = list(fields)
        values = [_to_db(fields[name]) for name in columns]

        insert_columns = ", ".join(["bus_id", *columns])
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 2))

        if columns:
            assignments = ", ".join(f"{name} = EXCLUDED.{name}" for name in columns)
            conflict = f"DO UPDATE SET {assignments}"
        else:
            # DO NOTHING не возвращает строку, поэтому «пустое» обновление
            conflict = "DO UPDATE SET bus_id = EXCLUDED.bus_id"

        row = await self._db.fetchrow(
            f"""
            INSERT INTO {self.table} ({insert_columns})
            VALUES ({placeholders})
            ON CONFLICT (bus_id) {conflict}
            RETURNING {_STATUS_COLUMNS}
            """,
            bus_id,
            *values,
        )
        return BusStatus.model_validate(dict(row))

    @storage_errors("get")
    async def get(self, bus_id: str) -> BusStatus:
        check_bus(bus_id, self.bus_id)
        row = await self._db.fetchrow(
            f"SELECT {_STATUS_COLUMNS} FROM {self.table} WHERE bus_id = $1",
            bus_id,
        )
        if row is None:
            return BusStatus.offline(bus_id)
        return BusStatus.model_validate(dict(row))

    @storage_errors("clear_owner")
    async def clear_owner(self, connection_id: str) -> int:
        """
        Переводит в offline записи, принадлежащие соединению.

        Returns:
            Количество изменённых записей
        """
        if not connection_id:
            return 0
        result = await self._db.execute(
            f"""
            UPDATE {self.table}
            SET status = $1, driver_connection_id = NULL
            WHERE driver_connection_id = $2
            """,
            BusState.OFFLINE.value,
            connection_id,
        )
        # asyncpg возвращает статус вида "UPDATE 1"
        try:
            return int(str(result).rsplit(" ", 1)[-1])
        except ValueError:
            return 0

    async def ensure(self, bus_id: str) -> BusStatus:
        """Создаёт запись при старте и сбрасывает её в offline без владельца."""
        return await self.upsert(bus_id, status=BusState.OFFLINE, driver_connection_id=None)
