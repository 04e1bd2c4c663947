# src/shared/models/tracking.py
"""
Модели данных трекинга автобусов.

Во внешнем протоколе (WebSocket, REST) поля в camelCase (busId, speedKph, ...),
в коде и в БД — snake_case.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.common.constants import BusState, COORDINATE_PRECISION, MAX_SPEED_MPS, MPS_TO_KPH


def utcnow() -> datetime:
    """Текущее время в UTC (timezone-aware)."""
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    """База для моделей с camelCase представлением."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# ВХОДЯЩИЕ СОБЫТИЯ
# =============================================================================

class LocationUpdatePayload(_CamelModel):
    """Данные события locationUpdate от приложения водителя."""

    bus_id: str = Field(..., min_length=1, description="Идентификатор автобуса")
    latitude: float = Field(..., ge=-90.0, le=90.0, description="Широта")
    longitude: float = Field(..., ge=-180.0, le=180.0, description="Долгота")
    speed: float | None = Field(None, description="Скорость относительно земли, м/с")
    heading: float | None = Field(None, description="Курс, градусы")
    timestamp: datetime | None = Field(None, description="Время снятия координат")
    accuracy: float | None = Field(None, description="Горизонтальная точность, м")

    @field_validator("latitude", "longitude")
    @classmethod
    def check_finite(cls, v: float) -> float:
        """NaN и бесконечность не являются координатами."""
        if not math.isfinite(v):
            raise ValueError("coordinate must be a finite number")
        return v

    @field_validator("speed")
    @classmethod
    def check_speed(cls, v: float | None) -> float | None:
        """Скорость выше MAX_SPEED_MPS не бывает у автобуса и не влезает в speed_kph."""
        if v is not None and math.isfinite(v) and v > MAX_SPEED_MPS:
            raise ValueError(f"speed must not exceed {MAX_SPEED_MPS} m/s")
        return v


class TripEventPayload(_CamelModel):
    """Данные событий tripStarted / tripEnded."""

    bus_id: str = Field(..., min_length=1)
    timestamp: datetime | None = None


# =============================================================================
# ХРАНИМЫЕ ДАННЫЕ
# =============================================================================

def speed_to_kph(speed_mps: float | None) -> int:
    """
    Переводит скорость из м/с в км/ч с округлением до целого.

    Отсутствующая, отрицательная (так устройства сообщают «неизвестно»)
    или нечисловая скорость даёт 0, скорость выше MAX_SPEED_MPS обрезается.
    """
    if speed_mps is None or not math.isfinite(speed_mps) or speed_mps <= 0:
        return 0
    return int(round(min(speed_mps, MAX_SPEED_MPS) * MPS_TO_KPH))


def round_coordinate(value: float) -> float:
    """Округляет координату до 6 знаков после запятой."""
    return round(value, COORDINATE_PRECISION)


class LocationSample(_CamelModel):
    """Точка истории перемещения автобуса. Неизменяема после сохранения."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        from_attributes=True,
    )

    bus_id: str
    latitude: float
    longitude: float
    speed_kph: int = Field(0, ge=0)
    heading: float = 0.0
    accuracy: float = 0.0
    captured_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_payload(
        cls,
        payload: LocationUpdatePayload,
        received_at: datetime | None = None,
    ) -> "LocationSample":
        """Нормализует входящие данные водителя в точку истории."""
        heading = payload.heading
        if heading is None or not math.isfinite(heading) or heading < 0:
            heading = 0.0
        heading = heading % 360.0

        accuracy = payload.accuracy
        if accuracy is None or not math.isfinite(accuracy) or accuracy < 0:
            accuracy = 0.0

        captured_at = payload.timestamp or received_at or utcnow()
        if captured_at.tzinfo is None:
            captured_at = captured_at.replace(tzinfo=timezone.utc)

        return cls(
            bus_id=payload.bus_id,
            latitude=round_coordinate(payload.latitude),
            longitude=round_coordinate(payload.longitude),
            speed_kph=speed_to_kph(payload.speed),
            heading=heading,
            accuracy=accuracy,
            captured_at=captured_at,
        )


class BusStatus(_CamelModel):
    """Текущий статус автобуса (одна запись на автобус)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    bus_id: str
    status: BusState = BusState.OFFLINE
    trip_started_at: datetime | None = None
    trip_ended_at: datetime | None = None
    last_location_update_at: datetime | None = None
    driver_connection_id: str | None = None

    @classmethod
    def offline(cls, bus_id: str) -> "BusStatus":
        """Запись по умолчанию для автобуса без статуса."""
        return cls(bus_id=bus_id, status=BusState.OFFLINE)

    @property
    def is_active(self) -> bool:
        """Идёт ли рейс."""
        return self.status == BusState.ACTIVE

    def merged(self, fields: dict[str, Any]) -> "BusStatus":
        """Возвращает копию с применённым merge-patch (только переданные поля)."""
        return self.model_copy(update=fields)


# Поля статуса, которые можно обновлять через upsert
STATUS_FIELDS: frozenset[str] = frozenset(
    name for name in BusStatus.model_fields if name != "bus_id"
)


# =============================================================================
# ИСХОДЯЩИЕ СООБЩЕНИЯ
# =============================================================================

class LocationSavedAck(_CamelModel):
    """Подтверждение водителю после locationUpdate."""

    success: bool
    bus_id: str | None = None
    timestamp: str | None = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Словарь для отправки по WebSocket (без пустых полей)."""
        return self.model_dump(by_alias=True, exclude_none=True)
