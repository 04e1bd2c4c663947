# src/services/tracking/stores.py
"""
Контракты хранилищ трекинга.

У каждого автобуса своя пара хранилищ: история точек (только добавление)
и запись текущего статуса (upsert с merge-patch семантикой).
"""

from __future__ import annotations

import math
from typing import Any, Protocol

from src.services.tracking.exceptions import ValidationError
from src.shared.models.tracking import STATUS_FIELDS, BusStatus, LocationSample

DEFAULT_LOCATIONS_LIMIT = 50
MAX_LOCATIONS_LIMIT = 500


class LocationStore(Protocol):
    """История точек одного автобуса."""

    bus_id: str

    async def append(self, sample: LocationSample) -> LocationSample:
        ...

    async def recent(self, bus_id: str, limit: int | None = None) -> list[LocationSample]:
        ...

    async def latest(self, bus_id: str) -> LocationSample | None:
        ...


class StatusStore(Protocol):
    """Текущий статус одного автобуса."""

    bus_id: str

    async def upsert(self, bus_id: str, **fields: Any) -> BusStatus:
        ...

    async def get(self, bus_id: str) -> BusStatus:
        ...

    async def clear_owner(self, connection_id: str) -> int:
        ...

    async def ensure(self, bus_id: str) -> BusStatus:
        ...


def check_sample(sample: LocationSample, bus_id: str) -> None:
    """
    Проверяет точку перед записью в хранилище автобуса bus_id.

    Raises:
        ValidationError: нет идентификатора, чужой автобус или координаты вне диапазона
    """
    if not sample.bus_id:
        raise ValidationError("busId is required", bus_id=bus_id)
    if sample.bus_id != bus_id:
        raise ValidationError(
            f"Sample for {sample.bus_id} cannot be stored in {bus_id} history",
            bus_id=sample.bus_id,
        )
    for name, value, bound in (
        ("latitude", sample.latitude, 90.0),
        ("longitude", sample.longitude, 180.0),
    ):
        if value is None or not math.isfinite(value) or abs(value) > bound:
            raise ValidationError(f"Invalid {name}: {value}", bus_id=bus_id)


def check_bus(requested: str, owned: str) -> None:
    """Хранилище обслуживает только свой автобус."""
    if requested != owned:
        raise ValidationError(f"Store of {owned} cannot serve {requested}", bus_id=requested)


def check_status_fields(fields: dict[str, Any]) -> None:
    """В upsert допускаются только поля статуса."""
    unknown = set(fields) - STATUS_FIELDS
    if unknown:
        raise ValidationError(f"Unknown status fields: {', '.join(sorted(unknown))}")


def clamp_limit(
    limit: int | None,
    default: int = DEFAULT_LOCATIONS_LIMIT,
    maximum: int = MAX_LOCATIONS_LIMIT,
) -> int:
    """
    Нормализует размер выборки истории.

    None → default, больше maximum → maximum.

    Raises:
        ValidationError: limit меньше 1
    """
    if limit is None:
        return min(default, maximum)
    if limit < 1:
        raise ValidationError(f"limit must be positive, got {limit}")
    return min(limit, maximum)
