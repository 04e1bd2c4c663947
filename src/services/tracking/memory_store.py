# src/services/tracking/memory_store.py
"""
Хранилища в памяти процесса.

Используются при STORAGE_BACKEND=memory (локальная разработка без PostgreSQL)
и в тестах. Данные теряются при перезапуске.
"""

from __future__ import annotations

from typing import Any

from src.common.constants import BusState
from src.services.tracking.stores import (
    DEFAULT_LOCATIONS_LIMIT,
    MAX_LOCATIONS_LIMIT,
    check_bus,
    check_sample,
    check_status_fields,
    clamp_limit,
)
from src.shared.models.tracking import BusStatus, LocationSample


class InMemoryLocationStore:
    """История точек автобуса в списке."""

    def __init__(
        self,
        bus_id: str,
        default_limit: int = DEFAULT_LOCATIONS_LIMIT,
        max_limit: int = MAX_LOCATIONS_LIMIT,
    ) -> None:
        self.bus_id = bus_id
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._samples: list[LocationSample] = []

    def __len__(self) -> int:
        return len(self._samples)

    async def append(self, sample: LocationSample) -> LocationSample:
        check_sample(sample, self.bus_id)
        self._samples.append(sample)
        return sample

    async def recent(self, bus_id: str, limit: int | None = None) -> list[LocationSample]:
        check_bus(bus_id, self.bus_id)
        limit = clamp_limit(limit, self._default_limit, self._max_limit)
        # При равном captured_at более поздняя вставка считается новее
        ordered = sorted(
            enumerate(self._samples),
            key=lambda item: (item[1].captured_at, item[0]),
            reverse=True,
        )
        return [sample for _, sample in ordered[:limit]]

    async def latest(self, bus_id: str) -> LocationSample | None:
        samples = await self.recent(bus_id, 1)
        return samples[0] if samples else None


class InMemoryStatusStore:
    """Статус автобуса в одной записи."""

    def __init__(self, bus_id: str) -> None:
        self.bus_id = bus_id
        self._record: BusStatus | None = None

    async def upsert(self, bus_id: str, **fields: Any) -> BusStatus:
        check_bus(bus_id, self.bus_id)
        check_status_fields(fields)
        current = self._record or BusStatus.offline(bus_id)
        self._record = current.merged(fields)
        return self._record

    async def get(self, bus_id: str) -> BusStatus:
        check_bus(bus_id, self.bus_id)
        return self._record or BusStatus.offline(bus_id)

    async def clear_owner(self, connection_id: str) -> int:
        if (
            not connection_id
            or self._record is None
            or self._record.driver_connection_id != connection_id
        ):
            return 0
        self._record = self._record.merged(
            {"status": BusState.OFFLINE, "driver_connection_id": None}
        )
        return 1

    async def ensure(self, bus_id: str) -> BusStatus:
        return await self.upsert(bus_id, status=BusState.OFFLINE, driver_connection_id=None)
