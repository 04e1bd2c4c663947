# src/services/tracking/service.py
"""
Чтение данных трекинга для REST API.

Только чтение: менять хранилища может лишь роутер событий.
"""

from __future__ import annotations

from src.services.tracking.registry import VehicleRegistry
from src.shared.models.tracking import BusStatus, LocationSample


class TrackingQueryService:
    """Запросы к истории и статусам автобусов."""

    def __init__(self, registry: VehicleRegistry) -> None:
        self.registry = registry

    async def statuses(self) -> dict[str, BusStatus]:
        """
        Статусы всех автобусов парка.

        Returns:
            bus_id -> статус (offline по умолчанию, если записи нет)
        """
        result: dict[str, BusStatus] = {}
        for partition in self.registry:
            bus_id = partition.bus_id.value
            result[bus_id] = await partition.statuses.get(bus_id)
        return result

    async def status(self, bus_id: str) -> BusStatus:
        """Статус одного автобуса."""
        partition = self.registry.resolve(bus_id)
        return await partition.statuses.get(partition.bus_id.value)

    async def recent_locations(
        self,
        bus_id: str,
        limit: int | None = None,
    ) -> list[LocationSample]:
        """
        Последние точки автобуса, новые первыми.

        Args:
            bus_id: Идентификатор автобуса
            limit: Размер выборки (None — значение по умолчанию)

        Raises:
            UnknownVehicle: автобус не из парка
            ValidationError: limit меньше 1
        """
        partition = self.registry.resolve(bus_id)
        return await partition.locations.recent(partition.bus_id.value, limit)

    async def latest(self, bus_id: str) -> tuple[LocationSample | None, BusStatus]:
        """Последняя точка и текущий статус автобуса."""
        partition = self.registry.resolve(bus_id)
        key = partition.bus_id.value
        location = await partition.locations.latest(key)
        status = await partition.statuses.get(key)
        return location, status
