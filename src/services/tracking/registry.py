# src/services/tracking/registry.py
"""
Реестр автобусов.

Закрытая таблица BusId → пара хранилищ автобуса. Неизвестные идентификаторы
отклоняются до любого обращения к хранилищам.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from src.common.constants import BusId
from src.services.tracking.exceptions import UnknownVehicle
from src.services.tracking.memory_store import InMemoryLocationStore, InMemoryStatusStore
from src.services.tracking.stores import (
    DEFAULT_LOCATIONS_LIMIT,
    MAX_LOCATIONS_LIMIT,
    LocationStore,
    StatusStore,
)

if TYPE_CHECKING:
    from src.infra.database import DatabaseManager


# Таблицы истории и статуса для каждого автобуса
PARTITION_TABLES: dict[BusId, tuple[str, str]] = {
    BusId.BUS_01: ("bus1_locations", "bus1_status"),
    BusId.BUS_02: ("bus2_locations", "bus2_status"),
}


@dataclass(frozen=True)
class BusPartition:
    """Хранилища одного автобуса."""
    bus_id: BusId
    locations: LocationStore
    statuses: StatusStore


class VehicleRegistry:
    """Реестр автобусов парка."""

    def __init__(self, partitions: Mapping[BusId, BusPartition]) -> None:
        missing = set(BusId) - set(partitions)
        if missing:
            raise ValueError(f"No storage for buses: {sorted(b.value for b in missing)}")
        self._partitions: dict[BusId, BusPartition] = dict(partitions)

    def resolve(self, bus_id: Any) -> BusPartition:
        """
        Возвращает хранилища автобуса.

        Raises:
            UnknownVehicle: идентификатор не из парка
        """
        try:
            key = BusId(bus_id)
        except (ValueError, TypeError):
            raise UnknownVehicle(None if bus_id is None else str(bus_id)) from None
        return self._partitions[key]

    def __contains__(self, bus_id: object) -> bool:
        try:
            self.resolve(bus_id)
        except UnknownVehicle:
            return False
        return True

    def __iter__(self) -> Iterator[BusPartition]:
        return iter(self._partitions[bus_id] for bus_id in BusId)

    def __len__(self) -> int:
        return len(self._partitions)

    def bus_ids(self) -> list[str]:
        """Идентификаторы автобусов в порядке перечисления."""
        return [bus_id.value for bus_id in BusId]

    # =========================================================================
    # ФАБРИКИ
    # =========================================================================

    @classmethod
    def in_memory(
        cls,
        default_limit: int = DEFAULT_LOCATIONS_LIMIT,
        max_limit: int = MAX_LOCATIONS_LIMIT,
    ) -> "VehicleRegistry":
        """Реестр с хранилищами в памяти процесса."""
        return cls({
            bus_id: BusPartition(
                bus_id=bus_id,
                locations=InMemoryLocationStore(bus_id.value, default_limit, max_limit),
                statuses=InMemoryStatusStore(bus_id.value),
            )
            for bus_id in BusId
        })

    @classmethod
    def postgres(
        cls,
        db: "DatabaseManager",
        default_limit: int = DEFAULT_LOCATIONS_LIMIT,
        max_limit: int = MAX_LOCATIONS_LIMIT,
    ) -> "VehicleRegistry":
        """Реестр с таблицами PostgreSQL (по паре таблиц на автобус)."""
        from src.services.tracking.repository import (
            PostgresLocationRepository,
            PostgresStatusRepository,
        )

        partitions: dict[BusId, BusPartition] = {}
        for bus_id, (location_table, status_table) in PARTITION_TABLES.items():
            partitions[bus_id] = BusPartition(
                bus_id=bus_id,
                locations=PostgresLocationRepository(
                    db, bus_id.value, location_table, default_limit, max_limit
                ),
                statuses=PostgresStatusRepository(db, bus_id.value, status_table),
            )
        return cls(partitions)
