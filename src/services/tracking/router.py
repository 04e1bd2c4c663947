# src/services/tracking/router.py
"""
Роутер событий трекинга.

Единственный компонент, который меняет хранилища и SessionTracker:
проверяет автобус по реестру, пишет точку и статус, рассылает событие
остальным соединениям и подтверждает отправителю.

Статусы автобуса:
    offline/inactive --tripStarted--> active
    любой --locationUpdate--> active (без tripStarted — неявное начало рейса)
    любой --tripEnded--> inactive (владелец не сбрасывается)
    любой --закрытие соединения-владельца--> offline
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from src.common.constants import BusId, BusState, EventName
from src.common.logger import log_debug, log_error, log_info, log_warning
from src.services.tracking.exceptions import (
    PersistenceError,
    TrackingError,
    UnknownVehicle,
    ValidationError,
)
from src.services.tracking.registry import BusPartition, VehicleRegistry
from src.services.tracking.session_tracker import SessionTracker
from src.shared.events.frames import WsFrame, make_frame
from src.shared.models.tracking import (
    BusStatus,
    LocationSample,
    LocationSavedAck,
    LocationUpdatePayload,
    TripEventPayload,
    utcnow,
)


class Fanout(Protocol):
    """Рассылка по открытым соединениям (ConnectionManager)."""

    async def broadcast(self, event: str, payload: Any, exclude: str | None = None) -> int:
        ...

    async def send_personal(self, connection_id: str, message: dict[str, Any]) -> bool:
        ...


def _validation_message(error: PydanticValidationError) -> str:
    """Короткое описание первой ошибки валидации."""
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "data"
    return f"Invalid {location}: {first.get('msg', 'invalid value')}"


def _parse(model: type, data: Any) -> Any:
    """
    Валидирует данные события.

    Raises:
        ValidationError: данные не объект или не проходят модель
    """
    if not isinstance(data, dict):
        raise ValidationError("Event data must be an object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        bus_id = data.get("busId")
        raise ValidationError(
            _validation_message(e),
            bus_id=bus_id if isinstance(bus_id, str) else None,
        ) from e


class EventRouter:
    """
    Обработчик входящих событий.

    События одного автобуса обрабатываются последовательно (блокировка
    на автобус), события разных автобусов — параллельно.
    """

    def __init__(
        self,
        registry: VehicleRegistry,
        sessions: SessionTracker,
        fanout: Fanout,
    ) -> None:
        """
        Args:
            registry: Реестр автобусов с их хранилищами
            sessions: Учёт владельцев автобусов
            fanout: Рассылка по соединениям
        """
        self.registry = registry
        self.sessions = sessions
        self._fanout = fanout
        self._locks: dict[str, asyncio.Lock] = {bus_id.value: asyncio.Lock() for bus_id in BusId}

    def _lock(self, bus_id: str) -> asyncio.Lock:
        return self._locks[bus_id]

    async def initialize(self) -> None:
        """
        Создаёт запись статуса для каждого автобуса и сбрасывает её в offline.

        Вызывается до приёма соединений: после старта процесса открытых
        соединений нет, значит и владельцев нет.
        """
        for partition in self.registry:
            status = await partition.statuses.ensure(partition.bus_id.value)
            await log_debug(
                f"Статус {status.bus_id} инициализирован: {status.status}",
                extra={"bus_id": status.bus_id},
            )
        await log_info(f"Инициализировано автобусов: {len(self.registry)}")

    # =========================================================================
    # ДИСПЕТЧЕРИЗАЦИЯ
    # =========================================================================

    async def dispatch(self, connection_id: str, frame: WsFrame) -> None:
        """Передать кадр обработчику события."""
        match frame.event:
            case EventName.LOCATION_UPDATE | EventName.BUS_LOCATION_UPDATE:
                await self.handle_location_update(
                    connection_id, frame.data, event=EventName(frame.event)
                )
            case EventName.TRIP_STARTED:
                await self.handle_trip_started(connection_id, frame.data)
            case EventName.TRIP_ENDED:
                await self.handle_trip_ended(connection_id, frame.data)
            case EventName.PING:
                await self._fanout.send_personal(
                    connection_id,
                    make_frame(EventName.PONG, {"timestamp": utcnow().isoformat()}),
                )
            case _:
                await log_warning(
                    f"Неизвестное событие {frame.event!r} от {connection_id}",
                    extra={"connection_id": connection_id, "event": frame.event},
                )
                await self.send_error(connection_id, f"Unknown event: {frame.event}")

    async def send_error(self, connection_id: str, message: str) -> None:
        """Сообщение об ошибке протокола отправителю."""
        await self._fanout.send_personal(
            connection_id, make_frame(EventName.ERROR, {"message": message})
        )

    # =========================================================================
    # ОБРАБОТЧИКИ
    # =========================================================================

    async def handle_location_update(
        self,
        connection_id: str,
        data: Any,
        event: EventName = EventName.LOCATION_UPDATE,
    ) -> LocationSavedAck:
        """
        Точка от водителя.

        Успех: запись точки и статуса, рассылка данных как есть остальным,
        подтверждение locationSaved. Любая ошибка отправляется отправителю
        в подтверждении, рассылки при этом нет.
        """
        raw_bus_id = data.get("busId") if isinstance(data, dict) else None
        bus_id = raw_bus_id if isinstance(raw_bus_id, str) else None

        try:
            payload: LocationUpdatePayload = _parse(LocationUpdatePayload, data)
            partition = self.registry.resolve(payload.bus_id)
            bus_id = partition.bus_id.value

            async with self._lock(bus_id):
                received_at = utcnow()
                sample = LocationSample.from_payload(payload, received_at)
                await partition.locations.append(sample)
                await self._mark_active(partition, connection_id, received_at)
                self.sessions.claim(connection_id, bus_id)
                await self._fanout.broadcast(event, data, exclude=connection_id)

            ack = LocationSavedAck(
                success=True,
                bus_id=bus_id,
                timestamp=received_at.isoformat(),
            )
            await log_debug(
                f"Точка {bus_id}: {sample.latitude}, {sample.longitude}, {sample.speed_kph} км/ч",
                extra={"bus_id": bus_id, "connection_id": connection_id},
            )
        except (UnknownVehicle, ValidationError) as e:
            await log_warning(
                f"Точка отклонена: {e}",
                extra={"bus_id": e.bus_id or bus_id, "connection_id": connection_id},
            )
            ack = LocationSavedAck(success=False, bus_id=e.bus_id or bus_id, error=str(e))
        except PersistenceError as e:
            await log_error(
                f"Не удалось сохранить точку {e.bus_id or bus_id}: {e}",
                extra={"bus_id": e.bus_id or bus_id, "connection_id": connection_id},
            )
            ack = LocationSavedAck(success=False, bus_id=e.bus_id or bus_id, error=str(e))

        await self._fanout.send_personal(
            connection_id, make_frame(EventName.LOCATION_SAVED, ack.to_wire())
        )
        return ack

    async def handle_trip_started(self, connection_id: str, data: Any) -> BusStatus | None:
        """
        Начало рейса: статус active, владелец — отправитель.

        Подтверждения нет, ошибки только логируются.
        """
        try:
            payload: TripEventPayload = _parse(TripEventPayload, data)
            partition = self.registry.resolve(payload.bus_id)
            bus_id = partition.bus_id.value

            async with self._lock(bus_id):
                now = utcnow()
                status = await partition.statuses.upsert(
                    bus_id,
                    status=BusState.ACTIVE,
                    trip_started_at=now,
                    trip_ended_at=None,
                    driver_connection_id=connection_id,
                )
                self.sessions.claim(connection_id, bus_id)
                await self._fanout.broadcast(EventName.TRIP_STARTED, data, exclude=connection_id)
        except TrackingError as e:
            await self._log_trip_failure(EventName.TRIP_STARTED, connection_id, e)
            return None

        await log_info(
            f"Рейс {bus_id} начат",
            extra={"bus_id": bus_id, "connection_id": connection_id},
        )
        return status

    async def handle_trip_ended(self, connection_id: str, data: Any) -> BusStatus | None:
        """
        Конец рейса: статус inactive.

        Владелец не сбрасывается — его снимает только закрытие соединения.
        """
        try:
            payload: TripEventPayload = _parse(TripEventPayload, data)
            partition = self.registry.resolve(payload.bus_id)
            bus_id = partition.bus_id.value

            async with self._lock(bus_id):
                status = await partition.statuses.upsert(
                    bus_id,
                    status=BusState.INACTIVE,
                    trip_ended_at=utcnow(),
                )
                await self._fanout.broadcast(EventName.TRIP_ENDED, data, exclude=connection_id)
        except TrackingError as e:
            await self._log_trip_failure(EventName.TRIP_ENDED, connection_id, e)
            return None

        await log_info(
            f"Рейс {bus_id} завершён",
            extra={"bus_id": bus_id, "connection_id": connection_id},
        )
        return status

    async def handle_disconnect(self, connection_id: str) -> list[str]:
        """
        Закрытие соединения: автобусы, которыми оно владело, уходят в offline.

        Повторный вызов для того же соединения ничего не меняет.

        Returns:
            Автобусы, переведённые в offline
        """
        released = self.sessions.release(connection_id)
        cleared: list[str] = []

        for bus_id in sorted(released):
            partition = self.registry.resolve(bus_id)
            async with self._lock(bus_id):
                try:
                    count = await partition.statuses.clear_owner(connection_id)
                except PersistenceError as e:
                    await log_error(
                        f"Не удалось перевести {bus_id} в offline: {e}",
                        extra={"bus_id": bus_id, "connection_id": connection_id},
                    )
                    continue
            if count:
                cleared.append(bus_id)

        if cleared:
            await log_info(
                f"Соединение {connection_id} закрыто, offline: {', '.join(cleared)}",
                extra={"connection_id": connection_id, "buses": cleared},
            )
        return cleared

    # =========================================================================
    # ВСПОМОГАТЕЛЬНЫЕ
    # =========================================================================

    async def _mark_active(
        self,
        partition: BusPartition,
        connection_id: str,
        received_at: datetime,
    ) -> BusStatus:
        """Статус после точки: active, время точки, владелец — отправитель."""
        bus_id = partition.bus_id.value
        fields: dict[str, Any] = {
            "status": BusState.ACTIVE,
            "last_location_update_at": received_at,
            "driver_connection_id": connection_id,
        }
        current = await partition.statuses.get(bus_id)
        if not current.is_active:
            # Точка без tripStarted открывает рейс
            fields["trip_started_at"] = received_at
            fields["trip_ended_at"] = None
        return await partition.statuses.upsert(bus_id, **fields)

    async def _log_trip_failure(
        self,
        event: EventName,
        connection_id: str,
        error: TrackingError,
    ) -> None:
        extra = {"bus_id": error.bus_id, "connection_id": connection_id, "event": event.value}
        if isinstance(error, PersistenceError):
            await log_error(f"{event.value}: ошибка хранилища: {error}", extra=extra)
        else:
            await log_warning(f"{event.value} отклонён: {error}", extra=extra)
