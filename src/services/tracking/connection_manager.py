# src/services/tracking/connection_manager.py
"""
Менеджер WebSocket соединений.
Хранит открытые соединения и рассылает им сообщения.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from src.common.logger import log_debug, log_warning
from src.services.tracking.exceptions import TransportError
from src.shared.events.frames import make_frame
from src.shared.models.tracking import utcnow

DEFAULT_SEND_TIMEOUT = 5.0

# Ошибки отправки в разорванное соединение
_SEND_ERRORS: tuple[type[BaseException], ...] = (
    WebSocketDisconnect,
    RuntimeError,
    OSError,
)


@dataclass
class ConnectionInfo:
    """Информация о соединении."""
    websocket: WebSocket
    connection_id: str
    role: str = "client"  # driver, observer, client
    connected_at: datetime = field(default_factory=utcnow)


class ConnectionManager:
    """
    Менеджер WebSocket соединений.

    Поддерживает:
    - Подключение/отключение клиентов (идентификатор выдаёт сервер)
    - Персональные сообщения (подтверждения)
    - Broadcast всем, кроме отправителя
    """

    def __init__(self, send_timeout: float = DEFAULT_SEND_TIMEOUT) -> None:
        # connection_id -> ConnectionInfo
        self._connections: dict[str, ConnectionInfo] = {}
        self._send_timeout = send_timeout

        # Для статистики
        self._total_connections: int = 0
        self._total_messages_sent: int = 0
        self._total_dropped: int = 0

    @property
    def active_connections(self) -> int:
        """Количество активных соединений."""
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    async def connect(self, websocket: WebSocket, role: str = "client") -> str:
        """
        Принять соединение и зарегистрировать его.

        Returns:
            Идентификатор соединения
        """
        await websocket.accept()

        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = ConnectionInfo(
            websocket=websocket,
            connection_id=connection_id,
            role=role,
        )
        self._total_connections += 1
        return connection_id

    def disconnect(self, connection_id: str) -> bool:
        """
        Убрать соединение из рассылки.

        Returns:
            True если соединение было зарегистрировано
        """
        return self._connections.pop(connection_id, None) is not None

    async def send_personal(self, connection_id: str, message: dict[str, Any]) -> bool:
        """
        Отправить сообщение конкретному соединению.

        Returns:
            True если сообщение отправлено, False если соединения нет или оно разорвано
        """
        conn = self._connections.get(connection_id)
        if conn is None:
            return False

        try:
            await self._send(conn, message)
        except TransportError as e:
            await log_warning(
                f"Не удалось отправить сообщение {connection_id}: {e}",
                extra={"connection_id": connection_id},
            )
            await self._drop(conn)
            return False
        return True

    async def broadcast(
        self,
        event: str,
        payload: Any,
        exclude: str | None = None,
    ) -> int:
        """
        Отправить событие всем соединениям, кроме exclude.

        Отправки идут параллельно, каждая ограничена таймаутом. Соединения,
        на которые отправить не удалось, исключаются из рассылки.

        Returns:
            Количество успешно отправленных сообщений
        """
        message = make_frame(event, payload)
        receivers = [
            conn for connection_id, conn in self._connections.items()
            if connection_id != exclude
        ]
        if not receivers:
            return 0

        results = await asyncio.gather(
            *(self._send(conn, message) for conn in receivers),
            return_exceptions=True,
        )

        sent_count = 0
        for conn, result in zip(receivers, results):
            if isinstance(result, TransportError):
                await log_debug(
                    f"Соединение {conn.connection_id} исключено из рассылки: {result}",
                    extra={"connection_id": conn.connection_id, "event": event},
                )
                await self._drop(conn)
            elif isinstance(result, BaseException):
                raise result
            else:
                sent_count += 1

        return sent_count

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._connections),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
            "dropped_connections": self._total_dropped,
            "connections_by_role": self._count_by_role(),
        }

    def _count_by_role(self) -> dict[str, int]:
        """Подсчёт соединений по роли."""
        counts: dict[str, int] = {}
        for conn in self._connections.values():
            counts[conn.role] = counts.get(conn.role, 0) + 1
        return counts

    async def _send(self, conn: ConnectionInfo, message: dict[str, Any]) -> None:
        """
        Отправка с таймаутом.

        Raises:
            TransportError: соединение разорвано или не успело принять сообщение
        """
        try:
            await asyncio.wait_for(conn.websocket.send_json(message), self._send_timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"send timed out after {self._send_timeout}s",
                connection_id=conn.connection_id,
            ) from e
        except _SEND_ERRORS as e:
            # Starlette бросает RuntimeError при отправке в закрытый сокет
            raise TransportError(str(e), connection_id=conn.connection_id) from e
        self._total_messages_sent += 1

    async def _drop(self, conn: ConnectionInfo) -> None:
        """Исключить соединение и закрыть сокет (цикл приёма завершится сам)."""
        if self.disconnect(conn.connection_id):
            self._total_dropped += 1
        await self._close_connection(conn)

    async def _close_connection(self, conn: ConnectionInfo) -> None:
        """Закрыть соединение."""
        try:
            await conn.websocket.close()
        except _SEND_ERRORS as e:
            await log_debug(
                f"Соединение {conn.connection_id} уже закрыто: {e}",
                extra={"connection_id": conn.connection_id},
            )
