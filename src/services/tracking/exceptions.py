# src/services/tracking/exceptions.py
"""
Ошибки сервиса трекинга.
"""

from __future__ import annotations


class TrackingError(Exception):
    """Базовая ошибка трекинга."""

    def __init__(self, message: str, *, bus_id: str | None = None) -> None:
        self.bus_id = bus_id
        super().__init__(message)


class UnknownVehicle(TrackingError):
    """Идентификатор автобуса не входит в парк."""

    def __init__(self, bus_id: str | None) -> None:
        super().__init__(f"Unknown bus ID: {bus_id}", bus_id=bus_id)


class ValidationError(TrackingError):
    """Некорректные данные точки или запроса."""


class PersistenceError(TrackingError):
    """Ошибка чтения/записи хранилища."""


class TransportError(TrackingError):
    """Ошибка отправки в WebSocket соединение."""

    def __init__(self, message: str, *, connection_id: str | None = None) -> None:
        self.connection_id = connection_id
        super().__init__(message)
