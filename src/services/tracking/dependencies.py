# src/services/tracking/dependencies.py
"""
Dependency Injection для сервиса трекинга.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.config import settings
from src.services.tracking.connection_manager import ConnectionManager
from src.services.tracking.registry import VehicleRegistry
from src.services.tracking.router import EventRouter
from src.services.tracking.service import TrackingQueryService
from src.services.tracking.session_tracker import SessionTracker

if TYPE_CHECKING:
    from src.infra.database import DatabaseManager


# Синглтоны
_db: "DatabaseManager | None" = None
_manager: ConnectionManager | None = None
_router: EventRouter | None = None
_query_service: TrackingQueryService | None = None


def build_registry(db: "DatabaseManager | None" = None) -> VehicleRegistry:
    """
    Реестр по настройкам хранилища.

    Args:
        db: Подключённый менеджер БД (обязателен для STORAGE_BACKEND=postgres)
    """
    storage = settings.storage
    if storage.STORAGE_BACKEND == "memory":
        return VehicleRegistry.in_memory(
            storage.LOCATIONS_DEFAULT_LIMIT, storage.LOCATIONS_MAX_LIMIT
        )
    if db is None:
        raise RuntimeError("Для STORAGE_BACKEND=postgres нужна база данных")
    return VehicleRegistry.postgres(
        db, storage.LOCATIONS_DEFAULT_LIMIT, storage.LOCATIONS_MAX_LIMIT
    )


def init_dependencies(
    registry: VehicleRegistry,
    db: "DatabaseManager | None" = None,
    send_timeout: float | None = None,
) -> EventRouter:
    """
    Инициализировать зависимости при старте приложения.

    Returns:
        Роутер событий (его нужно инициализировать до приёма соединений)
    """
    global _db, _manager, _router, _query_service
    _db = db
    _manager = ConnectionManager(
        send_timeout=send_timeout
        if send_timeout is not None
        else settings.realtime.BROADCAST_SEND_TIMEOUT
    )
    _router = EventRouter(registry, SessionTracker(), _manager)
    _query_service = TrackingQueryService(registry)
    return _router


def reset_dependencies() -> None:
    """Сбросить зависимости (при остановке приложения)."""
    global _db, _manager, _router, _query_service
    _db = None
    _manager = None
    _router = None
    _query_service = None


def get_db() -> "DatabaseManager | None":
    """Менеджер БД (None при хранилище в памяти)."""
    return _db


def get_connection_manager() -> ConnectionManager:
    """Получить менеджер соединений."""
    if _manager is None:
        raise RuntimeError("Менеджер соединений не инициализирован. Вызовите init_dependencies()")
    return _manager


def get_event_router() -> EventRouter:
    """Получить роутер событий."""
    if _router is None:
        raise RuntimeError("Роутер событий не инициализирован. Вызовите init_dependencies()")
    return _router


def get_query_service() -> TrackingQueryService:
    """Получить сервис чтения."""
    if _query_service is None:
        raise RuntimeError("Сервис чтения не инициализирован. Вызовите init_dependencies()")
    return _query_service
