# src/services/tracking/app.py
"""
FastAPI приложение сервера трекинга автобусов.

WebSocket endpoints:
- /ws — водители и наблюдатели
- /ws/{role} — то же, роль (driver, observer) только для статистики

REST endpoints:
- GET / — информация о сервисе
- GET /health — проверка здоровья
- GET /stats — статистика соединений
- GET /buses/status — статусы автобусов
- GET /bus/{bus_id}/locations — история точек
- GET /bus/{bus_id}/latest — последняя точка и статус

REST доступен также с префиксом /api (пути старого клиента).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.common.constants import EventName
from src.common.logger import log_error, log_info, log_warning, setup_logging
from src.config import settings
from src.infra.database import close_db, init_db
from src.services.tracking import dependencies
from src.services.tracking.exceptions import (
    PersistenceError,
    TrackingError,
    UnknownVehicle,
    ValidationError,
)
from src.services.tracking.registry import PARTITION_TABLES
from src.services.tracking.routes import router as tracking_router
from src.shared.events.frames import FrameDecodeError, make_frame, parse_frame
from src.shared.models.common import ErrorResponse, HealthStatus
from src.shared.models.tracking import utcnow

SERVICE_NAME = "bus_tracking"

WS_ROLES = ("driver", "observer")


# === MODELS ===

class StatsResponse(BaseModel):
    """Статистика соединений."""
    active_connections: int
    total_connections_ever: int
    total_messages_sent: int
    dropped_connections: int
    connections_by_role: dict[str, int]
    driver_connections: int
    claimed_buses: int


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    # Startup
    setup_logging()
    backend = settings.storage.STORAGE_BACKEND
    await log_info(f"Запуск сервиса трекинга (хранилище: {backend})...")

    db = await init_db() if backend == "postgres" else None
    registry = dependencies.build_registry(db)
    router = dependencies.init_dependencies(registry, db)

    # Статусы создаются до приёма первого соединения
    await router.initialize()

    yield

    # Shutdown
    await log_info("Остановка сервиса трекинга...")
    dependencies.reset_dependencies()
    if db is not None:
        await close_db()


# === APP ===

app = FastAPI(
    title="Bus Tracking Server",
    description="Realtime трансляция координат автобусов и статусов рейсов.",
    version=settings.system.VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(tracking_router)
app.include_router(tracking_router, prefix="/api", include_in_schema=False)


# === ERRORS ===

def _error_response(status_code: int, exc: TrackingError) -> JSONResponse:
    body = ErrorResponse(error=str(exc)).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(UnknownVehicle)
async def unknown_vehicle_handler(request: Request, exc: UnknownVehicle) -> JSONResponse:
    return _error_response(404, exc)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _error_response(400, exc)


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    await log_error(
        f"Ошибка хранилища при запросе {request.url.path}: {exc}",
        extra={"bus_id": exc.bus_id, "path": request.url.path},
    )
    return _error_response(500, exc)


# === INFO ===

@app.get("/", tags=["Info"])
async def service_info() -> dict[str, Any]:
    """Информация о сервисе."""
    return {
        "message": "Bus Tracking Server",
        "version": settings.system.VERSION,
        "storage": settings.storage.STORAGE_BACKEND,
        "buses": [bus_id.value for bus_id in PARTITION_TABLES],
        "partitions": {
            bus_id.value: {"locations": locations, "status": status}
            for bus_id, (locations, status) in PARTITION_TABLES.items()
        },
        "endpoints": {
            "health": "/health",
            "stats": "/stats",
            "busesStatus": "/buses/status",
            "busLocations": "/bus/{busId}/locations?limit=50",
            "busLatest": "/bus/{busId}/latest",
            "websocket": "/ws",
        },
    }


# === HEALTH CHECK ===

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса."""
    db = dependencies.get_db()
    if db is None:
        storage_state = "memory"
    elif await db.health_check():
        storage_state = "healthy"
    else:
        storage_state = "unhealthy"

    return HealthStatus(
        status="degraded" if storage_state == "unhealthy" else "healthy",
        service=SERVICE_NAME,
        version=settings.system.VERSION,
        timestamp=utcnow().isoformat(),
        dependencies={"storage": storage_state},
    )


app.add_api_route("/api/health", health_check, response_model=HealthStatus, include_in_schema=False)


# === STATS ===

@app.get("/stats", response_model=StatsResponse, tags=["Stats"])
async def get_stats() -> StatsResponse:
    """Получить статистику соединений."""
    stats = dependencies.get_connection_manager().get_stats()
    stats.update(dependencies.get_event_router().sessions.get_stats())
    return StatsResponse(**stats)


# === WEBSOCKET ENDPOINTS ===

@app.websocket("/ws")
async def websocket_default(websocket: WebSocket) -> None:
    """
    WebSocket водителей и наблюдателей.

    Кадры: {"event": "<имя>", "data": {...}}

    Входящие события:
    - locationUpdate / busLocationUpdate — точка автобуса
    - tripStarted, tripEnded — начало и конец рейса
    - ping
    """
    await _serve_connection(websocket, "client")


@app.websocket("/ws/{role}")
async def websocket_with_role(websocket: WebSocket, role: str) -> None:
    """WebSocket с указанием роли (driver, observer)."""
    if role not in WS_ROLES:
        await log_warning(f"Неизвестная роль WebSocket: {role}")
        role = "client"
    await _serve_connection(websocket, role)


async def _serve_connection(websocket: WebSocket, role: str) -> None:
    """Цикл приёма кадров одного соединения."""
    manager = dependencies.get_connection_manager()
    router = dependencies.get_event_router()

    connection_id = await manager.connect(websocket, role)
    await manager.send_personal(
        connection_id, make_frame(EventName.CONNECTED, {"connectionId": connection_id})
    )
    await log_info(
        f"Подключение {connection_id} ({role})",
        extra={"connection_id": connection_id, "role": role},
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")

            try:
                frame = parse_frame(raw)
            except FrameDecodeError as e:
                await router.send_error(connection_id, str(e))
                continue

            try:
                await router.dispatch(connection_id, frame)
            except Exception as e:
                # Ошибка одного кадра не закрывает соединение
                await log_error(
                    f"Ошибка обработки {frame.event!r} от {connection_id}: {e}",
                    extra={"connection_id": connection_id, "event": frame.event},
                    exc_info=True,
                )
                await router.send_error(connection_id, f"Failed to process event: {frame.event}")

    except WebSocketDisconnect:
        pass
    except RuntimeError as e:
        # Сокет закрыт сервером (например, исключён из рассылки)
        await log_warning(
            f"Соединение {connection_id} закрыто: {e}",
            extra={"connection_id": connection_id},
        )
    finally:
        manager.disconnect(connection_id)
        await router.handle_disconnect(connection_id)
        await log_info(
            f"Отключение {connection_id}",
            extra={"connection_id": connection_id},
        )
