# src/services/tracking/routes.py
"""
REST API чтения: статусы автобусов и история точек.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.services.tracking.dependencies import get_query_service
from src.services.tracking.service import TrackingQueryService

router = APIRouter(tags=["Tracking"])


def _dump(model: Any) -> dict[str, Any] | None:
    """Модель в camelCase словарь для ответа."""
    if model is None:
        return None
    return model.model_dump(mode="json", by_alias=True)


@router.get("/buses/status")
async def get_buses_status(
    service: TrackingQueryService = Depends(get_query_service),
) -> dict[str, Any]:
    """Статусы всех автобусов (offline, если записи ещё нет)."""
    statuses = await service.statuses()
    return {
        "success": True,
        "buses": {bus_id: _dump(status) for bus_id, status in statuses.items()},
    }


@router.get("/bus/{bus_id}/locations")
async def get_bus_locations(
    bus_id: str,
    limit: int | None = Query(default=None, description="Количество точек (по умолчанию 50)"),
    service: TrackingQueryService = Depends(get_query_service),
) -> dict[str, Any]:
    """Последние точки автобуса, новые первыми."""
    locations = await service.recent_locations(bus_id, limit)
    return {
        "success": True,
        "busId": bus_id,
        "count": len(locations),
        "locations": [_dump(location) for location in locations],
    }


@router.get("/bus/{bus_id}/latest")
async def get_bus_latest(
    bus_id: str,
    service: TrackingQueryService = Depends(get_query_service),
) -> dict[str, Any]:
    """Последняя точка и статус автобуса."""
    location, status = await service.latest(bus_id)
    return {
        "success": True,
        "busId": bus_id,
        "location": _dump(location),
        "status": _dump(status),
    }
