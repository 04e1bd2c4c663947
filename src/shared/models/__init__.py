# src/shared/models/__init__.py
"""
Общие Pydantic-модели.
"""

from src.shared.models.tracking import (
    BusStatus,
    LocationSample,
    LocationSavedAck,
    LocationUpdatePayload,
    TripEventPayload,
)
from src.shared.models.common import (
    ErrorResponse,
    HealthStatus,
)

__all__ = [
    # Tracking
    "BusStatus",
    "LocationSample",
    "LocationSavedAck",
    "LocationUpdatePayload",
    "TripEventPayload",
    # Common
    "ErrorResponse",
    "HealthStatus",
]
