# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class BusId(str, Enum):
    """Идентификаторы автобусов парка (закрытый список)."""
    BUS_01 = "IITJ_BUS_01"
    BUS_02 = "IITJ_BUS_02"

    def __str__(self) -> str:
        return self.value


class BusState(str, Enum):
    """Статусы автобуса."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    OFFLINE = "offline"

    def __str__(self) -> str:
        return self.value


class EventName(str, Enum):
    """Имена событий WebSocket протокола."""
    # Входящие от водителя
    LOCATION_UPDATE = "locationUpdate"
    BUS_LOCATION_UPDATE = "busLocationUpdate"  # имя из старого приложения водителя
    TRIP_STARTED = "tripStarted"
    TRIP_ENDED = "tripEnded"
    PING = "ping"

    # Исходящие
    LOCATION_SAVED = "locationSaved"
    CONNECTED = "connected"
    PONG = "pong"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


# Коэффициент перевода м/с в км/ч
MPS_TO_KPH: float = 3.6

# Верхняя граница скорости от устройства, м/с (540 км/ч)
MAX_SPEED_MPS: float = 150.0

# Точность хранения координат (знаков после запятой)
COORDINATE_PRECISION: int = 6
