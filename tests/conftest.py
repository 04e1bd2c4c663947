# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ["STORAGE_BACKEND"] = "memory"

from src.services.tracking.registry import VehicleRegistry  # noqa: E402
from src.services.tracking.router import EventRouter  # noqa: E402
from src.services.tracking.session_tracker import SessionTracker  # noqa: E402


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "bus_tracker_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "TRACKING_HOST": "127.0.0.1",
        "TRACKING_PORT": 3100,
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "LOG_MAX_BYTES": 1024,
        "LOG_BACKUP_COUNT": 2,
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "bus_tracker_test",
        "DB_USER": "postgres",
        "DB_PASSWORD": "test_password",
        "DB_MIN_POOL_SIZE": 1,
        "DB_MAX_POOL_SIZE": 5,
        "DB_COMMAND_TIMEOUT": 30,
        "DB_RETRY_ATTEMPTS": 2,
        "DB_RETRY_DELAY": 0.5,
        "STORAGE_BACKEND": "postgres",
        "LOCATIONS_DEFAULT_LIMIT": 20,
        "LOCATIONS_MAX_LIMIT": 200,
        "BROADCAST_SEND_TIMEOUT": 2.5,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


class RecordingFanout:
    """Рассылка, которая только запоминает отправленное."""

    def __init__(self) -> None:
        self.broadcasts: list[tuple[str, Any, str | None]] = []
        self.personal: list[tuple[str, dict[str, Any]]] = []

    async def broadcast(self, event: str, payload: Any, exclude: str | None = None) -> int:
        self.broadcasts.append((str(event), payload, exclude))
        return 1

    async def send_personal(self, connection_id: str, message: dict[str, Any]) -> bool:
        self.personal.append((connection_id, message))
        return True

    def personal_events(self, connection_id: str) -> list[str]:
        return [msg["event"] for cid, msg in self.personal if cid == connection_id]

    def last_ack(self, connection_id: str) -> dict[str, Any]:
        acks = [
            msg["data"] for cid, msg in self.personal
            if cid == connection_id and msg["event"] == "locationSaved"
        ]
        return acks[-1]


# =============================================================================
# ФИКСТУРЫ ТРЕКИНГА
# =============================================================================

@pytest.fixture
def registry() -> VehicleRegistry:
    """Реестр с хранилищами в памяти."""
    return VehicleRegistry.in_memory(default_limit=50, max_limit=500)


@pytest.fixture
def sessions() -> SessionTracker:
    return SessionTracker()


@pytest.fixture
def fanout() -> RecordingFanout:
    return RecordingFanout()


@pytest.fixture
def router(registry: VehicleRegistry, sessions: SessionTracker, fanout: RecordingFanout) -> EventRouter:
    """Роутер событий поверх хранилищ в памяти."""
    return EventRouter(registry, sessions, fanout)


@pytest.fixture
def location_data() -> dict[str, Any]:
    """Данные locationUpdate в том виде, как их шлёт приложение водителя."""
    return {
        "busId": "IITJ_BUS_01",
        "latitude": 26.4710001234,
        "longitude": 73.1134009876,
        "speed": 10.0,
        "heading": 90.0,
        "timestamp": "2024-03-01T08:30:00Z",
        "accuracy": 5.0,
    }
