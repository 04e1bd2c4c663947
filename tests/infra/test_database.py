# tests/infra/test_database.py
"""
Тесты для менеджера базы данных (src/infra/database.py).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

import src.infra.database as database_module
from src.infra.database import (
    DatabaseManager,
    _init_schema,
    close_db,
    get_db,
    init_db,
    retry_on_connection_error,
)


@pytest.fixture(autouse=True)
def silence_logs():
    """Логирование в этих тестах не проверяется."""
    with patch("src.infra.database.log_info", new_callable=AsyncMock), \
            patch("src.infra.database.log_warning", new_callable=AsyncMock), \
            patch("src.infra.database.log_error", new_callable=AsyncMock) as mock_error:
        yield mock_error


@pytest.fixture
def fresh_manager(monkeypatch: pytest.MonkeyPatch) -> DatabaseManager:
    """Новый экземпляр синглтона без пула."""
    monkeypatch.setattr(DatabaseManager, "_instance", None)
    monkeypatch.setattr(database_module, "_db_manager", None)
    return DatabaseManager()


def make_pool(connection: MagicMock) -> MagicMock:
    """Пул, у которого acquire() отдаёт заданное соединение."""
    @asynccontextmanager
    async def acquire():
        yield connection

    pool = MagicMock()
    pool.acquire = acquire
    pool.close = AsyncMock()
    return pool


def make_connection() -> MagicMock:
    @asynccontextmanager
    async def transaction():
        yield

    connection = MagicMock()
    connection.execute = AsyncMock(return_value="OK")
    connection.fetch = AsyncMock(return_value=[])
    connection.fetchrow = AsyncMock(return_value=None)
    connection.fetchval = AsyncMock(return_value=1)
    connection.transaction = transaction
    return connection


class TestRetryOnConnectionError:
    """Тесты для декоратора retry_on_connection_error."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self) -> None:
        @retry_on_connection_error(max_attempts=3, delay=0.01)
        async def successful_func():
            return "success"

        assert await successful_func() == "success"

    @pytest.mark.asyncio
    async def test_retry_then_success(self) -> None:
        """Повтор после ConnectionRefusedError."""
        call_count = 0

        @retry_on_connection_error(max_attempts=3, delay=0.01)
        async def failing_then_success():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise ConnectionRefusedError("Connection refused")
            return "success"

        assert await failing_then_success() == "success"
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_max_attempts_exceeded(self, silence_logs: AsyncMock) -> None:
        call_count = 0

        @retry_on_connection_error(max_attempts=2, delay=0.01)
        async def always_failing():
            nonlocal call_count
            call_count += 1
            raise asyncpg.InterfaceError("pool is closed")

        with pytest.raises(asyncpg.InterfaceError):
            await always_failing()

        assert call_count == 2
        silence_logs.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_query_error_not_retried(self) -> None:
        """Ошибки запроса (не подключения) пробрасываются сразу."""
        call_count = 0

        @retry_on_connection_error(max_attempts=3, delay=0.01)
        async def bad_query():
            nonlocal call_count
            call_count += 1
            raise asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(asyncpg.UniqueViolationError):
            await bad_query()

        assert call_count == 1


class TestDatabaseManager:
    """Тесты DatabaseManager."""

    def test_singleton(self, fresh_manager: DatabaseManager) -> None:
        assert DatabaseManager() is fresh_manager
        assert get_db() is fresh_manager

    def test_pool_not_initialized(self, fresh_manager: DatabaseManager) -> None:
        assert fresh_manager.is_connected is False
        with pytest.raises(RuntimeError):
            _ = fresh_manager.pool

    @pytest.mark.asyncio
    async def test_connect_creates_pool_once(self, fresh_manager: DatabaseManager) -> None:
        pool = make_pool(make_connection())

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)) as mock_create:
            await fresh_manager.connect("postgresql://u:p@h:5432/db", min_size=1, max_size=3)
            await fresh_manager.connect("postgresql://u:p@h:5432/db")

        mock_create.assert_awaited_once()
        assert mock_create.call_args.kwargs["max_size"] == 3
        assert fresh_manager.pool is pool

    @pytest.mark.asyncio
    async def test_disconnect(self, fresh_manager: DatabaseManager) -> None:
        pool = make_pool(make_connection())
        fresh_manager._pool = pool

        await fresh_manager.disconnect()

        pool.close.assert_awaited_once()
        assert fresh_manager.is_connected is False

    @pytest.mark.asyncio
    async def test_query_helpers(self, fresh_manager: DatabaseManager) -> None:
        connection = make_connection()
        connection.fetchrow.return_value = {"bus_id": "IITJ_BUS_01"}
        fresh_manager._pool = make_pool(connection)

        assert await fresh_manager.execute("DELETE FROM bus1_status") == "OK"
        assert await fresh_manager.fetch("SELECT * FROM bus1_locations") == []
        assert await fresh_manager.fetchrow("SELECT * FROM bus1_status") == {"bus_id": "IITJ_BUS_01"}
        assert await fresh_manager.fetchval("SELECT 1") == 1

    @pytest.mark.asyncio
    async def test_health_check(self, fresh_manager: DatabaseManager) -> None:
        fresh_manager._pool = make_pool(make_connection())

        assert await fresh_manager.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_without_pool(self, fresh_manager: DatabaseManager) -> None:
        assert await fresh_manager.health_check() is False


class TestSchema:
    """Применение схемы и init_db/close_db."""

    @pytest.mark.asyncio
    async def test_init_schema_uses_advisory_lock(self, fresh_manager: DatabaseManager) -> None:
        connection = make_connection()
        fresh_manager._pool = make_pool(connection)

        await _init_schema(fresh_manager)

        first_call = connection.execute.await_args_list[0]
        assert first_call.args[0] == "SELECT pg_advisory_xact_lock($1)"
        schema_sql = connection.execute.await_args_list[1].args[0]
        assert "bus1_locations" in schema_sql
        assert "bus2_status" in schema_sql

    @pytest.mark.asyncio
    async def test_init_schema_missing_file(
        self,
        fresh_manager: DatabaseManager,
        tmp_path: Path,
        silence_logs: AsyncMock,
    ) -> None:
        connection = make_connection()
        fresh_manager._pool = make_pool(connection)

        with patch("src.config.loader.get_project_root", return_value=tmp_path):
            await _init_schema(fresh_manager)

        connection.execute.assert_not_called()
        silence_logs.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_init_and_close(self, fresh_manager: DatabaseManager) -> None:
        pool = make_pool(make_connection())

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            db = await init_db()

        assert db is fresh_manager
        assert db.is_connected

        await close_db()

        pool.close.assert_awaited_once()
        assert not db.is_connected
