#!/usr/bin/env python3
# main.py
"""
Главная точка входа сервера трекинга автобусов.
Запускает сервер или только применяет схему БД в зависимости от аргументов.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg
from src.infra.database import init_db, close_db


# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []

VALID_MODES = ("tracking", "init_db")


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def run_tracking() -> None:
    """Запускает сервер трекинга (WebSocket + REST)."""
    import uvicorn

    host = settings.deployment.TRACKING_HOST
    port = settings.deployment.TRACKING_PORT
    await log_info(
        f"Запуск сервера трекинга на {host}:{port} "
        f"(хранилище: {settings.storage.STORAGE_BACKEND})...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.tracking.app:app",
        host=host,
        port=port,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Сервер трекинга: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_init_db() -> None:
    """Применяет схему БД и завершает работу."""
    await init_db()
    await close_db()
    await log_info("Схема БД актуальна", type_msg=TypeMsg.INFO)


async def main(mode: str = "tracking") -> None:
    """
    Главная функция запуска.

    Args:
        mode: Режим запуска (tracking, init_db)
    """
    setup_logging()
    setup_signal_handlers()

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION} — запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    if mode == "init_db":
        coro = run_init_db()
    else:
        coro = run_tracking()

    task = asyncio.create_task(coro)
    _running_tasks.append(task)
    try:
        await task
    except asyncio.CancelledError:
        await log_info("Остановка по сигналу", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка в режиме '{mode}': {e}", exc_info=True)
        raise


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
Bus Tracking Server — realtime трекинг автобусов

Использование:
    python main.py [mode]

Режимы:
    tracking    — сервер трекинга: WebSocket /ws и REST API (по умолчанию)
    init_db     — применить migrations/init.sql и выйти

Переменные окружения:
    PORT, TRACKING_HOST       — адрес сервера
    STORAGE_BACKEND           — postgres | memory
    DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD

Примеры:
    python main.py
    STORAGE_BACKEND=memory python main.py tracking
    python main.py init_db
    """)


if __name__ == "__main__":
    mode = "tracking"

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        elif arg in VALID_MODES:
            mode = arg
        else:
            print(f"Ошибка: неизвестный режим '{arg}'")
            print_usage()
            sys.exit(1)

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
