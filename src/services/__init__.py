# src/services/__init__.py
"""
Сервисы приложения.

Архитектура:
- Сервис трекинга — FastAPI-приложение с WebSocket и REST API
- PostgreSQL с отдельными таблицами истории и статуса на каждый автобус
- Хранилище в памяти для локальной разработки и тестов

Сервисы:
- tracking: приём координат и событий рейса, статусы, рассылка
"""

__all__: list[str] = []
