# src/shared/__init__.py
"""
Общий код сервиса.

Модули:
- events: формат кадров WebSocket
- models: Pydantic-модели трекинга и общие ответы API
"""

__all__: list[str] = []
