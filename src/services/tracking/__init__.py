# src/services/tracking/__init__.py
"""
Сервис трекинга автобусов.

Приём координат и событий рейса от водителей по WebSocket,
хранение истории и статусов по автобусам, рассылка остальным клиентам.
"""
