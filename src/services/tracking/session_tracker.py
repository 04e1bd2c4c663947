# src/services/tracking/session_tracker.py
"""
Учёт того, какое соединение сейчас ведёт какой автобус.
"""

from __future__ import annotations


class SessionTracker:
    """
    Соединение → автобусы, которые оно заявило как свои.

    Автобусом владеет последнее соединение, приславшее по нему событие
    (last-writer-wins). Изменяется только роутером событий.
    """

    def __init__(self) -> None:
        # connection_id -> bus_ids
        self._claims: dict[str, set[str]] = {}
        # bus_id -> connection_id
        self._owners: dict[str, str] = {}

    def claim(self, connection_id: str, bus_id: str) -> str | None:
        """
        Закрепить автобус за соединением.

        Returns:
            Предыдущий владелец, если автобус перешёл от другого соединения
        """
        previous = self._owners.get(bus_id)
        if previous is not None and previous != connection_id:
            claims = self._claims.get(previous)
            if claims is not None:
                claims.discard(bus_id)
                if not claims:
                    del self._claims[previous]

        self._owners[bus_id] = connection_id
        self._claims.setdefault(connection_id, set()).add(bus_id)
        return previous if previous != connection_id else None

    def release(self, connection_id: str) -> set[str]:
        """
        Снять все закрепления соединения.

        Повторный вызов для того же соединения возвращает пустое множество.
        """
        bus_ids = self._claims.pop(connection_id, set())
        for bus_id in bus_ids:
            if self._owners.get(bus_id) == connection_id:
                del self._owners[bus_id]
        return bus_ids

    def owner_of(self, bus_id: str) -> str | None:
        """Соединение, которое сейчас ведёт автобус."""
        return self._owners.get(bus_id)

    def buses_of(self, connection_id: str) -> set[str]:
        """Автобусы, закреплённые за соединением."""
        return set(self._claims.get(connection_id, set()))

    def get_stats(self) -> dict[str, int]:
        """Статистика закреплений."""
        return {
            "driver_connections": len(self._claims),
            "claimed_buses": len(self._owners),
        }
