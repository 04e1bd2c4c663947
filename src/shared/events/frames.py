# src/shared/events/frames.py
"""
Формат кадров WebSocket протокола.

Каждый кадр — JSON объект {"event": "<имя>", "data": {...}}.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field, ValidationError


class WsFrame(BaseModel):
    """Кадр WebSocket протокола."""

    event: str = Field(..., min_length=1)
    data: Any = None

    def to_wire(self) -> dict[str, Any]:
        """Словарь для send_json."""
        return {"event": self.event, "data": self.data}


class FrameDecodeError(ValueError):
    """Кадр не является корректным JSON объектом протокола."""


def make_frame(event: str, data: Any = None) -> dict[str, Any]:
    """Собирает исходящий кадр."""
    return WsFrame(event=str(event), data=data).to_wire()


def parse_frame(raw: str | bytes) -> WsFrame:
    """
    Разбирает входящий кадр.

    Raises:
        FrameDecodeError: невалидный JSON или отсутствует поле event
    """
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise FrameDecodeError(f"Invalid JSON frame: {e}") from e

    if not isinstance(decoded, dict):
        raise FrameDecodeError("Frame must be a JSON object")

    try:
        return WsFrame.model_validate(decoded)
    except ValidationError as e:
        raise FrameDecodeError(f"Invalid frame: {e.errors()[0]['msg']}") from e
