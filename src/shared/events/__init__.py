# src/shared/events/__init__.py
"""
Форматы сообщений realtime протокола.
"""

from src.shared.events.frames import (
    FrameDecodeError,
    WsFrame,
    make_frame,
    parse_frame,
)

__all__ = [
    "FrameDecodeError",
    "WsFrame",
    "make_frame",
    "parse_frame",
]
