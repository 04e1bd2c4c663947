# tests/common/test_logger.py
"""
Unit тесты для модуля логирования (src/common/logger.py).
"""

import json
import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

import src.common.logger as logger_module
from src.common.constants import TypeMsg
from src.common.logger import (
    DEFAULT_LOGGER_NAME,
    ColoredFormatter,
    JsonFormatter,
    _get_caller_info,
    _loggers,
    _read_logging_settings,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
    setup_logging,
)


def make_record(level: int = logging.INFO, msg: str = "Test message", exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    record.module = "test_module"
    record.funcName = "test_function"
    return record


@pytest.fixture
def clean_loggers():
    """Очистка кэша логгеров и их хендлеров."""
    _loggers.clear()
    for name in ("test_logger", "test_file_logger", DEFAULT_LOGGER_NAME):
        logging.getLogger(name).handlers.clear()
    yield
    _loggers.clear()


class TestJsonFormatter:
    """Тесты для JsonFormatter."""

    def test_format_basic_record(self) -> None:
        result = json.loads(JsonFormatter().format(make_record()))

        assert result["level"] == "INFO"
        assert result["message"] == "Test message"
        assert result["module"] == "test_module"
        assert result["function"] == "test_function"
        assert result["line"] == 10
        assert result["timestamp"].endswith("Z")

    def test_format_with_extra_data(self) -> None:
        record = make_record(logging.WARNING)
        record.extra_data = {"bus_id": "IITJ_BUS_01", "connection_id": "abc"}

        result = json.loads(JsonFormatter().format(record))

        assert result["extra"] == {"bus_id": "IITJ_BUS_01", "connection_id": "abc"}

    def test_format_non_serializable_extra(self) -> None:
        """Несериализуемые значения приводятся к строке."""
        record = make_record()
        record.extra_data = {"path": Path("logs/app.log")}

        result = json.loads(JsonFormatter().format(record))

        assert result["extra"]["path"] == str(Path("logs/app.log"))

    def test_format_with_exception(self) -> None:
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        result = json.loads(JsonFormatter().format(make_record(logging.ERROR, exc_info=exc_info)))

        assert "ValueError" in result["exception"]
        assert "Test exception" in result["exception"]


class TestColoredFormatter:
    """Тесты для ColoredFormatter."""

    def test_format_basic_record(self) -> None:
        result = ColoredFormatter().format(make_record())

        assert "[INFO]" in result
        assert "Test message" in result
        assert "\033[" in result

    def test_format_with_caller_info(self) -> None:
        record = make_record(logging.DEBUG)
        record.extra_data = {
            "caller_function": "handle_location_update",
            "caller_module": "src.services.tracking.router",
            "caller_file": "router.py",
            "caller_line": 42,
        }

        result = ColoredFormatter().format(record)

        assert "src.services.tracking.router.handle_location_update()" in result
        assert "router.py:42" in result


class TestReadLoggingSettings:
    """Тесты чтения секции logging."""

    @patch("src.config.settings")
    def test_uses_settings(self, mock_settings: MagicMock) -> None:
        mock_settings.logging.LOG_LEVEL = "WARNING"
        mock_settings.logging.LOG_FORMAT = "json"
        mock_settings.logging.LOG_TO_FILE = True
        mock_settings.logging.LOG_FILE_PATH = "logs/test.log"
        mock_settings.logging.LOG_MAX_BYTES = 1024
        mock_settings.logging.LOG_BACKUP_COUNT = 2

        config = _read_logging_settings()

        assert config["level"] == "WARNING"
        assert config["format"] == "json"
        assert config["to_file"] is True
        assert config["max_bytes"] == 1024

    @patch("src.config.settings")
    def test_wrong_types_fall_back(self, mock_settings: MagicMock) -> None:
        """Значения неподходящего типа (MagicMock) заменяются значениями по умолчанию."""
        config = _read_logging_settings()

        assert config["level"] == "DEBUG"
        assert config["to_file"] is False
        assert config["backup_count"] == 5

    def test_missing_config_module(self) -> None:
        with patch.dict("sys.modules", {"src.config": None}):
            config = _read_logging_settings()

        assert config["format"] == "colored"


class TestGetLogger:
    """Тесты для get_logger."""

    def test_creates_logger(self, clean_loggers) -> None:
        logger = get_logger("test_logger")

        assert logger.name == "test_logger"
        assert len(logger.handlers) >= 1
        assert logger.propagate is False

    def test_returns_cached_logger(self, clean_loggers) -> None:
        assert get_logger("test_logger") is get_logger("test_logger")

    def test_file_handlers(self, clean_loggers, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """При LOG_TO_FILE пишутся основной лог и отдельный error.log."""
        log_file = tmp_path / "nested" / "app.log"
        monkeypatch.setattr(logger_module, "_FILE_HANDLER", None)
        monkeypatch.setattr(logger_module, "_ERROR_HANDLER", None)
        monkeypatch.setattr(
            logger_module,
            "_read_logging_settings",
            lambda: {
                "level": "INFO",
                "format": "json",
                "to_file": True,
                "file_path": str(log_file),
                "max_bytes": 1024,
                "backup_count": 1,
            },
        )

        logger = get_logger("test_file_logger")
        logger.error("boom")
        for handler in logger.handlers:
            handler.flush()

        assert log_file.exists()
        assert (log_file.parent / "error.log").exists()
        assert "boom" in (log_file.parent / "error.log").read_text(encoding="utf-8")

        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()


class TestSetupLogging:
    """Тесты для setup_logging."""

    def test_initializes_default_logger(self, clean_loggers, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", False)

        setup_logging()

        assert DEFAULT_LOGGER_NAME in _loggers
        assert logging.getLogger("asyncpg").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_idempotent(self, clean_loggers, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", True)

        setup_logging()

        assert DEFAULT_LOGGER_NAME not in _loggers


class TestGetCallerInfo:
    """Тесты для _get_caller_info."""

    def test_returns_direct_caller(self) -> None:
        def some_function():
            return _get_caller_info()

        info = some_function()

        assert info["caller_function"] == "some_function"
        assert info["caller_file"] == "test_logger.py"

    @pytest.mark.asyncio
    async def test_skips_logger_frames(self) -> None:
        """log_warning → log_info → _get_caller_info: вызывающий — тест."""
        with patch.object(logging.Logger, "warning") as mock_warning:
            await log_warning("Warning message")

        extra = mock_warning.call_args.kwargs["extra"]["extra_data"]
        assert extra["caller_function"] == "test_skips_logger_frames"


class TestLogFunctions:
    """Тесты для асинхронных функций логирования."""

    @pytest.mark.asyncio
    async def test_log_info_basic(self) -> None:
        with patch.object(logging.Logger, "info") as mock_info:
            await log_info("Test message")

        mock_info.assert_called_once()
        assert mock_info.call_args.args[0] == "Test message"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "type_msg, method",
        [
            (TypeMsg.DEBUG, "debug"),
            (TypeMsg.WARNING, "warning"),
            (TypeMsg.ERROR, "error"),
            (TypeMsg.CRITICAL, "critical"),
        ],
    )
    async def test_log_info_with_type_msg(self, type_msg: TypeMsg, method: str) -> None:
        with patch.object(logging.Logger, method) as mock_method:
            await log_info("Message", type_msg=type_msg)

        mock_method.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_info_with_extra(self) -> None:
        with patch.object(logging.Logger, "info") as mock_info:
            await log_info("Test message", extra={"bus_id": "IITJ_BUS_01"})

        extra_data = mock_info.call_args.kwargs["extra"]["extra_data"]
        assert extra_data["bus_id"] == "IITJ_BUS_01"

    @pytest.mark.asyncio
    async def test_log_debug(self) -> None:
        with patch.object(logging.Logger, "debug") as mock_debug:
            await log_debug("Debug message")

        mock_debug.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_error_with_exc_info(self) -> None:
        with patch.object(logging.Logger, "error") as mock_error:
            await log_error("Error message", exc_info=True)

        mock_error.assert_called_once()
        assert mock_error.call_args.kwargs.get("exc_info") is True

    @pytest.mark.asyncio
    async def test_log_info_with_custom_logger_name(self) -> None:
        with patch("src.common.logger.get_logger") as mock_get_logger:
            mock_logger = MagicMock()
            mock_get_logger.return_value = mock_logger

            await log_info("Test message", logger_name="custom_logger")

        mock_get_logger.assert_called_once_with("custom_logger")
        mock_logger.info.assert_called_once()
