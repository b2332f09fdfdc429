# src/common/logger.py
"""
Модуль структурированного логирования.
Поддерживает JSON и цветной текстовый формат, ротацию файлов и отдельный лог ошибок.
"""

from __future__ import annotations

import inspect
import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from src.common.constants import TypeMsg


DEFAULT_LOGGER_NAME = "ride_match"

# Общие файловые хендлеры (один на процесс)
_GLOBAL_FILE_HANDLER: logging.Handler | None = None
_GLOBAL_ERROR_HANDLER: logging.Handler | None = None

_LOGGING_INITIALIZED: bool = False

# Сколько архивных файлов хранит ротация
LOG_BACKUP_COUNT = 5


# =============================================================================
# ФОРМАТТЕРЫ
# =============================================================================

class JsonFormatter(logging.Formatter):
    """Форматтер для JSON логов."""

    def format(self, record: logging.LogRecord) -> str:
        """Форматирует запись лога в JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Цветной форматтер для консоли (разработка)."""

    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }
    RESET = "\033[0m"
    GRAY = "\033[90m"

    def format(self, record: logging.LogRecord) -> str:
        """Форматирует запись лога с цветом."""
        color = self.COLORS.get(record.levelname, self.GRAY)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        caller_info = ""
        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            caller_func = extra_data.get("caller_function")
            if caller_func:
                caller_info = (
                    f" {self.GRAY}[{extra_data.get('caller_module')}.{caller_func}() "
                    f"{extra_data.get('caller_file')}:{extra_data.get('caller_line')}]{self.RESET}"
                )

        message = f"{timestamp} {color}[{record.levelname}]{self.RESET}{caller_info} {record.getMessage()}"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def _rotating_handler(path: Path, max_bytes: int, formatter: logging.Formatter) -> RotatingFileHandler:
    """Файловый хендлер с ротацией по размеру (директория создаётся при необходимости)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


# =============================================================================
# ЛОГГЕР
# =============================================================================

_loggers: dict[str, logging.Logger] = {}


def setup_logging() -> None:
    """
    Инициализирует систему логирования.
    Идемпотентна: повторные вызовы ничего не делают.
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED:
        return

    _LOGGING_INITIALIZED = True

    get_logger(DEFAULT_LOGGER_NAME)

    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("aio_pika").setLevel(logging.WARNING)
    logging.getLogger("aiormq").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _read_logging_settings() -> dict[str, Any]:
    """Читает настройки логирования, не падая при отсутствии конфига."""
    defaults: dict[str, Any] = {
        "level": "DEBUG",
        "format": "colored",
        "to_file": False,
        "file_path": "logs/app.log",
        "max_bytes": 10485760,
    }
    try:
        from src.config import settings
    except ImportError:
        return defaults

    section = getattr(settings, "logging", None)
    if section is None:
        return defaults

    values = {
        "level": section.LOG_LEVEL,
        "format": section.LOG_FORMAT,
        "to_file": section.LOG_TO_FILE,
        "file_path": section.LOG_FILE_PATH,
        "max_bytes": section.LOG_MAX_BYTES,
    }
    # Защита от MagicMock в тестах
    for key, default in defaults.items():
        if not isinstance(values[key], type(default)):
            values[key] = default
    return values


def _make_formatter(log_format: str) -> logging.Formatter:
    return JsonFormatter() if log_format == "json" else ColoredFormatter()


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Возвращает настроенный логгер.
    Кэширует логгеры, чтобы не дублировать хендлеры.

    Args:
        name: Имя логгера

    Returns:
        Настроенный логгер
    """
    if name in _loggers:
        return _loggers[name]

    conf = _read_logging_settings()

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, conf["level"].upper(), logging.DEBUG))

    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(_make_formatter(conf["format"]))
    logger.addHandler(console_handler)

    if conf["to_file"]:
        global _GLOBAL_FILE_HANDLER, _GLOBAL_ERROR_HANDLER
        log_path = Path(conf["file_path"])
        formatter = _make_formatter(conf["format"])

        # Процессы worker и api пишут в разные файлы
        component = os.getenv("COMPONENT_MODE")
        if component:
            log_path = log_path.with_name(f"{log_path.stem}_{component}{log_path.suffix}")

        if _GLOBAL_FILE_HANDLER is None:
            _GLOBAL_FILE_HANDLER = _rotating_handler(log_path, conf["max_bytes"], formatter)
        if _GLOBAL_ERROR_HANDLER is None:
            _GLOBAL_ERROR_HANDLER = _rotating_handler(
                log_path.with_name(f"error{log_path.suffix}"), conf["max_bytes"], formatter
            )
            _GLOBAL_ERROR_HANDLER.setLevel(logging.ERROR)

        logger.addHandler(_GLOBAL_FILE_HANDLER)
        logger.addHandler(_GLOBAL_ERROR_HANDLER)

    logger.propagate = False

    _loggers[name] = logger
    return logger


# =============================================================================
# ВСПОМОГАТЕЛЬНЫЕ ФУНКЦИИ ЛОГИРОВАНИЯ
# =============================================================================

def _get_caller_info() -> dict[str, Any]:
    """
    Возвращает информацию о коде, вызвавшем функцию логирования.

    Стек: [0] _get_caller_info, [1] log_*, [2] вызывающий код.
    """
    frame = inspect.currentframe()
    caller_frame = None
    try:
        if frame is None:
            return {}

        caller_frame = frame.f_back
        if caller_frame is not None:
            caller_frame = caller_frame.f_back
        # log_debug/log_warning проксируют в log_info
        if caller_frame is not None and caller_frame.f_code.co_name in ("log_debug", "log_warning"):
            caller_frame = caller_frame.f_back

        if caller_frame is None:
            return {}

        frame_info = inspect.getframeinfo(caller_frame)
        caller_module = inspect.getmodule(caller_frame)

        return {
            "caller_function": caller_frame.f_code.co_name,
            "caller_module": caller_module.__name__ if caller_module else "unknown",
            "caller_file": frame_info.filename.split("/")[-1] if frame_info.filename else "unknown",
            "caller_line": frame_info.lineno,
        }
    except Exception:
        return {}
    finally:
        # Освобождаем ссылки на фреймы
        del frame
        del caller_frame


async def log_info(
    message: str,
    *,
    type_msg: TypeMsg = TypeMsg.INFO,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Асинхронное логирование с уровнем из type_msg.

    Args:
        message: Сообщение для логирования
        type_msg: Уровень сообщения
        logger_name: Имя логгера
        extra: Дополнительные данные
    """
    logger = get_logger(logger_name)
    record_extra = {"extra_data": {**_get_caller_info(), **(extra or {})}}

    match type_msg:
        case TypeMsg.DEBUG:
            logger.debug(message, extra=record_extra)
        case TypeMsg.WARNING:
            logger.warning(message, extra=record_extra)
        case TypeMsg.ERROR:
            logger.error(message, extra=record_extra)
        case TypeMsg.CRITICAL:
            logger.critical(message, extra=record_extra)
        case _:
            logger.info(message, extra=record_extra)


async def log_debug(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """Логирование DEBUG уровня."""
    await log_info(message, type_msg=TypeMsg.DEBUG, logger_name=logger_name, extra=extra)


async def log_warning(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """Логирование WARNING уровня."""
    await log_info(message, type_msg=TypeMsg.WARNING, logger_name=logger_name, extra=extra)


async def log_error(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
    exc_info: bool = False,
) -> None:
    """
    Логирование ERROR уровня.

    Args:
        message: Сообщение об ошибке
        logger_name: Имя логгера
        extra: Дополнительные данные
        exc_info: Включать ли трейсбек исключения
    """
    logger = get_logger(logger_name)
    record_extra = {"extra_data": {**_get_caller_info(), **(extra or {})}}
    logger.error(message, extra=record_extra, exc_info=exc_info)
