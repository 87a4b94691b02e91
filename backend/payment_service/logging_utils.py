from __future__ import annotations

import json
import logging
from logging.config import dictConfig
from pathlib import Path
from typing import Any, Dict

from .config import settings

METRICS_LOGGER = "payment_service.metrics"
DEAD_LETTER_LOGGER = "payment_service.dead_letter"

_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
}


class JSONFormatter(logging.Formatter):
    """
    Render log records as JSON strings, preserving structured extras.
    """

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting only
        data = {
            "level": record.levelname.lower(),
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": self.formatTime(record, self.datefmt),
        }
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extras:
            data["context"] = extras
        return json.dumps(data, ensure_ascii=False, default=str)


class RecordFormatter(logging.Formatter):
    """Emit the record's structured extras as a flat JSON object (metrics, dead letters)."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {"timestamp": self.formatTime(record, self.datefmt)}
        data.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        )
        data.setdefault("message", record.getMessage())
        return json.dumps(data, ensure_ascii=False, default=str)


class ExactLevelFilter(logging.Filter):
    def __init__(self, level: str = "WARNING") -> None:
        super().__init__()
        self.levelno = logging.getLevelName(level)

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno == self.levelno


def setup_logging(storage_dir: str | None = None, level: str | None = None) -> None:
    """
    Configure global logging to emit JSON lines on stdout and NDJSON files in the
    storage directory (errors, warnings, metrics, dead letters).
    Safe to call multiple times.
    """

    storage = Path(storage_dir or settings.storage_dir)
    storage.mkdir(parents=True, exist_ok=True)
    root_level = (level or settings.log_level).upper()

    def _file_handler(
        name: str, formatter: str, level: str = "DEBUG", filters: list[str] | None = None
    ) -> Dict[str, Any]:
        return {
            "class": "logging.FileHandler",
            "filename": str(storage / name),
            "encoding": "utf-8",
            "formatter": formatter,
            "level": level,
            "filters": filters or [],
        }

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {
                "()": "payment_service.logging_context.RequestContextFilter",
            },
            "warnings_only": {
                "()": "payment_service.logging_utils.ExactLevelFilter",
                "level": "WARNING",
            },
        },
        "formatters": {
            "json": {
                "()": "payment_service.logging_utils.JSONFormatter",
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            },
            "record": {
                "()": "payment_service.logging_utils.RecordFormatter",
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "level": root_level,
                "filters": ["request_context"],
            },
            "errors_file": _file_handler(
                "errors.log", "json", level="ERROR", filters=["request_context"]
            ),
            "warnings_file": _file_handler(
                "warnings.log",
                "json",
                level="WARNING",
                filters=["request_context", "warnings_only"],
            ),
            "metrics_file": _file_handler("metrics.log", "record"),
            "dead_letter_file": _file_handler("dead_letters.log", "record"),
        },
        "loggers": {
            METRICS_LOGGER: {
                "handlers": ["metrics_file"],
                "level": "INFO",
                "propagate": False,
            },
            DEAD_LETTER_LOGGER: {
                "handlers": ["dead_letter_file", "default"],
                "level": "INFO",
                "propagate": False,
            },
        },
        "root": {
            "handlers": ["default", "errors_file", "warnings_file"],
            "level": root_level,
        },
    }
    dictConfig(config)
