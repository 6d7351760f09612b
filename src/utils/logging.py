"""Shared logging configuration and logger factory.

Every module logs snake_case event names with their payload in ``extra``.
The console shows those fields as ``key=value`` pairs; the rotating file under
``log/`` (or ``$PHOTO_GROUPING_LOG_DIR``) gets one JSON object per line.
``$PHOTO_GROUPING_LOG_LEVEL`` sets the root level, INFO by default.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import date, datetime
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

import numpy as np

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_LOG_ROOT = Path(os.getenv("PHOTO_GROUPING_LOG_DIR", str(_PROJECT_ROOT / "log")))
_LOG_FILE_NAME = "photo_grouping.log"
_LINE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_STANDARD_KEYS = frozenset(logging.makeLogRecord({}).__dict__.keys()) | {"message", "asctime", "stack_info"}


def _event_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields a caller attached through ``extra=``."""

    return {key: value for key, value in record.__dict__.items() if key not in _STANDARD_KEYS}


def _plain_value(value: Any) -> Any:
    """Map numpy, enum, path and datetime values onto JSON-native types."""

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


class _StructuredFormatter(logging.Formatter):
    """Formatter that renders records as single-line JSON objects (JSONL-friendly)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload.update(_event_fields(record))
        return json.dumps(payload, ensure_ascii=False, sort_keys=True, default=_plain_value)


class _ConsoleFormatter(logging.Formatter):
    """Formatter for console output that renders ``extra`` fields as key=value pairs.

    ``session_id`` leads the pairs so interleaved sessions stay readable.
    """

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = _event_fields(record)
        if not fields:
            return base

        session_id = fields.pop("session_id", None)
        parts = [f"session_id={session_id!r}"] if session_id is not None else []
        for key, value in sorted(fields.items()):
            if not isinstance(value, (str, int, float, bool, type(None))):
                value = _plain_value(value)
            parts.append(f"{key}={value!r}")
        return f"{base} | " + " ".join(parts)


def _resolve_level() -> int:
    level = logging.getLevelName(os.getenv("PHOTO_GROUPING_LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def _configure_root_logger() -> None:
    """Configure the root logger with console and file handlers if needed."""

    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(_resolve_level())

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(_ConsoleFormatter(_LINE_FORMAT))
    root.addHandler(console_handler)

    try:
        _LOG_ROOT.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            _LOG_ROOT / _LOG_FILE_NAME,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
    except OSError as exc:
        # Read-only checkouts still get console logging.
        root.warning("file_logging_unavailable", extra={"log_root": str(_LOG_ROOT), "error": str(exc)})
        return

    file_handler.setFormatter(_StructuredFormatter(_LINE_FORMAT))
    root.addHandler(file_handler)


class _MergingAdapter(logging.LoggerAdapter):
    """Adapter whose base ``extra`` is combined with, not replaced by, per-call ``extra``."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str, extra: Dict[str, Any] | None = None) -> logging.LoggerAdapter:
    """Return a structured logger adapter for the given name.

    The first call configures the root handlers. ``extra`` is attached to
    every record emitted through the returned adapter, for example a
    ``component`` tag.
    """

    _configure_root_logger()
    return _MergingAdapter(logging.getLogger(name), extra or {})


__all__ = ["get_logger"]
