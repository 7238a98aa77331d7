"""Structured, category-filtered event logging for tool calls and jobs.

Events are written through the standard :mod:`logging` machinery. Each
destination (``stderr``, ``stdout`` or a file path) gets one dedicated,
non-propagating logger whose handler renders either JSON lines or a compact
human-readable line. A :class:`StructuredLogger` decides per event whether
its level and category are enabled before handing it to that sink.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dynamic_mcp.config import LoggingSettings
from dynamic_mcp.sanitization import sanitize_payload

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}
_LEVEL_NAMES = {value: key for key, value in _LEVELS.items()}


class JsonLineFormatter(logging.Formatter):
    """One JSON object per event."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname.lower()),
            "category": getattr(record, "category", None),
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "fields", {}))
        return json.dumps(entry, ensure_ascii=False, default=str)


class PrettyLineFormatter(logging.Formatter):
    """``<time> <LEVEL> [<category>] <message> key=value ...``"""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC).strftime("%H:%M:%S.%f")[:-3]
        level = _LEVEL_NAMES.get(record.levelno, record.levelname.lower()).upper()
        category = getattr(record, "category", None) or "-"
        fields = getattr(record, "fields", {})
        rendered_fields = " ".join(
            f"{key}={_render_value(value)}" for key, value in fields.items() if value is not None
        )
        line = f"{timestamp} {level:<5} [{category}] {record.getMessage()}"
        return f"{line} {rendered_fields}" if rendered_fields else line


class StructuredLogger:
    """Category-aware event logger bound to a fixed context (server, tool)."""

    def __init__(
        self,
        settings: LoggingSettings,
        sink: logging.Logger,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.settings = settings
        self._sink = sink
        self._context = dict(context or {})
        self._threshold = _LEVELS[settings.level]

    def is_enabled(self, level: str, category: str) -> bool:
        return (
            self.settings.enabled
            and category in self.settings.categories
            and _LEVELS[level] >= self._threshold
        )

    def log(
        self,
        level: str,
        category: str,
        message: str,
        fields: Mapping[str, Any] | None = None,
    ) -> None:
        if not self.is_enabled(level, category):
            return
        payload = {**self._context, **(fields or {})}
        self._sink.log(
            _LEVELS[level],
            message,
            extra={"category": category, "fields": payload},
        )

    def debug(self, category: str, message: str, fields: Mapping[str, Any] | None = None) -> None:
        self.log("debug", category, message, fields)

    def info(self, category: str, message: str, fields: Mapping[str, Any] | None = None) -> None:
        self.log("info", category, message, fields)

    def warning(
        self,
        category: str,
        message: str,
        fields: Mapping[str, Any] | None = None,
    ) -> None:
        self.log("warn", category, message, fields)

    def error(self, category: str, message: str, fields: Mapping[str, Any] | None = None) -> None:
        self.log("error", category, message, fields)

    def payload(self, text: str | None) -> str | None:
        """Loggable form of a prompt or output, or None when payloads are off."""

        if not self.settings.log_payloads or text is None:
            return None
        return sanitize_payload(text, max_chars=self.settings.payload_max_chars)


class LoggerFactory:
    """Builds structured loggers that share one handler per destination."""

    def __init__(self, *, server_name: str) -> None:
        self.server_name = server_name
        self._sinks: dict[tuple[str, str], logging.Logger] = {}
        self._owned: list[tuple[logging.Logger, logging.Handler]] = []

    def create(
        self,
        settings: LoggingSettings,
        **context: Any,
    ) -> StructuredLogger | None:
        """Return a logger for these settings, or None when logging is disabled."""

        if not settings.enabled:
            return None
        sink = self._sink_for(settings)
        return StructuredLogger(
            settings,
            sink,
            {"serverName": self.server_name, **context},
        )

    def close(self) -> None:
        """Detach and close the handlers this factory installed."""

        for sink, handler in self._owned:
            sink.removeHandler(handler)
            handler.close()
        self._owned.clear()
        self._sinks.clear()

    def _sink_for(self, settings: LoggingSettings) -> logging.Logger:
        key = (settings.destination, settings.format)
        sink = self._sinks.get(key)
        if sink is not None:
            return sink

        sink = logging.getLogger(sink_logger_name(settings.destination, settings.format))
        sink.setLevel(logging.DEBUG)
        sink.propagate = False
        if not sink.handlers:
            handler = _build_handler(settings.destination)
            handler.setFormatter(
                JsonLineFormatter() if settings.format == "json" else PrettyLineFormatter(),
            )
            sink.addHandler(handler)
            self._owned.append((sink, handler))
        self._sinks[key] = sink
        return sink


def sink_logger_name(destination: str, log_format: str) -> str:
    """Stable logger name for one destination and format."""

    digest = hashlib.sha1(f"{log_format}|{destination}".encode()).hexdigest()[:16]
    return f"{__name__}.sink.{digest}"


def _build_handler(destination: str) -> logging.Handler:
    if destination == "stderr":
        return logging.StreamHandler(sys.stderr)
    if destination == "stdout":
        return logging.StreamHandler(sys.stdout)
    path = Path(destination).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, encoding="utf-8")


def _render_value(value: Any) -> str:
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False) if " " in value or not value else value
    return json.dumps(value, ensure_ascii=False, default=str)
