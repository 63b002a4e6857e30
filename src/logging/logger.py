# src/logging/logger.py - v2
"""Formatters and setup for the ``ollama_provider`` logger tree.

Provider modules log through ``logging.getLogger(__name__)`` and nothing is
configured on import. ``setup_logging`` installs one stdout handler whose
formatter adds the current call context (call id, model, mode) and the
``extra={"data": {...}}`` payload the adapter attaches to call summaries:
finish reason, token counts and duration.

Unknown token counts are NaN in results; JSON output renders them as ``null``
and text output as ``?``.
"""

from __future__ import annotations

import json
import logging
import math
import sys
from datetime import datetime, timezone
from typing import IO, TYPE_CHECKING, Any

from ollama_provider.logging.context import get_context

if TYPE_CHECKING:
    from ollama_provider.config.settings import Settings

ROOT_LOGGER_NAME = "ollama_provider"


def _record_data(record: logging.LogRecord) -> dict[str, Any]:
    data = getattr(record, "data", None)
    return data if isinstance(data, dict) else {}


def _jsonable(value: Any) -> Any:
    """Replace non-finite floats with None, recursing into dicts and lists."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _text_value(value: Any) -> str:
    if isinstance(value, float):
        if not math.isfinite(value):
            return "?"
        return f"{value:g}"
    return str(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per line: message, call context and call data."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context_dict = get_context().as_dict()
        if context_dict:
            log_entry["context"] = context_dict

        data = _record_data(record)
        if data:
            log_entry["data"] = _jsonable(data)

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Single-line format for development.

    ``2024-05-04 01:59:32 [INFO    ] ollama_provider.llm... [llama3 regular] (a1b2c3) - msg k=v``
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_context()
        parts = [
            datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            f"[{record.levelname:8s}]",
            record.name,
        ]
        if ctx.model_id:
            parts.append(f"[{ctx.model_id} {ctx.mode}]" if ctx.mode else f"[{ctx.model_id}]")
        if ctx.call_id:
            parts.append(f"({ctx.call_id})")
        parts.append(f"- {record.getMessage()}")
        parts.extend(f"{k}={_text_value(v)}" for k, v in _record_data(record).items())

        line = " ".join(parts)
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    stream: IO[str] | None = None,
) -> None:
    """Configure the ``ollama_provider`` logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: Output format ("json" or "text").
        stream: Destination; stdout when omitted.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates on re-init
    root_logger.handlers.clear()

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JsonFormatter()
    else:
        formatter = TextFormatter()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def setup_logging_from_settings(settings: Settings) -> None:
    """Apply the LOG_* fields of a Settings instance."""
    setup_logging(level=settings.log_level, log_format=settings.log_format)
