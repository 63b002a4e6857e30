# src/logging/context.py - v1
"""Contextual logging support: attach call_id, model_id and mode to log records.

Context variables are task-local, so concurrent calls never see each other's
values.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_call_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "call_id", default=None
)
_model_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "model_id", default=None
)
_mode: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "mode", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    call_id: str | None = None
    model_id: str | None = None
    mode: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        call_id=_call_id.get(),
        model_id=_model_id.get(),
        mode=_mode.get(),
    )


def set_call_context(call_id: str, model_id: str, mode: str | None = None) -> None:
    """Set call-level context (called once per do_generate / do_stream)."""
    _call_id.set(call_id)
    _model_id.set(model_id)
    _mode.set(mode)


def clear_context() -> None:
    """Reset all context variables."""
    _call_id.set(None)
    _model_id.set(None)
    _mode.set(None)
