# src/llm/adapters/ollama_settings.py - v1
"""Per-instance Ollama chat settings (sampling knobs not covered by CallOptions)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

OllamaChatModelId = str


class OllamaChatSettings(BaseModel):
    """Model-level defaults forwarded verbatim under ``options``. Unset = not sent."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Mirostat sampling (0 = disabled, 1 = Mirostat, 2 = Mirostat 2.0)
    mirostat: Literal[0, 1, 2] | None = None
    mirostat_eta: float | None = None
    mirostat_tau: float | None = None

    num_ctx: int | None = None
    repeat_last_n: int | None = None
    repeat_penalty: float | None = None
    stop: list[str] | None = None
    # Tail-free sampling; 1.0 disables it
    tfs_z: float | None = None
    top_k: int | None = None
