# src/llm/adapters/ollama_finish_reason.py - v1
"""Map Ollama completion status onto the normalized finish-reason set."""

from __future__ import annotations

from ollama_provider.llm.models import FinishReason

# Ollama only reports a generic stop; length, content-filter and tool-call
# stops are indistinguishable on the wire.
_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": "stop",
}


def map_ollama_finish_reason(finish_reason: str | None) -> FinishReason:
    """Unrecognized (or missing) values normalize to ``other``."""
    if finish_reason is None:
        return "other"
    return _FINISH_REASONS.get(finish_reason, "other")
