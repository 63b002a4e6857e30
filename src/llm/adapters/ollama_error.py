# src/llm/adapters/ollama_error.py - v1
"""Failed-response handler for the Ollama API (``{"error": "..."}`` bodies)."""

from __future__ import annotations

from ollama_provider.llm.adapters.ollama_schemas import OllamaErrorData, error_data_adapter
from ollama_provider.llm.http import json_error_response_handler


def _error_message(data: OllamaErrorData) -> str:
    return data.error


ollama_failed_response_handler = json_error_response_handler(
    error_data_adapter, _error_message
)
