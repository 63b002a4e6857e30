"""Ollama chat language-model provider."""

from ollama_provider.llm.adapters.ollama_adapter import OllamaChatLanguageModel
from ollama_provider.llm.adapters.ollama_settings import OllamaChatSettings
from ollama_provider.llm.errors import (
    APICallError,
    JSONParseError,
    ProviderError,
    TypeValidationError,
    UnsupportedFunctionalityError,
    UnsupportedRoleError,
)
from ollama_provider.llm.provider import OllamaProvider, create_ollama

__all__ = [
    "APICallError",
    "JSONParseError",
    "OllamaChatLanguageModel",
    "OllamaChatSettings",
    "OllamaProvider",
    "ProviderError",
    "TypeValidationError",
    "UnsupportedFunctionalityError",
    "UnsupportedRoleError",
    "create_ollama",
]
