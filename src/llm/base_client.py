# src/llm/base_client.py - v1
"""Abstract language-model provider interface.

An orchestration layer talks to every backend through this contract: one
non-streaming entry point and one streaming entry point, both taking
``CallOptions`` and both producing provider-agnostic results.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

from ollama_provider.llm.models import CallOptions, GenerateResult, StreamResult


class BaseLanguageModel(ABC):
    """Unified interface for all language-model providers."""

    specification_version: Literal["v1"] = "v1"
    default_object_generation_mode: Literal["json", "tool"] | None = None

    @abstractmethod
    async def do_generate(self, options: CallOptions) -> GenerateResult:
        """Single request, whole response."""

    @abstractmethod
    async def do_stream(self, options: CallOptions) -> StreamResult:
        """Streaming request; the result's stream ends with one finish part."""

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider identifier (e.g. ollama.chat)."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Model identifier sent to the service."""
