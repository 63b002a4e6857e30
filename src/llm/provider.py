# src/llm/provider.py - v2
"""Factory: build Ollama chat models bound to one base URL and header set.

The provider owns (or borrows) the ``httpx.AsyncClient`` every model it creates
sends through, and injects the headers configured at construction on every
request.
"""

from __future__ import annotations

import logging

import httpx

from ollama_provider.config.settings import Settings
from ollama_provider.llm.adapters.ollama_adapter import OllamaChatConfig, OllamaChatLanguageModel
from ollama_provider.llm.adapters.ollama_settings import OllamaChatModelId, OllamaChatSettings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:11434/api"
DEFAULT_MODEL_ID = "llama3"


class OllamaProvider:
    """Creates chat language models for an Ollama service."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        headers: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        provider_name: str = "ollama",
        timeout: float | None = None,
        default_model: OllamaChatModelId = DEFAULT_MODEL_ID,
    ):
        self.base_url = base_url.rstrip("/")
        self._custom_headers = dict(headers or {})
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._provider_name = provider_name
        self.default_model = default_model

    def headers(self) -> dict[str, str | None]:
        """Headers sent with every request (custom ones included)."""
        return {"Content-Type": "application/json", **self._custom_headers}

    def chat(
        self,
        model_id: OllamaChatModelId | None = None,
        settings: OllamaChatSettings | None = None,
    ) -> OllamaChatLanguageModel:
        """Create a chat model; ``model_id`` defaults to the provider's default model."""
        model_id = model_id or self.default_model
        logger.debug("Creating Ollama chat model: model=%s, base_url=%s", model_id, self.base_url)
        return OllamaChatLanguageModel(
            model_id,
            settings,
            OllamaChatConfig(
                provider=f"{self._provider_name}.chat",
                base_url=self.base_url,
                headers=self.headers,
                client=self._client,
            ),
        )

    def __call__(
        self,
        model_id: OllamaChatModelId | None = None,
        settings: OllamaChatSettings | None = None,
    ) -> OllamaChatLanguageModel:
        return self.chat(model_id, settings)

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()


def create_ollama(
    base_url: str | None = None,
    headers: dict[str, str] | None = None,
    http_client: httpx.AsyncClient | None = None,
    settings: Settings | None = None,
) -> OllamaProvider:
    """Build a provider, resolving unset arguments from settings.

    Args:
        base_url: API root (e.g. http://127.0.0.1:11434/api). Falls back to
            ``settings.ollama_base_url``, then the local default.
        headers: Extra headers for every request; merged over
            ``settings.ollama_headers``.
        http_client: Client to send through; one is created when omitted,
            with ``settings.ollama_timeout_s`` as its timeout.
        settings: Application settings; also supply the default model id.
    """
    resolved_headers: dict[str, str] = {}
    timeout: float | None = None
    default_model = DEFAULT_MODEL_ID
    if settings is not None:
        base_url = base_url or settings.ollama_base_url
        default_model = settings.ollama_default_model
        resolved_headers.update(settings.ollama_headers)
        timeout = settings.ollama_timeout_s
    resolved_headers.update(headers or {})

    return OllamaProvider(
        base_url=base_url or DEFAULT_BASE_URL,
        headers=resolved_headers,
        http_client=http_client,
        timeout=timeout,
        default_model=default_model,
    )
