# tests/conftest.py - v1
"""Shared test fixtures for unit tests.

Provides a recording httpx MockTransport, a provider/model wired to it, and
response installers (whole JSON and NDJSON streams). No network I/O.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from ollama_provider.llm.models import CallOptions, TextPart, UserMessage
from ollama_provider.llm.provider import OllamaProvider, create_ollama

TEST_PROMPT = [UserMessage(content=[TextPart(text="Hello")])]


class RecordingTransport:
    """MockTransport handler that records requests and replays a canned response."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.respond: Callable[[httpx.Request], httpx.Response] = lambda _: httpx.Response(
            200, json={}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last_body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    @property
    def last_headers(self) -> httpx.Headers:
        return self.requests[-1].headers


async def _aiter(chunks: list[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


# === FIXTURES: HTTP test double ===


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def http_client(transport: RecordingTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(transport))


@pytest.fixture
def provider(http_client: httpx.AsyncClient) -> OllamaProvider:
    return create_ollama(http_client=http_client)


@pytest.fixture
def model(provider: OllamaProvider):
    return provider.chat("llama3")


@pytest.fixture
def prepare_json_response(transport: RecordingTransport):
    """Make the transport answer with one JSON body."""

    def prepare(body: dict, status: int = 200, headers: dict[str, str] | None = None) -> None:
        transport.respond = lambda _: httpx.Response(status, json=body, headers=headers)

    return prepare


@pytest.fixture
def prepare_stream_response(transport: RecordingTransport):
    """Make the transport answer with an NDJSON body delivered as separate reads."""

    def prepare(chunks: list[str], headers: dict[str, str] | None = None) -> None:
        encoded = [c.encode("utf-8") for c in chunks]
        transport.respond = lambda _: httpx.Response(
            200,
            content=_aiter(encoded),
            headers={"content-type": "application/x-ndjson", **(headers or {})},
        )

    return prepare


@pytest.fixture
def call_options() -> Callable[..., CallOptions]:
    def build(**kwargs: Any) -> CallOptions:
        kwargs.setdefault("prompt", TEST_PROMPT)
        return CallOptions(**kwargs)

    return build
