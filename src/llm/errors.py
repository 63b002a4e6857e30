# src/llm/errors.py - v1
"""Error taxonomy raised by the provider.

Pre-dispatch failures (unsupported mode, role or image reference) are raised
before any request is sent. Transport failures carry the HTTP status and body.
Decode failures are never raised from the stream; they are wrapped in
``ParseFailure`` records and surfaced as ``error`` stream parts.
"""

from __future__ import annotations

from typing import Any

_RETRYABLE_STATUS = {408, 409, 429}


class ProviderError(Exception):
    """Base class for all provider errors."""


class UnsupportedFunctionalityError(ProviderError):
    """Caller requested a capability the Ollama chat protocol cannot express."""

    def __init__(self, functionality: str, message: str | None = None):
        self.functionality = functionality
        super().__init__(message or f"'{functionality}' functionality not supported.")


class UnsupportedRoleError(ProviderError, ValueError):
    """Prompt message role outside system/user/assistant/tool."""

    def __init__(self, role: object):
        self.role = role
        super().__init__(f"Unsupported role: {role}")


class APICallError(ProviderError):
    """Non-2xx HTTP response or connection failure."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        request_body: Any,
        status_code: int | None = None,
        response_headers: dict[str, str] | None = None,
        response_body: str | None = None,
        is_retryable: bool | None = None,
        data: Any = None,
    ):
        self.url = url
        self.request_body = request_body
        self.status_code = status_code
        self.response_headers = response_headers
        self.response_body = response_body
        self.data = data
        if is_retryable is None:
            is_retryable = status_code is None or (
                status_code in _RETRYABLE_STATUS or status_code >= 500
            )
        self.is_retryable = is_retryable
        super().__init__(message)


class JSONParseError(ProviderError):
    """Text could not be parsed as JSON."""

    def __init__(self, text: str, cause: Exception):
        self.text = text
        self.cause = cause
        super().__init__(f"JSON parsing failed: Text: {text}. Error message: {cause}")


class TypeValidationError(ProviderError):
    """Parsed JSON does not match the expected record schema."""

    def __init__(self, value: Any, cause: Exception):
        self.value = value
        self.cause = cause
        super().__init__(f"Type validation failed: Value: {value!r}. Error message: {cause}")
