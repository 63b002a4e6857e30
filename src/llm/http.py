# src/llm/http.py - v2
"""JSON-over-HTTP transport used by the provider adapters.

``post_json_to_api`` sends one POST and hands the open response either to a
failed-response handler (non-2xx) or to a successful-response handler, which
decides whether the body is read whole or consumed as a stream. No retries and
no timeouts live here; both belong to the configured ``httpx.AsyncClient``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import httpx
from pydantic import TypeAdapter

from ollama_provider.llm.errors import APICallError, JSONParseError
from ollama_provider.llm.json_stream import ParseResult, decode_json_stream, safe_parse_json

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ResponseHandlerResult(Generic[T]):
    value: T
    response_headers: dict[str, str] = field(default_factory=dict)


ResponseHandler = Callable[[httpx.Response, str, Any], Awaitable[ResponseHandlerResult[Any]]]
FailedResponseHandler = Callable[[httpx.Response, str, Any], Awaitable[APICallError]]


def _headers_dict(response: httpx.Response) -> dict[str, str]:
    return {k.lower(): v for k, v in response.headers.items()}


def _raise_if_aborted(abort_signal: asyncio.Event | None) -> None:
    if abort_signal is not None and abort_signal.is_set():
        raise asyncio.CancelledError("request aborted by caller")


async def await_or_abort(
    aw: Awaitable[T],
    abort_signal: asyncio.Event | None,
    on_abandoned: Callable[[Any], Awaitable[None]] | None = None,
) -> T:
    """Await ``aw`` unless ``abort_signal`` is set first.

    When the signal wins, the pending work is cancelled and awaited, and
    ``asyncio.CancelledError`` is raised. A result that still arrives during
    that cancellation is passed to ``on_abandoned`` for cleanup.
    """
    if abort_signal is None:
        return await aw
    if abort_signal.is_set():
        if inspect.iscoroutine(aw):
            aw.close()
        _raise_if_aborted(abort_signal)

    work = asyncio.ensure_future(aw)
    aborted = asyncio.ensure_future(abort_signal.wait())
    try:
        done, _ = await asyncio.wait({work, aborted}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        await _abandon(work, on_abandoned)
        raise
    finally:
        aborted.cancel()

    if aborted not in done:
        return work.result()

    await _abandon(work, on_abandoned)
    raise asyncio.CancelledError("request aborted by caller")


async def _abandon(
    work: asyncio.Future[Any], on_abandoned: Callable[[Any], Awaitable[None]] | None
) -> None:
    # Wait for the cancelled work to unwind before its resources are reused
    work.cancel()
    (late,) = await asyncio.gather(work, return_exceptions=True)
    if on_abandoned is not None and not isinstance(late, BaseException):
        await on_abandoned(late)


async def _close_response(response: httpx.Response) -> None:
    await response.aclose()


async def post_json_to_api(
    *,
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str | None],
    body: Any,
    failed_response_handler: FailedResponseHandler,
    successful_response_handler: ResponseHandler,
    abort_signal: asyncio.Event | None = None,
) -> ResponseHandlerResult[Any]:
    """POST ``body`` as JSON and dispatch the response to a handler.

    Raises:
        APICallError: Connection failure, or the failed-response handler's
            error for a non-2xx status.
        asyncio.CancelledError: ``abort_signal`` was set before dispatch or
            while the response was outstanding.
    """
    _raise_if_aborted(abort_signal)

    request = client.build_request(
        "POST",
        url,
        json=body,
        headers={k: v for k, v in headers.items() if v is not None},
    )

    try:
        response = await await_or_abort(
            client.send(request, stream=True), abort_signal, on_abandoned=_close_response
        )
    except httpx.TransportError as e:
        raise APICallError(
            f"Cannot connect to API: {e}", url=url, request_body=body
        ) from e

    try:
        _raise_if_aborted(abort_signal)
        if response.is_error:
            await await_or_abort(response.aread(), abort_signal)
            error = await failed_response_handler(response, url, body)
            logger.debug("API call to %s failed with status %d", url, response.status_code)
            raise error
        return await await_or_abort(
            successful_response_handler(response, url, body), abort_signal
        )
    except BaseException:
        await response.aclose()
        raise


def json_response_handler(adapter: TypeAdapter[T]) -> ResponseHandler:
    """Read the whole body and validate it against ``adapter``."""

    async def handle(response: httpx.Response, url: str, body: Any) -> ResponseHandlerResult[T]:
        try:
            content = await response.aread()
        finally:
            await response.aclose()

        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise JSONParseError(content.decode("utf-8", errors="replace"), e) from e

        parsed = safe_parse_json(text, adapter)
        if not parsed.success:
            raise parsed.error
        return ResponseHandlerResult(value=parsed.value, response_headers=_headers_dict(response))

    return handle


def json_stream_response_handler(adapter: TypeAdapter[T]) -> ResponseHandler:
    """Expose the body as an async iterator of per-line ParseResults.

    The response stays open until the iterator is exhausted or closed.
    """

    async def handle(
        response: httpx.Response, url: str, body: Any
    ) -> ResponseHandlerResult[AsyncGenerator[ParseResult[T], None]]:
        async def body_chunks() -> AsyncIterator[bytes]:
            try:
                async for chunk in response.aiter_bytes():
                    yield chunk
            except httpx.TransportError as e:
                raise APICallError(
                    f"Stream interrupted: {e}",
                    url=url,
                    request_body=body,
                    status_code=response.status_code,
                    response_headers=_headers_dict(response),
                ) from e

        async def records() -> AsyncGenerator[ParseResult[T], None]:
            try:
                async for record in decode_json_stream(body_chunks(), adapter):
                    yield record
            finally:
                await response.aclose()

        return ResponseHandlerResult(
            value=records(),
            response_headers=_headers_dict(response),
        )

    return handle


def json_error_response_handler(
    adapter: TypeAdapter[T],
    error_to_message: Callable[[T], str],
) -> FailedResponseHandler:
    """Build an APICallError from a JSON error body, falling back to the raw text."""

    async def handle(response: httpx.Response, url: str, body: Any) -> APICallError:
        text = response.text
        message = response.reason_phrase or f"HTTP {response.status_code}"
        data = None

        if text.strip():
            parsed = safe_parse_json(text, adapter)
            if parsed.success:
                data = parsed.value
                message = error_to_message(data)

        return APICallError(
            message,
            url=url,
            request_body=body,
            status_code=response.status_code,
            response_headers=_headers_dict(response),
            response_body=text,
            data=data,
        )

    return handle
