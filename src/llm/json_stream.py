# src/llm/json_stream.py - v2
"""Newline-delimited JSON decoding.

Framing only: records are separated by ``\\n`` with no length prefix. Each
complete line is parsed and validated on its own, so one bad line yields a
``ParseFailure`` and decoding carries on with the next. Nothing here knows
about finish reasons or usage.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any, Generic, Literal, TypeVar, Union

from pydantic import TypeAdapter, ValidationError

from ollama_provider.llm.errors import JSONParseError, TypeValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class ParseSuccess(Generic[T]):
    value: T
    raw_text: str
    success: Literal[True] = True


@dataclass(frozen=True)
class ParseFailure:
    error: JSONParseError | TypeValidationError
    raw_text: str
    success: Literal[False] = False


ParseResult = Union[ParseSuccess[T], ParseFailure]


def safe_parse_json(text: str, adapter: TypeAdapter[T] | None = None) -> ParseResult[T]:
    """Parse one JSON document without raising.

    Args:
        text: Raw JSON text.
        adapter: Optional schema; without one the decoded value is returned as-is.
    """
    try:
        raw: Any = json.loads(text)
    except ValueError as e:
        return ParseFailure(error=JSONParseError(text, e), raw_text=text)

    if adapter is None:
        return ParseSuccess(value=raw, raw_text=text)

    try:
        value = adapter.validate_python(raw)
    except ValidationError as e:
        return ParseFailure(error=TypeValidationError(raw, e), raw_text=text)
    return ParseSuccess(value=value, raw_text=text)


async def _iter_raw_lines(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[bytes]:
    # 0x0A never occurs inside a multi-byte UTF-8 sequence
    buffer = b""

    async for chunk in chunks:
        buffer += chunk.encode("utf-8") if isinstance(chunk, str) else chunk
        *lines, buffer = buffer.split(b"\n")
        for line in lines:
            yield line.removesuffix(b"\r")

    if buffer:
        yield buffer.removesuffix(b"\r")


async def iter_lines(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[str]:
    """Re-frame arbitrary reads into complete lines.

    A line may span several reads and one read may carry several lines. UTF-8
    sequences split across reads are reassembled. A final line without a
    terminating newline is still yielded. Undecodable bytes become U+FFFD.
    """
    async for line in _iter_raw_lines(chunks):
        yield line.decode("utf-8", errors="replace")


async def decode_json_stream(
    chunks: AsyncIterable[bytes | str],
    adapter: TypeAdapter[T] | None = None,
) -> AsyncIterator[ParseResult[T]]:
    """Yield one ParseResult per non-blank line of an NDJSON stream.

    A line that is not valid UTF-8 yields a ``ParseFailure`` with a
    ``JSONParseError``; the following lines are decoded as usual.
    """
    async for raw in _iter_raw_lines(chunks):
        if not raw.strip():
            continue
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            text = raw.decode("utf-8", errors="replace")
            yield ParseFailure(error=JSONParseError(text, e), raw_text=text)
            continue
        yield safe_parse_json(line, adapter)
