# src/llm/models.py - v1
"""Provider-agnostic types: prompt, modes, call options, stream parts, results.

Prompt messages and generation modes are closed tagged unions (on ``role`` and
``type`` respectively), so adapters can match on the tag exhaustively.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# === Prompt parts ===


class TextPart(BaseModel):
    """Plain text fragment of a message."""

    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    """Image attachment: inline bytes, or a URL string referencing remote data."""

    type: Literal["image"] = "image"
    image: bytes | str
    mime_type: str | None = None

    @property
    def is_url(self) -> bool:
        return isinstance(self.image, str)


class ToolCallPart(BaseModel):
    """Tool invocation previously emitted by the assistant."""

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    args: Any = None


class ToolResultPart(BaseModel):
    """Result of a tool invocation, correlated by ``tool_call_id``."""

    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    result: Any
    is_error: bool | None = None


UserContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]
AssistantContentPart = Annotated[
    Union[TextPart, ToolCallPart], Field(discriminator="type")
]


# === Prompt messages ===


class SystemMessage(BaseModel):
    role: Literal["system"] = "system"
    content: str


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: list[UserContentPart]


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: list[AssistantContentPart]


class ToolMessage(BaseModel):
    role: Literal["tool"] = "tool"
    content: list[ToolResultPart]


Message = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]
Prompt = list[Message]


# === Tools and generation modes ===


class FunctionTool(BaseModel):
    """Callable tool declaration; ``parameters`` is a JSON schema."""

    type: Literal["function"] = "function"
    name: str
    description: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)


class ToolChoice(BaseModel):
    type: Literal["auto", "none", "required", "tool"] = "auto"
    tool_name: str | None = None


class RegularMode(BaseModel):
    type: Literal["regular"] = "regular"
    tools: list[FunctionTool] | None = None
    tool_choice: ToolChoice | None = None


class ObjectJsonMode(BaseModel):
    type: Literal["object-json"] = "object-json"
    json_schema: dict[str, Any] | None = None
    name: str | None = None
    description: str | None = None


class ObjectToolMode(BaseModel):
    type: Literal["object-tool"] = "object-tool"
    tool: FunctionTool


class ObjectGrammarMode(BaseModel):
    type: Literal["object-grammar"] = "object-grammar"
    grammar: str | None = None


Mode = Annotated[
    Union[RegularMode, ObjectJsonMode, ObjectToolMode, ObjectGrammarMode],
    Field(discriminator="type"),
]


class CallOptions(BaseModel):
    """Per-call options. Generation fields left as None are not sent."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    prompt: Prompt
    mode: Mode = Field(default_factory=RegularMode)

    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    stop_sequences: list[str] | None = None
    seed: int | None = None

    headers: dict[str, str | None] | None = None
    abort_signal: asyncio.Event | None = None


# === Results and stream parts ===

FinishReason = Literal[
    "stop", "length", "content-filter", "tool-calls", "error", "other", "unknown"
]


class Usage(BaseModel):
    """Token usage; an unknown count is NaN, never absent."""

    completion_tokens: float = math.nan
    prompt_tokens: float = math.nan


class CallWarning(BaseModel):
    """Non-fatal notice that part of the request could not be honoured."""

    type: Literal["unsupported-setting", "unsupported-tool", "other"]
    setting: str | None = None
    details: str | None = None
    message: str | None = None


class TextDeltaPart(BaseModel):
    type: Literal["text-delta"] = "text-delta"
    text_delta: str


class ErrorPart(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: Literal["error"] = "error"
    error: Any


class FinishPart(BaseModel):
    type: Literal["finish"] = "finish"
    finish_reason: FinishReason
    usage: Usage


StreamPart = Union[TextDeltaPart, ErrorPart, FinishPart]


@dataclass
class RawCall:
    """Echo of what was sent, for caller-side logging and debugging."""

    raw_prompt: Any
    raw_settings: dict[str, Any]


@dataclass
class RawResponse:
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class GenerateResult:
    text: str
    finish_reason: FinishReason
    usage: Usage
    raw_call: RawCall
    raw_response: RawResponse
    warnings: list[CallWarning] = field(default_factory=list)


@dataclass
class StreamResult:
    stream: AsyncIterator[StreamPart]
    raw_call: RawCall
    raw_response: RawResponse
    warnings: list[CallWarning] = field(default_factory=list)
