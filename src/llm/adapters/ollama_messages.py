# src/llm/adapters/ollama_messages.py - v2
"""Convert a provider-agnostic prompt into Ollama chat messages.

Role rules:
  - system: one message; declared tools are injected into its text.
  - user: text parts concatenated, inline images base64-encoded into
    ``images``; URL images are rejected.
  - assistant: text parts concatenated; other part types are dropped.
  - tool: one message per tool result, content always a string.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel

from ollama_provider.llm.adapters.ollama_schemas import OllamaChatMessage, OllamaChatPrompt
from ollama_provider.llm.adapters.ollama_tools import inject_tools_schema_into_system
from ollama_provider.llm.errors import UnsupportedFunctionalityError, UnsupportedRoleError
from ollama_provider.llm.models import (
    AssistantMessage,
    FunctionTool,
    ImagePart,
    Message,
    SystemMessage,
    TextPart,
    ToolChoice,
    ToolMessage,
    UserMessage,
)


def convert_to_ollama_chat_messages(
    prompt: Sequence[Message],
    tools: Sequence[FunctionTool] | None = None,
    tool_choice: ToolChoice | None = None,
) -> OllamaChatPrompt:
    """Map every prompt message, preserving message and part order.

    Raises:
        UnsupportedFunctionalityError: A user message references an image by URL.
        UnsupportedRoleError: A message role outside the four known roles.
    """
    messages: OllamaChatPrompt = []

    for message in prompt:
        role = message.role
        if role == "system":
            messages.append(_convert_system(message, tools, tool_choice))  # type: ignore[arg-type]
        elif role == "user":
            messages.append(_convert_user(message))  # type: ignore[arg-type]
        elif role == "assistant":
            messages.append(_convert_assistant(message))  # type: ignore[arg-type]
        elif role == "tool":
            messages.extend(_convert_tool(message))  # type: ignore[arg-type]
        else:
            raise UnsupportedRoleError(role)

    return messages


def _convert_system(
    message: SystemMessage,
    tools: Sequence[FunctionTool] | None,
    tool_choice: ToolChoice | None,
) -> OllamaChatMessage:
    return OllamaChatMessage(
        role="system",
        content=inject_tools_schema_into_system(message.content, tools, tool_choice),
    )


def _convert_user(message: UserMessage) -> OllamaChatMessage:
    content = ""
    images: list[str] | None = None

    for part in message.content:
        if isinstance(part, TextPart):
            content += part.text
        elif isinstance(part, ImagePart):
            if part.is_url:
                raise UnsupportedFunctionalityError("image-part")
            if images is None:
                images = []
            images.append(base64.b64encode(part.image).decode("ascii"))  # type: ignore[arg-type]

    return OllamaChatMessage(role="user", content=content, images=images)


def _convert_assistant(message: AssistantMessage) -> OllamaChatMessage:
    return OllamaChatMessage(
        role="assistant",
        content="".join(p.text for p in message.content if isinstance(p, TextPart)),
    )


def _convert_tool(message: ToolMessage) -> list[OllamaChatMessage]:
    # Ollama rejects non-string message bodies, so structured results are serialized
    return [
        OllamaChatMessage(
            role="tool",
            content=_stringify_result(part.result),
            tool_call_id=part.tool_call_id,
        )
        for part in message.content
    ]


def _stringify_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return str(value)
