# src/llm/adapters/ollama_schemas.py - v1
"""Wire records of the Ollama /api/chat endpoint."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Tag, TypeAdapter


class OllamaChatMessage(BaseModel):
    """Outbound chat message. Serialize with ``to_wire`` so unset fields are absent."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str
    images: list[str] | None = None
    tool_call_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


OllamaChatPrompt = list[OllamaChatMessage]


class OllamaResponseMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str
    content: str | None = None


class OllamaChatResponse(BaseModel):
    """Non-streaming response (``stream: false``)."""

    model_config = ConfigDict(extra="ignore")

    done: Literal[True]
    eval_count: int
    eval_duration: int
    model: str | None = None
    created_at: str | None = None
    message: OllamaResponseMessage | None = None
    # /api/generate-shaped answers carry the text here instead of ``message``
    response: str | None = None
    prompt_eval_count: int | None = None
    prompt_eval_duration: int | None = None
    load_duration: int | None = None
    total_duration: int | None = None

    @property
    def text(self) -> str:
        if self.message is not None and self.message.content is not None:
            return self.message.content
        return self.response or ""


class OllamaStreamChunk(BaseModel):
    """Incremental streaming record carrying a content fragment."""

    model_config = ConfigDict(extra="ignore")

    done: Literal[False]
    model: str
    created_at: str
    message: OllamaResponseMessage


class OllamaStreamDone(BaseModel):
    """Terminal streaming record carrying aggregate usage."""

    model_config = ConfigDict(extra="ignore")

    done: Literal[True]
    model: str
    created_at: str
    eval_count: int
    eval_duration: int
    prompt_eval_count: int | None = None
    prompt_eval_duration: int | None = None
    load_duration: int | None = None
    total_duration: int | None = None


def _done_tag(value: Any) -> str | None:
    done = value.get("done") if isinstance(value, dict) else getattr(value, "done", None)
    if done is True:
        return "terminal"
    if done is False:
        return "incremental"
    return None


OllamaStreamRecord = Annotated[
    Union[
        Annotated[OllamaStreamChunk, Tag("incremental")],
        Annotated[OllamaStreamDone, Tag("terminal")],
    ],
    Discriminator(_done_tag),
]

chat_response_adapter: TypeAdapter[OllamaChatResponse] = TypeAdapter(OllamaChatResponse)
stream_record_adapter: TypeAdapter[OllamaStreamChunk | OllamaStreamDone] = TypeAdapter(
    OllamaStreamRecord
)


class OllamaErrorData(BaseModel):
    """Error body: ``{"error": "..."}``."""

    error: str


error_data_adapter: TypeAdapter[OllamaErrorData] = TypeAdapter(OllamaErrorData)
