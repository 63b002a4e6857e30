# src/llm/adapters/ollama_adapter.py - v3
"""Ollama chat adapter implementing BaseLanguageModel.

Talks to ``{base_url}/chat`` over httpx. ``do_generate`` posts with
``stream: false`` and reads one JSON object; ``do_stream`` reads the NDJSON
body and reduces it into text-delta / error parts followed by exactly one
finish part.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from ollama_provider.llm.adapters.ollama_error import ollama_failed_response_handler
from ollama_provider.llm.adapters.ollama_finish_reason import map_ollama_finish_reason
from ollama_provider.llm.adapters.ollama_messages import convert_to_ollama_chat_messages
from ollama_provider.llm.adapters.ollama_schemas import (
    OllamaChatResponse,
    OllamaStreamChunk,
    OllamaStreamDone,
    chat_response_adapter,
    stream_record_adapter,
)
from ollama_provider.llm.adapters.ollama_settings import OllamaChatModelId, OllamaChatSettings
from ollama_provider.llm.adapters.ollama_tools import select_tools
from ollama_provider.llm.base_client import BaseLanguageModel
from ollama_provider.llm.errors import UnsupportedFunctionalityError
from ollama_provider.llm.http import (
    await_or_abort,
    json_response_handler,
    json_stream_response_handler,
    post_json_to_api,
)
from ollama_provider.llm.json_stream import ParseResult
from ollama_provider.llm.models import (
    CallOptions,
    CallWarning,
    ErrorPart,
    FinishPart,
    FinishReason,
    GenerateResult,
    RawCall,
    RawResponse,
    StreamPart,
    StreamResult,
    TextDeltaPart,
    Usage,
)
from ollama_provider.logging.context import set_call_context

logger = logging.getLogger(__name__)

StreamRecord = ParseResult[OllamaStreamChunk | OllamaStreamDone]


@dataclass(frozen=True)
class OllamaChatConfig:
    """Collaborator-supplied transport configuration."""

    provider: str
    base_url: str
    headers: Callable[[], dict[str, str | None]]
    client: httpx.AsyncClient


@dataclass
class _StreamState:
    """Per-call reduction state: updated chunk by chunk, read once at the end."""

    finish_reason: FinishReason = "other"
    usage: Usage = field(default_factory=Usage)
    saw_terminal: bool = False

    def apply(self, chunk: StreamRecord) -> StreamPart | None:
        if not chunk.success:
            return ErrorPart(error=chunk.error)

        value = chunk.value
        if isinstance(value, OllamaStreamDone):
            self.finish_reason = map_ollama_finish_reason("stop")
            # prompt_eval_count is not surfaced on the streaming path
            self.usage = Usage(completion_tokens=value.eval_count, prompt_tokens=math.nan)
            self.saw_terminal = True
            return None

        if value.message.content is not None:
            return TextDeltaPart(text_delta=value.message.content)
        return None

    def finish(self) -> FinishPart:
        return FinishPart(finish_reason=self.finish_reason, usage=self.usage)


class OllamaChatLanguageModel(BaseLanguageModel):
    """Ollama /api/chat adapter."""

    specification_version = "v1"
    default_object_generation_mode = "json"

    def __init__(
        self,
        model_id: OllamaChatModelId,
        settings: OllamaChatSettings | None,
        config: OllamaChatConfig,
    ):
        self._model_id = model_id
        self.settings = settings or OllamaChatSettings()
        self.config = config

    @property
    def provider(self) -> str:
        return self.config.provider

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def url(self) -> str:
        return f"{self.config.base_url}/chat"

    def get_arguments(self, options: CallOptions) -> tuple[dict[str, Any], list[CallWarning]]:
        """Build the request body (minus ``stream``) and collect warnings.

        Raises:
            UnsupportedFunctionalityError: object-tool or object-grammar mode,
                or a URL-referenced image in the prompt.
            UnsupportedRoleError: Unknown prompt role.
        """
        mode = options.mode
        warnings: list[CallWarning] = []

        if mode.type == "object-tool":
            raise UnsupportedFunctionalityError("object-tool mode")
        if mode.type == "object-grammar":
            raise UnsupportedFunctionalityError("object-grammar mode")

        tools = None
        tool_choice = None
        if mode.type == "regular":
            tools, tool_choice = mode.tools, mode.tool_choice
            warnings.extend(self._tool_warnings(options))
        elif mode.type != "object-json":
            raise ValueError(f"Unsupported type: {mode.type}")

        settings = self.settings
        option_values = {
            "frequency_penalty": options.frequency_penalty,
            "mirostat": settings.mirostat,
            "mirostat_eta": settings.mirostat_eta,
            "mirostat_tau": settings.mirostat_tau,
            "num_ctx": settings.num_ctx,
            "num_predict": options.max_tokens,
            "presence_penalty": options.presence_penalty,
            "repeat_last_n": settings.repeat_last_n,
            "repeat_penalty": settings.repeat_penalty,
            "seed": options.seed,
            "stop": options.stop_sequences if options.stop_sequences is not None else settings.stop,
            "temperature": options.temperature,
            "tfs_z": settings.tfs_z,
            "top_k": options.top_k if options.top_k is not None else settings.top_k,
            "top_p": options.top_p,
        }

        args: dict[str, Any] = {
            "model": self.model_id,
            "messages": [
                m.to_wire()
                for m in convert_to_ollama_chat_messages(options.prompt, tools, tool_choice)
            ],
        }
        sent_options = {k: v for k, v in option_values.items() if v is not None}
        if sent_options:
            args["options"] = sent_options

        if mode.type == "object-json":
            args["format"] = "json"
            if mode.json_schema is not None:
                warnings.append(
                    CallWarning(
                        type="unsupported-setting",
                        setting="json_schema",
                        details="Only format=json is sent; the schema is not enforced.",
                    )
                )

        for w in warnings:
            logger.warning("Call warning (%s): %s", w.type, w.details or w.message or w.setting)

        return args, warnings

    def _tool_warnings(self, options: CallOptions) -> list[CallWarning]:
        mode = options.mode
        warnings: list[CallWarning] = []
        tool_choice = mode.tool_choice
        declared = {t.name for t in mode.tools or []}

        if tool_choice is not None and tool_choice.type == "tool" and tool_choice.tool_name not in declared:
            warnings.append(
                CallWarning(
                    type="unsupported-tool",
                    details=f"tool_choice names undeclared tool {tool_choice.tool_name!r}",
                )
            )

        has_system = any(m.role == "system" for m in options.prompt)
        if select_tools(mode.tools, tool_choice) and not has_system:
            warnings.append(
                CallWarning(
                    type="other",
                    message="Tools were declared but the prompt has no system message to carry them; tools not sent.",
                )
            )
        return warnings

    def _headers(self, options: CallOptions) -> dict[str, str | None]:
        return {**self.config.headers(), **(options.headers or {})}

    def _start_call(self, options: CallOptions, streaming: bool) -> float:
        call_id = uuid.uuid4().hex[:12]
        set_call_context(call_id, self.model_id, options.mode.type)
        logger.debug(
            "Dispatching %s chat call: url=%s, messages=%d",
            "streaming" if streaming else "non-streaming",
            self.url,
            len(options.prompt),
        )
        return time.monotonic()

    def _log_finished(
        self, streaming: bool, finish_reason: FinishReason, usage: Usage, started: float
    ) -> None:
        logger.info(
            "Chat call finished",
            extra={
                "data": {
                    "streaming": streaming,
                    "finish_reason": finish_reason,
                    "prompt_tokens": usage.prompt_tokens,
                    "completion_tokens": usage.completion_tokens,
                    "duration_ms": round((time.monotonic() - started) * 1000),
                }
            },
        )

    @staticmethod
    def _raw_call(args: dict[str, Any]) -> RawCall:
        raw_settings = {k: v for k, v in args.items() if k != "messages"}
        return RawCall(raw_prompt=args["messages"], raw_settings=raw_settings)

    async def do_generate(self, options: CallOptions) -> GenerateResult:
        args, warnings = self.get_arguments(options)
        started = self._start_call(options, streaming=False)

        result = await post_json_to_api(
            client=self.config.client,
            url=self.url,
            headers=self._headers(options),
            body={**args, "stream": False},
            failed_response_handler=ollama_failed_response_handler,
            successful_response_handler=json_response_handler(chat_response_adapter),
            abort_signal=options.abort_signal,
        )
        response: OllamaChatResponse = result.value

        # The non-streaming response never carries a usable completion count
        prompt_tokens = response.prompt_eval_count
        usage = Usage(
            completion_tokens=math.nan,
            prompt_tokens=prompt_tokens if prompt_tokens is not None else math.nan,
        )

        finish_reason = map_ollama_finish_reason("stop")
        self._log_finished(False, finish_reason, usage, started)

        return GenerateResult(
            text=response.text,
            finish_reason=finish_reason,
            usage=usage,
            raw_call=self._raw_call(args),
            raw_response=RawResponse(headers=result.response_headers),
            warnings=warnings,
        )

    async def do_stream(self, options: CallOptions) -> StreamResult:
        args, warnings = self.get_arguments(options)
        started = self._start_call(options, streaming=True)

        result = await post_json_to_api(
            client=self.config.client,
            url=self.url,
            headers=self._headers(options),
            body=args,
            failed_response_handler=ollama_failed_response_handler,
            successful_response_handler=json_stream_response_handler(stream_record_adapter),
            abort_signal=options.abort_signal,
        )

        return StreamResult(
            stream=self._reduce(result.value, _StreamState(), options.abort_signal, started),
            raw_call=self._raw_call(args),
            raw_response=RawResponse(headers=result.response_headers),
            warnings=warnings,
        )

    async def _reduce(
        self,
        records: AsyncGenerator[StreamRecord, None],
        state: _StreamState,
        abort_signal: asyncio.Event | None,
        started: float,
    ) -> AsyncIterator[StreamPart]:
        async def pull() -> StreamRecord | None:
            async for record in records:
                return record
            return None

        try:
            while True:
                chunk = await await_or_abort(pull(), abort_signal)
                if chunk is None:
                    break
                if not chunk.success:
                    logger.warning("Undecodable stream line, emitting error part: %s", chunk.error)
                part = state.apply(chunk)
                if part is not None:
                    yield part
        finally:
            await records.aclose()

        if not state.saw_terminal:
            logger.info("Stream for %s ended without a terminal record", self.model_id)
        self._log_finished(True, state.finish_reason, state.usage, started)
        yield state.finish()
