# tests/unit/llm/adapters/test_unit_ollama_adapter.py - v2
"""Tests for llm/adapters/ollama_adapter.py - argument building, do_generate, do_stream.

All HTTP goes through the recording MockTransport from conftest.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import time

import httpx
import pytest

from ollama_provider.llm.adapters.ollama_settings import OllamaChatSettings
from ollama_provider.llm.errors import (
    APICallError,
    TypeValidationError,
    UnsupportedFunctionalityError,
)
from ollama_provider.llm.models import (
    ErrorPart,
    FinishPart,
    FunctionTool,
    ObjectGrammarMode,
    ObjectJsonMode,
    ObjectToolMode,
    RegularMode,
    SystemMessage,
    TextDeltaPart,
    TextPart,
    ToolChoice,
    UserMessage,
)
from ollama_provider.llm.provider import create_ollama

WEATHER_TOOL = FunctionTool(
    name="get_weather",
    description="Current weather for a city",
    parameters={"type": "object", "properties": {"city": {"type": "string"}}},
)


def stream_chunk(text: str) -> str:
    return json.dumps(
        {
            "model": "llama3",
            "created_at": "2024-05-04T01:59:32.077465Z",
            "message": {"role": "assistant", "content": text},
            "done": False,
        }
    ) + "\n"


def stream_done(eval_count: int = 290, prompt_eval_count: int = 26) -> str:
    return json.dumps(
        {
            "model": "llama3",
            "created_at": "2024-05-04T01:59:32.137913Z",
            "message": {"role": "assistant", "content": ""},
            "done": True,
            "total_duration": 1820013000,
            "load_duration": 5921416,
            "prompt_eval_count": prompt_eval_count,
            "prompt_eval_duration": 1750224000,
            "eval_count": eval_count,
            "eval_duration": 60669000,
        }
    ) + "\n"


def generate_body(content: str = "", eval_count: int = 290, prompt_eval_count: int | None = 26) -> dict:
    body = {
        "context": [1, 2, 3],
        "created_at": "2023-08-04T19:22:45.499127Z",
        "done": True,
        "eval_count": eval_count,
        "eval_duration": 4_709_213_000,
        "load_duration": 5_025_959,
        "model": "llama3",
        "prompt_eval_duration": 325_953_000,
        "response": content,
        "total_duration": 5_043_500_667,
    }
    if prompt_eval_count is not None:
        body["prompt_eval_count"] = prompt_eval_count
    return body


async def collect(stream) -> list:
    return [part async for part in stream]


class TestModelIdentity:
    def test_provider_and_model_id(self, model):
        assert model.provider == "ollama.chat"
        assert model.model_id == "llama3"
        assert model.specification_version == "v1"
        assert model.default_object_generation_mode == "json"

    def test_url(self, model):
        assert model.url == "http://127.0.0.1:11434/api/chat"


class TestGetArguments:
    def test_minimal_arguments(self, model, call_options):
        args, warnings = model.get_arguments(call_options())
        assert args == {
            "model": "llama3",
            "messages": [{"role": "user", "content": "Hello"}],
        }
        assert warnings == []

    def test_call_options_forwarded(self, model, call_options):
        args, _ = model.get_arguments(
            call_options(
                max_tokens=100,
                temperature=0.5,
                top_p=0.9,
                frequency_penalty=0.1,
                presence_penalty=0.2,
                seed=42,
            )
        )
        assert args["options"] == {
            "num_predict": 100,
            "temperature": 0.5,
            "top_p": 0.9,
            "frequency_penalty": 0.1,
            "presence_penalty": 0.2,
            "seed": 42,
        }

    def test_settings_forwarded(self, provider, call_options):
        settings = OllamaChatSettings(
            mirostat=2,
            mirostat_eta=0.1,
            mirostat_tau=5.0,
            num_ctx=4096,
            repeat_last_n=64,
            repeat_penalty=1.1,
            stop=["###"],
            tfs_z=1.0,
            top_k=40,
        )
        args, _ = provider.chat("llama3", settings).get_arguments(call_options())
        assert args["options"] == {
            "mirostat": 2,
            "mirostat_eta": 0.1,
            "mirostat_tau": 5.0,
            "num_ctx": 4096,
            "repeat_last_n": 64,
            "repeat_penalty": 1.1,
            "stop": ["###"],
            "tfs_z": 1.0,
            "top_k": 40,
        }

    def test_call_options_override_settings(self, provider, call_options):
        m = provider.chat("llama3", OllamaChatSettings(stop=["###"], top_k=40))
        args, _ = m.get_arguments(call_options(stop_sequences=["END"], top_k=5))
        assert args["options"]["stop"] == ["END"]
        assert args["options"]["top_k"] == 5

    def test_object_json_sets_format(self, model, call_options):
        args, warnings = model.get_arguments(call_options(mode=ObjectJsonMode()))
        assert args["format"] == "json"
        assert warnings == []

    def test_object_json_schema_warns(self, model, call_options):
        _, warnings = model.get_arguments(
            call_options(mode=ObjectJsonMode(json_schema={"type": "object"}))
        )
        assert len(warnings) == 1
        assert warnings[0].type == "unsupported-setting"
        assert warnings[0].setting == "json_schema"

    def test_regular_mode_has_no_format(self, model, call_options):
        args, _ = model.get_arguments(call_options(mode=RegularMode()))
        assert "format" not in args

    def test_object_tool_rejected(self, model, call_options):
        with pytest.raises(UnsupportedFunctionalityError) as exc:
            model.get_arguments(call_options(mode=ObjectToolMode(tool=WEATHER_TOOL)))
        assert exc.value.functionality == "object-tool mode"

    def test_object_grammar_rejected(self, model, call_options):
        with pytest.raises(UnsupportedFunctionalityError) as exc:
            model.get_arguments(call_options(mode=ObjectGrammarMode()))
        assert exc.value.functionality == "object-grammar mode"

    def test_tools_injected_into_system(self, model, call_options):
        prompt = [
            SystemMessage(content="You are helpful."),
            UserMessage(content=[TextPart(text="Weather in Paris?")]),
        ]
        args, warnings = model.get_arguments(
            call_options(prompt=prompt, mode=RegularMode(tools=[WEATHER_TOOL]))
        )
        system = args["messages"][0]["content"]
        assert system.startswith("You are helpful.")
        assert '"get_weather"' in system
        assert warnings == []

    def test_tools_without_system_message_warn(self, model, call_options):
        _, warnings = model.get_arguments(call_options(mode=RegularMode(tools=[WEATHER_TOOL])))
        assert [w.type for w in warnings] == ["other"]

    def test_tool_choice_unknown_tool_warns(self, model, call_options):
        prompt = [SystemMessage(content="sys")]
        _, warnings = model.get_arguments(
            call_options(
                prompt=prompt,
                mode=RegularMode(
                    tools=[WEATHER_TOOL],
                    tool_choice=ToolChoice(type="tool", tool_name="missing"),
                ),
            )
        )
        assert [w.type for w in warnings] == ["unsupported-tool"]


class TestDoGenerate:
    @pytest.mark.asyncio
    async def test_extract_text(self, model, call_options, prepare_json_response):
        prepare_json_response(generate_body(content="Hello, World!"))
        result = await model.do_generate(call_options())
        assert result.text == "Hello, World!"
        assert result.finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_extract_text_from_chat_message(self, model, call_options, prepare_json_response):
        body = generate_body()
        del body["response"]
        body["message"] = {"role": "assistant", "content": "Hi there"}
        prepare_json_response(body)
        result = await model.do_generate(call_options())
        assert result.text == "Hi there"

    @pytest.mark.asyncio
    async def test_extract_usage(self, model, call_options, prepare_json_response):
        prepare_json_response(generate_body(content="Hello, World!", eval_count=20, prompt_eval_count=25))
        result = await model.do_generate(call_options())
        assert math.isnan(result.usage.completion_tokens)
        assert result.usage.prompt_tokens == 25

    @pytest.mark.asyncio
    async def test_missing_prompt_eval_count_is_nan(self, model, call_options, prepare_json_response):
        prepare_json_response(generate_body(prompt_eval_count=None))
        result = await model.do_generate(call_options())
        assert math.isnan(result.usage.prompt_tokens)

    @pytest.mark.asyncio
    async def test_raw_response_headers(self, model, call_options, prepare_json_response):
        prepare_json_response(generate_body(), headers={"test-header": "test-value"})
        result = await model.do_generate(call_options())
        assert result.raw_response.headers["test-header"] == "test-value"
        assert result.raw_response.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_pass_model_and_messages(self, model, call_options, prepare_json_response, transport):
        prepare_json_response(generate_body())
        await model.do_generate(call_options())
        assert transport.last_body == {
            "model": "llama3",
            "messages": [{"role": "user", "content": "Hello"}],
            "stream": False,
        }
        assert str(transport.requests[-1].url) == "http://127.0.0.1:11434/api/chat"

    @pytest.mark.asyncio
    async def test_raw_call_echo(self, model, call_options, prepare_json_response):
        prepare_json_response(generate_body())
        result = await model.do_generate(call_options(temperature=0.3))
        assert result.raw_call.raw_prompt == [{"role": "user", "content": "Hello"}]
        assert result.raw_call.raw_settings == {"model": "llama3", "options": {"temperature": 0.3}}

    @pytest.mark.asyncio
    async def test_custom_headers(self, http_client, transport, call_options, prepare_json_response):
        prepare_json_response(generate_body())
        custom = create_ollama(headers={"Custom-Header": "test-header"}, http_client=http_client)
        await custom.chat("llama3").do_generate(call_options())
        assert transport.last_headers["Custom-Header"] == "test-header"
        assert transport.last_headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_per_call_headers(self, model, transport, call_options, prepare_json_response):
        prepare_json_response(generate_body())
        await model.do_generate(call_options(headers={"X-Request": "abc", "X-Dropped": None}))
        assert transport.last_headers["X-Request"] == "abc"
        assert "X-Dropped" not in transport.last_headers

    @pytest.mark.asyncio
    async def test_object_json_body(self, model, transport, call_options, prepare_json_response):
        prepare_json_response(generate_body(content="{}"))
        await model.do_generate(call_options(mode=ObjectJsonMode()))
        assert transport.last_body["format"] == "json"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", [ObjectToolMode(tool=WEATHER_TOOL), ObjectGrammarMode()])
    async def test_unsupported_modes_issue_no_request(self, model, transport, call_options, mode):
        with pytest.raises(UnsupportedFunctionalityError):
            await model.do_generate(call_options(mode=mode))
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_http_error_raises_api_call_error(self, model, call_options, prepare_json_response):
        prepare_json_response({"error": "model 'llama3' not found"}, status=404)
        with pytest.raises(APICallError) as exc:
            await model.do_generate(call_options())
        assert exc.value.status_code == 404
        assert str(exc.value) == "model 'llama3' not found"
        assert exc.value.is_retryable is False

    @pytest.mark.asyncio
    async def test_invalid_response_raises_validation_error(self, model, call_options, prepare_json_response):
        prepare_json_response({"done": True})
        with pytest.raises(TypeValidationError):
            await model.do_generate(call_options())

    @pytest.mark.asyncio
    async def test_abort_before_dispatch(self, model, transport, call_options, prepare_json_response):
        prepare_json_response(generate_body())
        signal = asyncio.Event()
        signal.set()
        with pytest.raises(asyncio.CancelledError):
            await model.do_generate(call_options(abort_signal=signal))
        assert transport.requests == []


class TestDoStream:
    @pytest.mark.asyncio
    async def test_stream_text_deltas(self, model, call_options, prepare_stream_response):
        prepare_stream_response(
            [stream_chunk("Hello"), stream_chunk(", "), stream_chunk("World!"), stream_done(290, 26)]
        )
        result = await model.do_stream(call_options())
        parts = await collect(result.stream)

        assert parts[:3] == [
            TextDeltaPart(text_delta="Hello"),
            TextDeltaPart(text_delta=", "),
            TextDeltaPart(text_delta="World!"),
        ]
        assert len(parts) == 4
        finish = parts[3]
        assert isinstance(finish, FinishPart)
        assert finish.finish_reason == "stop"
        assert finish.usage.completion_tokens == 290
        assert math.isnan(finish.usage.prompt_tokens)

    @pytest.mark.asyncio
    async def test_records_split_across_reads(self, model, call_options, prepare_stream_response):
        body = stream_chunk("Hel") + stream_chunk("lo") + stream_done()
        prepare_stream_response([body[:17], body[17:80], body[80:]])
        result = await model.do_stream(call_options())
        parts = await collect(result.stream)
        assert [p.text_delta for p in parts if isinstance(p, TextDeltaPart)] == ["Hel", "lo"]
        assert parts[-1].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_decode_failure_does_not_abort(self, model, call_options, prepare_stream_response):
        prepare_stream_response(
            [stream_chunk("a"), "{not json}\n", '{"done": false}\n', stream_chunk("b"), stream_done()]
        )
        result = await model.do_stream(call_options())
        parts = await collect(result.stream)

        assert [p.type for p in parts] == ["text-delta", "error", "error", "text-delta", "finish"]
        assert isinstance(parts[1], ErrorPart)
        assert parts[4].finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_missing_terminal_record(self, model, call_options, prepare_stream_response):
        prepare_stream_response([stream_chunk("partial")])
        result = await model.do_stream(call_options())
        parts = await collect(result.stream)

        assert [p.type for p in parts] == ["text-delta", "finish"]
        finish = parts[-1]
        assert finish.finish_reason == "other"
        assert math.isnan(finish.usage.completion_tokens)
        assert math.isnan(finish.usage.prompt_tokens)

    @pytest.mark.asyncio
    async def test_empty_stream_still_finishes(self, model, call_options, prepare_stream_response):
        prepare_stream_response([])
        result = await model.do_stream(call_options())
        parts = await collect(result.stream)
        assert [p.type for p in parts] == ["finish"]

    @pytest.mark.asyncio
    async def test_raw_response_headers(self, model, call_options, prepare_stream_response):
        prepare_stream_response([stream_done()], headers={"test-header": "test-value"})
        result = await model.do_stream(call_options())
        await collect(result.stream)
        assert result.raw_response.headers["test-header"] == "test-value"
        assert result.raw_response.headers["content-type"] == "application/x-ndjson"

    @pytest.mark.asyncio
    async def test_pass_messages_and_model(self, model, transport, call_options, prepare_stream_response):
        prepare_stream_response([stream_done()])
        result = await model.do_stream(call_options())
        await collect(result.stream)
        assert transport.last_body == {
            "model": "llama3",
            "messages": [{"role": "user", "content": "Hello"}],
        }

    @pytest.mark.asyncio
    async def test_custom_headers(self, http_client, transport, call_options, prepare_stream_response):
        prepare_stream_response([stream_done()])
        custom = create_ollama(headers={"Custom-Header": "test-header"}, http_client=http_client)
        result = await custom.chat("llama3").do_stream(call_options())
        await collect(result.stream)
        assert transport.last_headers["Custom-Header"] == "test-header"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", [ObjectToolMode(tool=WEATHER_TOOL), ObjectGrammarMode()])
    async def test_unsupported_modes_issue_no_request(self, model, transport, call_options, mode):
        with pytest.raises(UnsupportedFunctionalityError):
            await model.do_stream(call_options(mode=mode))
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_http_error_raises_before_stream(self, model, call_options, prepare_json_response):
        prepare_json_response({"error": "internal"}, status=500)
        with pytest.raises(APICallError) as exc:
            await model.do_stream(call_options())
        assert exc.value.status_code == 500
        assert exc.value.is_retryable is True

    @pytest.mark.asyncio
    async def test_abort_mid_stream_skips_finish(self, model, call_options, prepare_stream_response):
        prepare_stream_response([stream_chunk("a"), stream_chunk("b"), stream_done()])
        signal = asyncio.Event()
        result = await model.do_stream(call_options(abort_signal=signal))

        seen = []
        with pytest.raises(asyncio.CancelledError):
            async for part in result.stream:
                seen.append(part)
                signal.set()

        assert [p.type for p in seen] == ["text-delta"]

    @pytest.mark.asyncio
    async def test_calls_do_not_share_state(self, model, call_options, prepare_stream_response):
        prepare_stream_response([stream_chunk("x"), stream_done(eval_count=7)])
        first = await model.do_stream(call_options())
        first_parts = await collect(first.stream)

        prepare_stream_response([stream_chunk("y")])
        second = await model.do_stream(call_options())
        second_parts = await collect(second.stream)

        assert first_parts[-1].usage.completion_tokens == 7
        assert second_parts[-1].finish_reason == "other"
        assert math.isnan(second_parts[-1].usage.completion_tokens)


class TestAbortInFlight:
    @staticmethod
    def set_soon(signal: asyncio.Event, delay: float = 0.05) -> None:
        asyncio.get_running_loop().call_later(delay, signal.set)

    @pytest.mark.asyncio
    async def test_generate_aborted_while_server_is_slow(self, model, transport, call_options):
        async def slow(request):
            await asyncio.sleep(2)
            return httpx.Response(200, json=generate_body())

        transport.respond = slow
        signal = asyncio.Event()
        self.set_soon(signal)

        started = time.monotonic()
        with pytest.raises(asyncio.CancelledError):
            await model.do_generate(call_options(abort_signal=signal))
        assert time.monotonic() - started < 1.0

    @pytest.mark.asyncio
    async def test_stream_aborted_while_server_stalls(self, model, transport, call_options):
        async def stalled_body():
            yield stream_chunk("a").encode()
            await asyncio.sleep(2)
            yield stream_done().encode()

        transport.respond = lambda _: httpx.Response(200, content=stalled_body())
        signal = asyncio.Event()
        result = await model.do_stream(call_options(abort_signal=signal))
        self.set_soon(signal)

        seen = []
        started = time.monotonic()
        with pytest.raises(asyncio.CancelledError):
            async for part in result.stream:
                seen.append(part)
        assert time.monotonic() - started < 1.0
        assert [p.type for p in seen] == ["text-delta"]

    @pytest.mark.asyncio
    async def test_unset_signal_does_not_interfere(self, model, call_options, prepare_stream_response):
        prepare_stream_response([stream_chunk("a"), stream_done()])
        result = await model.do_stream(call_options(abort_signal=asyncio.Event()))
        parts = await collect(result.stream)
        assert [p.type for p in parts] == ["text-delta", "finish"]


class TestCallSummaryLogging:
    @staticmethod
    def summaries(caplog) -> list[dict]:
        return [r.data for r in caplog.records if r.getMessage() == "Chat call finished"]

    @pytest.mark.asyncio
    async def test_generate_summary(self, model, call_options, prepare_json_response, caplog):
        caplog.set_level(logging.INFO, logger="ollama_provider")
        prepare_json_response(generate_body(prompt_eval_count=11))
        await model.do_generate(call_options())

        (data,) = self.summaries(caplog)
        assert data["streaming"] is False
        assert data["finish_reason"] == "stop"
        assert data["prompt_tokens"] == 11
        assert math.isnan(data["completion_tokens"])
        assert data["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_stream_summary_after_finish(self, model, call_options, prepare_stream_response, caplog):
        caplog.set_level(logging.INFO, logger="ollama_provider")
        prepare_stream_response([stream_chunk("a"), stream_done(eval_count=5)])
        result = await model.do_stream(call_options())
        assert self.summaries(caplog) == []

        await collect(result.stream)
        (data,) = self.summaries(caplog)
        assert data["streaming"] is True
        assert data["completion_tokens"] == 5
        assert math.isnan(data["prompt_tokens"])
