"""Tests for dextra.llm: BaseLLMClient logic and the litellm adapter"""

from types import SimpleNamespace

import litellm
import pytest

from dextra.llm import LiteLLMClient, build_litellm_model_string
from dextra.llm.base import (
    BaseLLMClient,
    LLMConfig,
    LLMResponse,
    StopReason,
    StreamChunk,
    Usage,
)
from dextra.llm.litellm_client import _parse_arguments
from dextra.protocols import LLMClientProtocol


# ── Concrete subclass for testing (abstract methods stubbed) ──


class StubLLMClient(BaseLLMClient):
    provider = "stub"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.seen_kwargs = None

    async def _call_api(self, messages, tools=None, **kwargs):
        self.seen_kwargs = kwargs
        return LLMResponse(content="stub")

    async def _stream_api(self, messages, tools=None, **kwargs):
        yield StreamChunk(content="Hel")
        yield StreamChunk(content="lo", is_final=True)


@pytest.fixture
def client():
    return StubLLMClient(model="gpt-4o")


# =========================================================================
# Usage
# =========================================================================


class TestUsage:

    def test_add(self):
        total = Usage(1, 2, 3) + Usage(10, 20, 30)
        assert (total.prompt_tokens, total.completion_tokens, total.total_tokens) == (11, 22, 33)

    def test_add_none(self):
        usage = Usage(1, 2, 3)
        total = usage + None
        assert total.total_tokens == 3
        assert total is not usage


def test_base_client_satisfies_protocol(client):
    assert isinstance(client, LLMClientProtocol)
    assert not isinstance(object(), LLMClientProtocol)


# =========================================================================
# BaseLLMClient
# =========================================================================


class TestModelParams:

    def test_defaults_from_config(self, client):
        params = client._model_params()
        assert params["temperature"] == 0.7
        assert params["max_tokens"] == 4096
        assert params["num_retries"] == 3

    def test_overrides(self, client):
        params = client._model_params(temperature=0.0, max_tokens=5, response_format={"type": "json_object"})
        assert params["temperature"] == 0.0
        assert params["max_tokens"] == 5
        assert "response_format" not in params

    def test_extra_passed_through(self):
        stub = StubLLMClient(config=LLMConfig(model="m", extra={"seed": 7}))
        assert stub._model_params()["seed"] == 7

    def test_kwargs_override_config(self):
        stub = StubLLMClient(config=LLMConfig(model="m"), temperature=0.1)
        assert stub.config.temperature == 0.1


class TestChatCompletion:

    @pytest.mark.asyncio
    async def test_config_merged_into_kwargs(self, client):
        await client.chat_completion(
            [{"role": "user", "content": "hi"}],
            config={"temperature": 0.0},
            stop=["\n"],
        )
        assert client.seen_kwargs == {"temperature": 0.0, "stop": ["\n"]}

    @pytest.mark.asyncio
    async def test_stream_accumulates(self, client):
        chunks = [c async for c in client.stream_completion([{"role": "user", "content": "hi"}])]
        assert [c.accumulated_content for c in chunks] == ["Hel", "Hello"]

    @pytest.mark.asyncio
    async def test_async_context_manager(self):
        async with StubLLMClient(model="m") as stub:
            assert stub.config.model == "m"


# =========================================================================
# litellm adapter
# =========================================================================


class TestModelString:

    @pytest.mark.parametrize("provider,model,expected", [
        ("openai", "gpt-4o", "gpt-4o"),
        ("anthropic", "claude-sonnet-4-5", "anthropic/claude-sonnet-4-5"),
        ("Gemini", "gemini-2.0-flash", "gemini/gemini-2.0-flash"),
        ("ollama", "llama3", "ollama/llama3"),
        ("custom", "x", "x"),
    ])
    def test_mapping(self, provider, model, expected):
        assert build_litellm_model_string(provider, model) == expected


class TestParseArguments:

    def test_json_object(self):
        assert _parse_arguments('{"mint": "A"}').arguments == {"mint": "A"}

    def test_dict_passthrough(self):
        assert _parse_arguments({"a": 1}).arguments == {"a": 1}

    def test_empty(self):
        call = _parse_arguments("")
        assert call.arguments == {}
        assert call.raw_arguments is None

    def test_invalid_json_kept_raw(self):
        call = _parse_arguments('{"mint": ')
        assert call.arguments == {}
        assert call.raw_arguments == '{"mint": '

    def test_non_object_kept_raw(self):
        assert _parse_arguments("[1, 2]").raw_arguments == "[1, 2]"


class TestStopReason:

    @pytest.mark.parametrize("finish,expected", [
        ("stop", StopReason.END_TURN),
        ("length", StopReason.MAX_TOKENS),
        ("tool_calls", StopReason.TOOL_USE),
        ("content_filter", StopReason.CONTENT_FILTER),
        (None, StopReason.END_TURN),
        ("weird", StopReason.END_TURN),
    ])
    def test_mapping(self, finish, expected):
        assert LiteLLMClient._parse_stop_reason(finish) == expected


def _stream_chunk(content=None, tool_calls=None, finish=None, usage=None, choices=True):
    if not choices:
        return SimpleNamespace(choices=[], usage=usage)
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=delta, finish_reason=finish)],
        usage=usage,
    )


def _tc_delta(index, call_id=None, name=None, arguments=None):
    return SimpleNamespace(
        index=index,
        id=call_id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


class _AsyncIter:
    def __init__(self, items):
        self._items = list(items)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._items:
            raise StopAsyncIteration
        return self._items.pop(0)


class TestLiteLLMClient:

    def _client(self, **kwargs):
        return LiteLLMClient(
            config=LLMConfig(model="gpt-4o", api_key="sk-test", **kwargs),
            provider_name="openai",
        )

    def test_model_required(self):
        with pytest.raises(ValueError):
            LiteLLMClient(provider_name="openai")

    def test_satisfies_client_protocol(self):
        assert isinstance(self._client(), LLMClientProtocol)

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")
        client = LiteLLMClient(model="claude-sonnet-4-5", provider_name="anthropic")
        assert client._base_kwargs["api_key"] == "sk-ant"

    @pytest.mark.asyncio
    async def test_chat_completion(self, monkeypatch):
        captured = {}

        async def fake_acompletion(**params):
            captured.update(params)
            message = SimpleNamespace(
                content="",
                tool_calls=[SimpleNamespace(
                    id="tc-1",
                    function=SimpleNamespace(name="get_price", arguments='{"mint": "A"}'),
                )],
            )
            return SimpleNamespace(
                choices=[SimpleNamespace(message=message, finish_reason="tool_calls")],
                usage=SimpleNamespace(prompt_tokens=5, completion_tokens=3, total_tokens=8),
                model="gpt-4o",
            )

        monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
        client = self._client(base_url="http://proxy")
        tools = [{"type": "function", "function": {"name": "get_price"}}]

        response = await client.chat_completion(
            [{"role": "user", "content": "hi"}],
            tools=tools,
            config={"temperature": 0.0, "response_format": {"type": "json_object"}},
        )

        assert captured["model"] == "gpt-4o"
        assert captured["tools"] == tools
        assert captured["tool_choice"] == "auto"
        assert captured["temperature"] == 0.0
        assert captured["response_format"] == {"type": "json_object"}
        assert captured["api_base"] == "http://proxy"
        assert captured["api_key"] == "sk-test"
        assert response.tool_calls[0].name == "get_price"
        assert response.tool_calls[0].arguments == {"mint": "A"}
        assert response.stop_reason == StopReason.TOOL_USE
        assert response.usage.total_tokens == 8

    @pytest.mark.asyncio
    async def test_stream_assembles_tool_call_deltas(self, monkeypatch):
        captured = {}

        async def fake_acompletion(**params):
            captured.update(params)
            return _AsyncIter([
                _stream_chunk(content="Let me check"),
                _stream_chunk(tool_calls=[_tc_delta(0, "tc-1", "get_price", '{"mi')]),
                _stream_chunk(tool_calls=[_tc_delta(0, arguments='nt": "A"}')]),
                _stream_chunk(finish="tool_calls"),
                _stream_chunk(
                    choices=False,
                    usage=SimpleNamespace(prompt_tokens=7, completion_tokens=2, total_tokens=9),
                ),
            ])

        monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
        client = self._client()

        chunks = [c async for c in client.stream_completion([{"role": "user", "content": "hi"}])]

        assert captured["stream"] is True
        assert captured["stream_options"] == {"include_usage": True}
        assert chunks[0].content == "Let me check"
        final = [c for c in chunks if c.tool_calls]
        assert len(final) == 1
        assert final[0].tool_calls[0].id == "tc-1"
        assert final[0].tool_calls[0].arguments == {"mint": "A"}
        assert chunks[-1].usage.total_tokens == 9
