"""Tests for tinman.providers.litellm_provider — LiteLLM streaming adapter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import litellm
import pytest

from tinman.artifacts.code import CODE_SCHEMA
from tinman.errors import ProviderError
from tinman.providers.litellm_provider import (
    LiteLLMProvider,
    _decode_arguments,
    _parse_partial,
    _short_error_reason,
)
from tinman.schemas.config import ModelConfig
from tinman.schemas.streaming import (
    FinishIncrement,
    ObjectIncrement,
    TextIncrement,
    ToolCallIncrement,
)

# Shorthand for the mock targets
_ACOMP = "tinman.providers.litellm_provider.litellm.acompletion"
_AIMAGE = "tinman.providers.litellm_provider.litellm.aimage_generation"
_SLEEP = "tinman.providers.litellm_provider.asyncio.sleep"


# ── Helpers ───────────────────────────────────────────────────


def _make_config(**overrides) -> ModelConfig:
    """Create a ModelConfig with sensible defaults."""
    defaults = {
        "provider": "openai",
        "model": "gpt-4o",
        "display_name": "GPT-4o",
        "api_key_env": "TINMAN_TEST_KEY",
        "supports_tools": True,
        "supports_structured": True,
    }
    defaults.update(overrides)
    return ModelConfig(**defaults)


def _chunk(content: str | None = None, tool_calls=None, finish_reason: str | None = None):
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


def _tool_fragment(index: int, call_id: str | None, name: str | None, arguments: str | None):
    function = SimpleNamespace(name=name, arguments=arguments)
    return SimpleNamespace(index=index, id=call_id, function=function)


class _Stream:
    """Async-iterable stand-in for a LiteLLM CustomStreamWrapper."""

    def __init__(self, chunks, error: Exception | None = None) -> None:
        self._chunks = list(chunks)
        self._error = error

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error


async def _collect(stream) -> list:
    return [item async for item in stream]


# ══════════════════════════════════════════════════════════════════
# stream_text
# ══════════════════════════════════════════════════════════════════


class TestStreamText:
    @pytest.mark.asyncio
    async def test_text_then_finish(self):
        provider = LiteLLMProvider(_make_config())
        stream = _Stream([_chunk("Hel"), _chunk("lo"), _chunk(finish_reason="stop")])
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream) as mock:
            out = await _collect(provider.stream_text([{"role": "user", "content": "hi"}], "sys"))

        assert out == [TextIncrement(text="Hel"), TextIncrement(text="lo"), FinishIncrement()]
        kwargs = mock.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_tool_call_fragments_assembled(self):
        provider = LiteLLMProvider(_make_config())
        stream = _Stream([
            _chunk(tool_calls=[_tool_fragment(0, "call_1", "create_document", '{"title": ')]),
            _chunk(tool_calls=[_tool_fragment(0, None, None, '"demo", "kind": "code"}')]),
            _chunk(finish_reason="tool_calls"),
        ])
        tools = [{"type": "function", "function": {"name": "create_document"}}]
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream) as mock:
            out = await _collect(provider.stream_text([], "sys", tools=tools))

        assert out == [
            ToolCallIncrement(
                tool_call_id="call_1",
                tool_name="create_document",
                arguments={"title": "demo", "kind": "code"},
            ),
            FinishIncrement(reason="tool_calls"),
        ]
        assert mock.call_args.kwargs["tools"] == tools

    @pytest.mark.asyncio
    async def test_tools_dropped_without_support(self):
        provider = LiteLLMProvider(_make_config(supports_tools=False))
        with patch(_ACOMP, new_callable=AsyncMock, return_value=_Stream([])) as mock:
            await _collect(provider.stream_text([], "sys", tools=[{"type": "function"}]))
        assert "tools" not in mock.call_args.kwargs

    @pytest.mark.asyncio
    async def test_mid_stream_failure_is_provider_error(self):
        provider = LiteLLMProvider(_make_config())
        error = litellm.APIConnectionError(message="connection reset", llm_provider="openai", model="gpt-4o")
        stream = _Stream([_chunk("partial")], error=error)
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream):
            with pytest.raises(ProviderError, match="connection"):
                await _collect(provider.stream_text([], "sys"))

    @pytest.mark.asyncio
    async def test_api_key_and_base_passed(self, monkeypatch):
        monkeypatch.setenv("TINMAN_TEST_KEY", "sk-test")
        provider = LiteLLMProvider(_make_config(api_base="http://localhost:4000"))
        with patch(_ACOMP, new_callable=AsyncMock, return_value=_Stream([])) as mock:
            await _collect(provider.stream_text([], "sys", timeout=30))
        kwargs = mock.call_args.kwargs
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["api_base"] == "http://localhost:4000"
        assert kwargs["timeout"] == 30.0


# ══════════════════════════════════════════════════════════════════
# stream_object
# ══════════════════════════════════════════════════════════════════


class TestStreamObject:
    @pytest.mark.asyncio
    async def test_partial_snapshots(self):
        provider = LiteLLMProvider(_make_config())
        stream = _Stream([
            _chunk('{"code": "print'),
            _chunk("(1)"),
            _chunk('"}', finish_reason="stop"),
        ])
        with patch(_ACOMP, new_callable=AsyncMock, return_value=stream) as mock:
            out = await _collect(provider.stream_object([], "sys", schema=CODE_SCHEMA))

        assert out == [
            ObjectIncrement(value={"code": "print"}),
            ObjectIncrement(value={"code": "print(1)"}),
            FinishIncrement(),
        ]
        kwargs = mock.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert '"code"' in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_no_json_mode_without_support(self):
        provider = LiteLLMProvider(_make_config(supports_structured=False))
        with patch(_ACOMP, new_callable=AsyncMock, return_value=_Stream([])) as mock:
            out = await _collect(provider.stream_object([], "sys", schema=CODE_SCHEMA))
        assert out == [FinishIncrement()]
        assert "response_format" not in mock.call_args.kwargs


# ══════════════════════════════════════════════════════════════════
# Retries
# ══════════════════════════════════════════════════════════════════


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        provider = LiteLLMProvider(_make_config())
        error = litellm.RateLimitError(message="429 rate limited", llm_provider="openai", model="gpt-4o")
        mock = AsyncMock(side_effect=[error, _Stream([_chunk("ok")])])
        with patch(_ACOMP, mock), patch(_SLEEP, new_callable=AsyncMock) as sleep:
            out = await _collect(provider.stream_text([], "sys"))
        assert out[0] == TextIncrement(text="ok")
        assert mock.await_count == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        provider = LiteLLMProvider(_make_config())
        mock = AsyncMock(side_effect=TimeoutError())
        with patch(_ACOMP, mock), patch(_SLEEP, new_callable=AsyncMock):
            with pytest.raises(ProviderError, match="after 3 retries"):
                await _collect(provider.stream_text([], "sys"))
        assert mock.await_count == 3

    @pytest.mark.asyncio
    async def test_auth_error_not_retried(self):
        provider = LiteLLMProvider(_make_config())
        error = litellm.AuthenticationError(message="bad key", llm_provider="openai", model="gpt-4o")
        mock = AsyncMock(side_effect=error)
        with patch(_ACOMP, mock):
            with pytest.raises(ProviderError, match="TINMAN_TEST_KEY"):
                await _collect(provider.stream_text([], "sys"))
        assert mock.await_count == 1


# ══════════════════════════════════════════════════════════════════
# Images
# ══════════════════════════════════════════════════════════════════


class TestGenerateImage:
    @pytest.mark.asyncio
    async def test_returns_base64(self):
        provider = LiteLLMProvider(_make_config(model="gpt-image-1", supports_images=True))
        response = SimpleNamespace(data=[SimpleNamespace(b64_json="aGk=")])
        with patch(_AIMAGE, new_callable=AsyncMock, return_value=response) as mock:
            assert await provider.generate_image("a cat") == "aGk="
        assert mock.call_args.kwargs["response_format"] == "b64_json"

    @pytest.mark.asyncio
    async def test_empty_response(self):
        provider = LiteLLMProvider(_make_config())
        response = SimpleNamespace(data=[])
        with patch(_AIMAGE, new_callable=AsyncMock, return_value=response):
            with pytest.raises(ProviderError, match="no image"):
                await provider.generate_image("a cat")


# ── Helpers ───────────────────────────────────────────────────


class TestHelpers:
    def test_decode_arguments(self):
        assert _decode_arguments("") == {}
        assert _decode_arguments('{"a": 1}') == {"a": 1}
        assert _decode_arguments("{broken") == "{broken"

    def test_short_error_reason(self):
        assert _short_error_reason(Exception("Error 429")) == "rate limit"
        assert _short_error_reason(TimeoutError()) == "timeout"
        assert _short_error_reason(Exception("503")) == "service unavailable"
        assert _short_error_reason(Exception("x" * 200)) == "x" * 80


class TestParsePartial:
    def test_complete_object(self):
        assert _parse_partial('{"code": "x"}') == {"code": "x"}

    def test_nothing_received(self):
        assert _parse_partial("") is None
        assert _parse_partial("   ") is None

    def test_open_string_is_kept(self):
        assert _parse_partial('{"code": "print(1') == {"code": "print(1"}

    def test_open_array(self):
        assert _parse_partial('{"items": [1, 2') == {"items": [1, 2]}

    def test_open_brace(self):
        assert _parse_partial("{") == {}

    def test_invalid_text(self):
        assert _parse_partial("]") is None
