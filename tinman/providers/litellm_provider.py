"""Universal LiteLLM adapter implementing the GenerationProvider interface.

Routes streaming requests to any LLM provider via LiteLLM's unified API.
Assembles streamed tool-call fragments into complete calls, turns JSON-mode
text into partial-object snapshots, and retries transient connection
failures with exponential backoff before the stream starts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import litellm
from pydantic_core import from_json

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from tinman.errors import ProviderError
from tinman.prompts import render_prompt
from tinman.providers.base import GenerationProvider
from tinman.schemas.config import ModelConfig
from tinman.schemas.streaming import (
    FinishIncrement,
    ObjectIncrement,
    RawIncrement,
    TextIncrement,
    ToolCallIncrement,
)
from tinman.validation.adapter import CompatibleSchema

logger = logging.getLogger(__name__)

# Max retries for transient failures
_MAX_RETRIES = 3
_BASE_BACKOFF = 1.0  # seconds

# Errors raised by LiteLLM while a stream is being consumed
_STREAM_ERRORS = (
    litellm.APIError,
    litellm.APIConnectionError,
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.Timeout,
    TimeoutError,
)


def _short_error_reason(error: Exception) -> str:
    """Extract a short, user-friendly reason from a LiteLLM error."""
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    return str(error)[:80]


def _decode_arguments(raw: str) -> Any:
    """Decode tool-call arguments; undecodable text is passed on for validation to reject."""
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_partial(text: str) -> Any | None:
    """Decode the JSON received so far, keeping a trailing open string.

    Returns:
        The partial value, or None if nothing usable has arrived yet.
    """
    if not text.strip():
        return None
    try:
        return from_json(text, allow_partial="trailing-strings")
    except ValueError:
        return None


class LiteLLMProvider(GenerationProvider):
    """Streaming LLM adapter powered by LiteLLM.

    This is the only place model APIs are called; everything else goes
    through the GenerationProvider interface.
    """

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._api_key = os.environ.get(config.api_key_env, "")

    async def stream_text(
        self,
        messages: list[dict[str, Any]],
        system: str,
        *,
        tools: list[dict[str, Any]] | None = None,
        timeout: int = 120,
    ) -> AsyncIterator[RawIncrement]:
        full_messages = [{"role": "system", "content": system}, *messages]
        kwargs = self._build_completion_kwargs(full_messages, timeout)
        if tools and self._config.supports_tools:
            kwargs["tools"] = tools

        response = await self._call_streaming_with_retry(kwargs)

        # Tool-call fragments keyed by their stream index
        pending: dict[int, dict[str, str]] = {}
        finish_reason = "stop"

        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta
                if delta is not None:
                    if delta.content:
                        yield TextIncrement(text=delta.content)
                    for call in getattr(delta, "tool_calls", None) or []:
                        slot = pending.setdefault(
                            call.index or 0, {"id": "", "name": "", "arguments": ""},
                        )
                        if call.id:
                            slot["id"] = call.id
                        function = getattr(call, "function", None)
                        if function is not None:
                            slot["name"] += function.name or ""
                            slot["arguments"] += function.arguments or ""
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except _STREAM_ERRORS as e:
            raise ProviderError(
                f"Stream from {self._config.model} failed: {_short_error_reason(e)}"
            ) from e

        for index in sorted(pending):
            slot = pending[index]
            yield ToolCallIncrement(
                tool_call_id=slot["id"] or f"call_{index}",
                tool_name=slot["name"],
                arguments=_decode_arguments(slot["arguments"]),
            )
        yield FinishIncrement(reason=finish_reason)

    async def stream_object(
        self,
        messages: list[dict[str, Any]],
        system: str,
        *,
        schema: CompatibleSchema,
        timeout: int = 120,
    ) -> AsyncIterator[RawIncrement]:
        instructions = render_prompt(
            "json_output",
            schema=json.dumps(schema.tool_parameters(legacy=False), indent=2),
        )
        full_messages = [
            {"role": "system", "content": f"{system}\n\n{instructions}"},
            *messages,
        ]
        kwargs = self._build_completion_kwargs(full_messages, timeout)
        if self._config.supports_structured:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._call_streaming_with_retry(kwargs)

        accumulated = ""
        last_value: Any = None
        finish_reason = "stop"
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                text = choice.delta.content if choice.delta else None
                if text:
                    accumulated += text
                    value = _parse_partial(accumulated)
                    if isinstance(value, dict) and value != last_value:
                        last_value = value
                        yield ObjectIncrement(value=value)
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except _STREAM_ERRORS as e:
            raise ProviderError(
                f"Object stream from {self._config.model} failed: {_short_error_reason(e)}"
            ) from e

        yield FinishIncrement(reason=finish_reason)

    async def generate_image(self, prompt: str, *, timeout: int = 120) -> str:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "prompt": prompt,
            "n": 1,
            "size": "1024x1024",
            "response_format": "b64_json",
            "timeout": float(timeout),
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        try:
            response = await litellm.aimage_generation(**kwargs)
        except _STREAM_ERRORS as e:
            raise ProviderError(
                f"Image generation with {self._config.model} failed: {_short_error_reason(e)}"
            ) from e
        if not response.data or not response.data[0].b64_json:
            raise ProviderError(f"Image generation with {self._config.model} returned no image")
        return response.data[0].b64_json

    async def _call_streaming_with_retry(self, kwargs: dict) -> Any:
        """Call litellm.acompletion with stream=True and retry on failure.

        Retries only cover opening the stream. A failure after increments
        have been yielded is final.

        Raises:
            ProviderError: If the call fails after all retries or with a
                non-retryable error.
        """
        last_error: Exception | None = None

        for attempt in range(_MAX_RETRIES):
            try:
                return await litellm.acompletion(**kwargs)
            except TimeoutError:
                last_error = TimeoutError(
                    f"Streaming call timed out after {kwargs.get('timeout')}s "
                    f"(attempt {attempt + 1}/{_MAX_RETRIES})"
                )
            except litellm.AuthenticationError:
                raise ProviderError(
                    f"Authentication failed for {self._config.model}. "
                    f"Check that {self._config.api_key_env} is set correctly."
                ) from None
            except litellm.BadRequestError as e:
                raise ProviderError(
                    f"Bad request to {self._config.model}: {e}"
                ) from e
            except (
                litellm.RateLimitError,
                litellm.ServiceUnavailableError,
                litellm.InternalServerError,
                litellm.APIConnectionError,
            ) as e:
                last_error = e

            if attempt < _MAX_RETRIES - 1:
                backoff = _BASE_BACKOFF * (2**attempt)
                logger.warning(
                    "Streaming retry %d/%d for %s (%s, backoff: %.1fs)",
                    attempt + 1, _MAX_RETRIES, self._config.display_name,
                    _short_error_reason(last_error), backoff,
                )
                await asyncio.sleep(backoff)

        raise ProviderError(
            f"Streaming call to {self._config.model} failed after "
            f"{_MAX_RETRIES} retries: {_short_error_reason(last_error)}"
        ) from last_error

    def _build_completion_kwargs(self, messages: list[dict[str, Any]], timeout: int) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": messages,
            "timeout": float(timeout),
            "stream": True,
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base
        return kwargs
