"""Deterministic provider that replays canned increments.

Backs the demo command and the test suite. Each stream_text() and
stream_object() call consumes the next script from its queue; a script
item that is an exception instance is raised at that point in the stream.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Iterable
from typing import Any, Union

from tinman.errors import ProviderError
from tinman.providers.base import GenerationProvider
from tinman.schemas.config import ModelConfig
from tinman.schemas.streaming import FinishIncrement, RawIncrement
from tinman.validation.adapter import CompatibleSchema

ScriptItem = Union[RawIncrement, BaseException]

_SCRIPTED_CONFIG = ModelConfig(
    provider="scripted",
    model="scripted",
    display_name="Scripted",
    api_key_env="",
    supports_tools=True,
    supports_structured=True,
    supports_images=True,
)


class ScriptedProvider(GenerationProvider):
    """Replays scripts in call order.

    Args:
        text_scripts: One increment list per stream_text() call.
        object_scripts: One increment list per stream_object() call.
        images: Base64 payloads returned by successive generate_image() calls.
        delay: Seconds to sleep before each increment.
    """

    def __init__(
        self,
        text_scripts: Iterable[list[ScriptItem]] = (),
        object_scripts: Iterable[list[ScriptItem]] = (),
        images: Iterable[str] = (),
        *,
        delay: float = 0.0,
        config: ModelConfig | None = None,
    ) -> None:
        super().__init__(config or _SCRIPTED_CONFIG)
        self._text = deque(text_scripts)
        self._objects = deque(object_scripts)
        self._images = deque(images)
        self._delay = delay
        self.calls: list[dict[str, Any]] = []

    async def _replay(self, script: list[ScriptItem]) -> AsyncIterator[RawIncrement]:
        for item in script:
            if self._delay:
                await asyncio.sleep(self._delay)
            else:
                await asyncio.sleep(0)
            if isinstance(item, BaseException):
                raise item
            yield item

    async def stream_text(
        self,
        messages: list[dict[str, Any]],
        system: str,
        *,
        tools: list[dict[str, Any]] | None = None,
        timeout: int = 120,
    ) -> AsyncIterator[RawIncrement]:
        self.calls.append({
            "method": "stream_text",
            "messages": messages,
            "system": system,
            "tools": [t["function"]["name"] for t in tools or []],
        })
        script = self._text.popleft() if self._text else [FinishIncrement()]
        async for item in self._replay(script):
            yield item

    async def stream_object(
        self,
        messages: list[dict[str, Any]],
        system: str,
        *,
        schema: CompatibleSchema,
        timeout: int = 120,
    ) -> AsyncIterator[RawIncrement]:
        self.calls.append({
            "method": "stream_object",
            "messages": messages,
            "system": system,
            "schema": schema.name,
        })
        script = self._objects.popleft() if self._objects else [FinishIncrement()]
        async for item in self._replay(script):
            yield item

    async def generate_image(self, prompt: str, *, timeout: int = 120) -> str:
        self.calls.append({"method": "generate_image", "prompt": prompt})
        if not self._images:
            raise ProviderError("No scripted image left")
        await asyncio.sleep(self._delay)
        return self._images.popleft()
