"""Abstract base class for generation providers.

Defines the GenerationProvider interface every model adapter implements.
The stream coordinator and artifact handlers only talk to this interface;
the concrete provider is injected per session.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from tinman.schemas.config import ModelConfig
from tinman.schemas.streaming import RawIncrement
from tinman.validation.adapter import CompatibleSchema


class GenerationProvider(ABC):
    """Abstract interface for a model that streams incremental output.

    Every stream yields raw increments and ends with a FinishIncrement.
    Upstream failures raise ProviderError instead of ending the stream.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config

    # ── Identity ──────────────────────────────────────────────

    @property
    def provider_id(self) -> str:
        """Provider identifier (e.g. 'anthropic', 'openai')."""
        return self._config.provider

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.model

    @property
    def display_name(self) -> str:
        """Human-friendly model name for CLI output."""
        return self._config.display_name

    # ── Capabilities ──────────────────────────────────────────

    @property
    def supports_tools(self) -> bool:
        """Whether the model supports tool/function calling."""
        return self._config.supports_tools

    @property
    def supports_structured(self) -> bool:
        """Whether the model supports JSON output mode."""
        return self._config.supports_structured

    # ── Generation ────────────────────────────────────────────

    @abstractmethod
    def stream_text(
        self,
        messages: list[dict[str, Any]],
        system: str,
        *,
        tools: list[dict[str, Any]] | None = None,
        timeout: int = 120,
    ) -> AsyncIterator[RawIncrement]:
        """Stream a text completion, including any tool calls.

        Args:
            messages: Conversation messages in OpenAI format.
            system: System prompt for this call.
            tools: Tool definitions in OpenAI function format.
            timeout: Timeout in seconds for the model call.

        Yields:
            TextIncrement and ToolCallIncrement items, then FinishIncrement.

        Raises:
            ProviderError: If the call fails.
        """
        ...

    @abstractmethod
    def stream_object(
        self,
        messages: list[dict[str, Any]],
        system: str,
        *,
        schema: CompatibleSchema,
        timeout: int = 120,
    ) -> AsyncIterator[RawIncrement]:
        """Stream a schema-shaped object as partial snapshots.

        Yields:
            ObjectIncrement snapshots, then FinishIncrement.

        Raises:
            ProviderError: If the call fails.
        """
        ...

    @abstractmethod
    async def generate_image(self, prompt: str, *, timeout: int = 120) -> str:
        """Generate one image and return it base64-encoded.

        Raises:
            ProviderError: If the call fails.
        """
        ...
