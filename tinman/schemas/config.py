"""Configuration schemas loaded from models.toml and defaults.toml."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Configuration for a single LLM model in the registry.

    Loaded from models.toml. Each entry provides the LiteLLM routing
    information and capability flags.
    """

    provider: str = Field(description="Provider identifier (e.g. 'anthropic', 'openai')")
    model: str = Field(description="LiteLLM model identifier")
    display_name: str = Field(description="Human-friendly model name for CLI output")
    api_key_env: str = Field(description="Environment variable name holding the API key")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    supports_tools: bool = Field(default=False, description="Whether the model supports tool use")
    supports_structured: bool = Field(
        default=False, description="Whether the model supports JSON output mode",
    )
    supports_images: bool = Field(
        default=False, description="Whether the model can generate images",
    )


class ModelRole(StrEnum):
    """Named model slots selected per request or per artifact kind."""

    CHAT = "chat-model"
    CHAT_REASONING = "chat-model-reasoning"
    TITLE = "title-model"
    ARTIFACT = "artifact-model"
    IMAGE = "image-model"


class StoreBackend(StrEnum):
    """Backing implementation for the resumable stream store."""

    REDIS = "redis"
    MEMORY = "memory"


class StreamConfig(BaseModel):
    """Runtime settings for sessions and the resumable stream store."""

    max_duration: float = Field(
        default=300.0, gt=0, description="Maximum seconds a session may stream",
    )
    retention_seconds: int = Field(
        default=86400, gt=0, description="TTL for stored session events",
    )
    store_backend: StoreBackend = Field(
        default=StoreBackend.REDIS, description="Stream store implementation",
    )
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis connection URL")
    key_prefix: str = Field(default="tinman:stream:", description="Namespace for store keys")
    poll_interval: float = Field(
        default=0.25, gt=0, description="Seconds between polls when following a remote session",
    )
    db_path: str = Field(default="~/.tinman/tinman.db", description="SQLite database path")
    provider_timeout: int = Field(default=120, gt=0, description="Per-call provider timeout")


class ValidationConfig(BaseModel):
    """Schema migration flags."""

    legacy_tool_schemas: bool = Field(
        default=True,
        description="Export tool parameter schemas from the pydantic.v1 shape",
    )


class AppConfig(BaseModel):
    """Combined settings from defaults.toml."""

    stream: StreamConfig = Field(default_factory=StreamConfig, description="Stream settings")
    validation: ValidationConfig = Field(
        default_factory=ValidationConfig, description="Schema migration flags",
    )
