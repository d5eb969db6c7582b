"""Generation providers and the model registry."""

from tinman.providers.base import GenerationProvider
from tinman.providers.registry import (
    create_provider,
    load_app_config,
    load_models,
    load_roles,
    resolve_model,
)
from tinman.providers.scripted import ScriptedProvider

__all__ = [
    "GenerationProvider",
    "ScriptedProvider",
    "create_provider",
    "load_app_config",
    "load_models",
    "load_roles",
    "resolve_model",
]
