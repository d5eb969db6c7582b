"""Model registry and TOML configuration loader.

Loads model definitions and role assignments from models.toml and stream
settings from defaults.toml. Environment variables override the stream
and validation settings at load time.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from tinman.errors import ConfigurationError
from tinman.providers.base import GenerationProvider
from tinman.schemas.config import AppConfig, ModelConfig, ModelRole

# Default config directory relative to the tinman package
_CONFIG_DIR = Path(__file__).parent.parent / "config"

# Environment variable -> (section, key)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TINMAN_STORE_BACKEND": ("stream", "store_backend"),
    "TINMAN_REDIS_URL": ("stream", "redis_url"),
    "TINMAN_DB_PATH": ("stream", "db_path"),
    "TINMAN_MAX_DURATION": ("stream", "max_duration"),
    "TINMAN_LEGACY_TOOL_SCHEMAS": ("validation", "legacy_tool_schemas"),
}


def _load_toml(path: Path, kind: str) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"{kind} not found: {path}")
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_models(config_path: Path | None = None) -> dict[str, ModelConfig]:
    """Load the model registry from a TOML file.

    Args:
        config_path: Path to models.toml. Defaults to tinman/config/models.toml.

    Returns:
        Dictionary mapping model keys to ModelConfig instances.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "models.toml"
    raw = _load_toml(path, "Model registry")

    models_section = raw.get("models")
    if not models_section or not isinstance(models_section, dict):
        raise ValueError(f"No [models] section found in {path}")

    return {
        key: ModelConfig(**entry)
        for key, entry in models_section.items()
        if isinstance(entry, dict)
    }


def load_roles(config_path: Path | None = None) -> dict[ModelRole, str]:
    """Load the role -> model key mapping from the [roles] section.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the [roles] section is missing or names an unknown role.
    """
    path = config_path or _CONFIG_DIR / "models.toml"
    raw = _load_toml(path, "Model registry")

    roles_section = raw.get("roles")
    if not roles_section or not isinstance(roles_section, dict):
        raise ValueError(f"No [roles] section found in {path}")

    roles: dict[ModelRole, str] = {}
    for role, key in roles_section.items():
        try:
            roles[ModelRole(role)] = key
        except ValueError:
            raise ValueError(f"Unknown model role '{role}' in {path}") from None
    return roles


def load_app_config(config_path: Path | None = None) -> AppConfig:
    """Load stream and validation settings from a TOML file.

    Args:
        config_path: Path to defaults.toml. Defaults to tinman/config/defaults.toml.

    Returns:
        AppConfig with TOML values, then environment overrides applied.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    raw = _load_toml(path, "Stream config")

    sections = {
        "stream": dict(raw.get("stream", {})),
        "validation": dict(raw.get("validation", {})),
    }
    for env_var, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value is None or value == "":
            continue
        if key == "legacy_tool_schemas":
            sections[section][key] = value.strip().lower() in ("1", "true", "yes", "on")
        else:
            sections[section][key] = value

    return AppConfig(**sections)


def resolve_model(
    role: ModelRole | str,
    registry: dict[str, ModelConfig],
    roles: dict[ModelRole, str],
) -> ModelConfig:
    """Pick the model configured for a role.

    Raises:
        ConfigurationError: If the role has no assignment or the assigned
            key is not in the registry.
    """
    role = ModelRole(role)
    key = roles.get(role)
    if key is None:
        raise ConfigurationError(f"No model assigned to role '{role}'")
    if key not in registry:
        raise ConfigurationError(f"Role '{role}' points at unknown model '{key}'")
    return registry[key]


def create_provider(config: ModelConfig) -> GenerationProvider:
    """Build the LiteLLM provider for a model entry."""
    from tinman.providers.litellm_provider import LiteLLMProvider

    return LiteLLMProvider(config)
