"""Tests for tinman.providers.registry — TOML config loading and role resolution."""

from pathlib import Path

import pytest

from tinman.errors import ConfigurationError
from tinman.providers.litellm_provider import LiteLLMProvider
from tinman.providers.registry import (
    create_provider,
    load_app_config,
    load_models,
    load_roles,
    resolve_model,
)
from tinman.schemas.config import ModelConfig, ModelRole, StoreBackend

# Path to the real config files shipped with the package
_CONFIG_DIR = Path(__file__).parent.parent / "tinman" / "config"


class TestLoadModels:
    def test_loads_real_config(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        assert {"claude-sonnet", "gpt-4o", "gpt-image"} <= set(registry)

    def test_model_config_types(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        for key, model in registry.items():
            assert isinstance(model, ModelConfig), f"{key} is not ModelConfig"
            assert model.model != ""
            assert model.api_key_env != ""

    def test_image_model_flag(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        assert registry["gpt-image"].supports_images
        assert not registry["claude-sonnet"].supports_structured

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_models(tmp_path / "missing.toml")

    def test_missing_section(self, tmp_path):
        path = tmp_path / "models.toml"
        path.write_text("[roles]\nchat-model = 'x'\n")
        with pytest.raises(ValueError, match="No \\[models\\] section"):
            load_models(path)


class TestLoadRoles:
    def test_every_role_assigned(self):
        roles = load_roles(_CONFIG_DIR / "models.toml")
        assert set(roles) == set(ModelRole)

    def test_unknown_role(self, tmp_path):
        path = tmp_path / "models.toml"
        path.write_text("[roles]\nvideo-model = 'x'\n")
        with pytest.raises(ValueError, match="Unknown model role"):
            load_roles(path)


class TestResolveModel:
    def test_resolves_shipped_roles(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        roles = load_roles(_CONFIG_DIR / "models.toml")
        for role in ModelRole:
            assert resolve_model(role, registry, roles).model

    def test_unassigned_role(self):
        with pytest.raises(ConfigurationError, match="No model assigned"):
            resolve_model(ModelRole.CHAT, {}, {})

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="unknown model"):
            resolve_model("chat-model", {}, {ModelRole.CHAT: "ghost"})

    def test_create_provider(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        provider = create_provider(registry["gpt-4o"])
        assert isinstance(provider, LiteLLMProvider)
        assert provider.model_id == "gpt-4o"


class TestLoadAppConfig:
    @pytest.fixture(autouse=True)
    def _clear_env(self, monkeypatch):
        for name in (
            "TINMAN_STORE_BACKEND",
            "TINMAN_REDIS_URL",
            "TINMAN_DB_PATH",
            "TINMAN_MAX_DURATION",
            "TINMAN_LEGACY_TOOL_SCHEMAS",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = load_app_config(_CONFIG_DIR / "defaults.toml")
        assert config.stream.retention_seconds == 86400
        assert config.stream.max_duration == 300.0
        assert config.stream.store_backend is StoreBackend.REDIS
        assert config.validation.legacy_tool_schemas

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TINMAN_STORE_BACKEND", "memory")
        monkeypatch.setenv("TINMAN_MAX_DURATION", "12.5")
        monkeypatch.setenv("TINMAN_LEGACY_TOOL_SCHEMAS", "false")
        config = load_app_config(_CONFIG_DIR / "defaults.toml")
        assert config.stream.store_backend is StoreBackend.MEMORY
        assert config.stream.max_duration == 12.5
        assert not config.validation.legacy_tool_schemas

    def test_empty_env_ignored(self, monkeypatch):
        monkeypatch.setenv("TINMAN_REDIS_URL", "")
        config = load_app_config(_CONFIG_DIR / "defaults.toml")
        assert config.stream.redis_url == "redis://localhost:6379/0"

    def test_missing_sections_use_defaults(self, tmp_path):
        path = tmp_path / "defaults.toml"
        path.write_text("")
        config = load_app_config(path)
        assert config.stream.poll_interval == 0.25
