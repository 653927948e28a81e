"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest

from toolrelay.config.loader import _merge, config_files, load_config
from toolrelay.config.schema import (
    BudgetConfig,
    FreeTextConfig,
    GatewayConfig,
    LLMConfig,
    ToolrelayConfig,
)
from toolrelay.core.errors import ConfigError

# ─── Schema Defaults ──────────────────────────────────────────


class TestSchemaDefaults:
    def test_all_defaults(self):
        cfg = ToolrelayConfig()
        assert cfg.llm.provider == "anthropic"
        assert cfg.llm.max_tokens == 1000
        assert cfg.llm.temperature == 0.7
        assert cfg.llm.max_tool_rounds == 25
        assert cfg.gateway.transport == "none"
        assert cfg.logging.level == "INFO"

    def test_budget_defaults(self):
        cfg = BudgetConfig()
        assert cfg.context_window is None
        assert cfg.chars_per_token == 3
        assert cfg.turn_overhead == 4
        assert cfg.tool_call_overhead == 10
        assert cfg.keep_recent == 4
        assert cfg.stage_two_threshold == 0.8
        assert cfg.stage_two_keep_recent == 2
        assert cfg.stage_two_keep_tool_turns == 2

    def test_free_text_defaults(self):
        cfg = FreeTextConfig()
        assert cfg.history_window == 10
        assert cfg.fallback_answer == "Tool executed successfully."

    def test_gateway_defaults(self):
        cfg = GatewayConfig()
        assert cfg.args == []
        assert cfg.env is None
        assert cfg.timeout == 30.0

    def test_from_dict(self):
        cfg = ToolrelayConfig.model_validate(
            {
                "llm": {"provider": "ollama", "base_url": "http://localhost:11434"},
                "gateway": {"transport": "stdio", "command": "server"},
            }
        )
        assert cfg.llm.provider == "ollama"
        assert cfg.llm.base_url == "http://localhost:11434"
        assert cfg.gateway.command == "server"

    def test_invalid_type_raises(self):
        with pytest.raises(ValueError):
            LLMConfig(max_tokens="lots")  # type: ignore[arg-type]


# ─── Merging ────────────────────────────────────────────────


class TestMerge:
    def test_tables_merge_key_by_key(self):
        merged = {"llm": {"provider": "anthropic", "model": "a"}}
        _merge(merged, {"llm": {"model": "b"}})
        assert merged == {"llm": {"provider": "anthropic", "model": "b"}}

    def test_layer_left_untouched(self):
        layer = {"gateway": {"transport": "rest"}}
        merged: dict = {}
        _merge(merged, layer)
        merged["gateway"]["url"] = "http://r"
        assert layer == {"gateway": {"transport": "rest"}}

    def test_scalar_replaces_table(self):
        merged = {"gateway": {"args": ["a"]}}
        _merge(merged, {"gateway": {"args": ["b", "c"]}})
        assert merged["gateway"]["args"] == ["b", "c"]


# ─── Loading ──────────────────────────────────────────────────


class TestLoadConfig:
    def test_defaults_when_no_files(self, isolated_env):
        cfg = load_config()
        assert cfg.llm.provider == "anthropic"
        assert cfg.llm.api_key is None

    def test_load_from_explicit_path(self, isolated_env):
        toml_file = isolated_env / "test.toml"
        toml_file.write_text('[llm]\nprovider = "openai"\nmodel = "gpt-4o"\n')
        cfg = load_config(path=toml_file)
        assert cfg.llm.provider == "openai"
        assert cfg.llm.model == "gpt-4o"

    def test_explicit_path_not_found_raises(self, isolated_env):
        with pytest.raises(ConfigError, match="not found"):
            load_config(path=isolated_env / "nonexistent.toml")

    def test_invalid_toml_raises(self, isolated_env):
        bad = isolated_env / "bad.toml"
        bad.write_text("[llm\nprovider = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path=bad)

    def test_validation_failure_raises(self, isolated_env):
        bad = isolated_env / "bad.toml"
        bad.write_text('[budget]\nkeep_recent = "many"\n')
        with pytest.raises(ConfigError, match="Invalid configuration: budget"):
            load_config(path=bad)

    def test_overrides_beat_file(self, isolated_env):
        toml_file = isolated_env / "test.toml"
        toml_file.write_text('[llm]\nmodel = "from-file"\n')
        cfg = load_config(path=toml_file, overrides={"llm": {"model": "override"}})
        assert cfg.llm.model == "override"

    def test_project_local_config(self, isolated_env):
        (isolated_env / "toolrelay.toml").write_text('[llm]\nprovider = "ollama"\n')
        cfg = load_config()
        assert cfg.llm.provider == "ollama"

    def test_user_config(self, isolated_env, monkeypatch):
        user_dir = isolated_env / "xdg" / "toolrelay"
        user_dir.mkdir(parents=True)
        (user_dir / "config.toml").write_text("[llm]\nmax_tokens = 42\n")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(isolated_env / "xdg"))
        cfg = load_config()
        assert cfg.llm.max_tokens == 42

    def test_env_path(self, isolated_env, monkeypatch):
        toml_file = isolated_env / "env.toml"
        toml_file.write_text("[budget]\ncontext_window = 8192\n")
        monkeypatch.setenv("TOOLRELAY_CONFIG", str(toml_file))
        cfg = load_config()
        assert cfg.budget.context_window == 8192

    def test_env_path_missing_file_raises(self, isolated_env, monkeypatch):
        monkeypatch.setenv("TOOLRELAY_CONFIG", str(isolated_env / "nope.toml"))
        with pytest.raises(ConfigError, match="TOOLRELAY_CONFIG not found"):
            load_config()


class TestApiKeyResolution:
    def test_default_env_for_provider(self, isolated_env, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
        cfg = load_config(overrides={"llm": {"provider": "openai"}})
        assert cfg.llm.api_key == "sk-openai"

    def test_custom_env_name(self, isolated_env, monkeypatch):
        monkeypatch.setenv("MY_KEY", "sk-custom")
        cfg = load_config(overrides={"llm": {"api_key_env": "MY_KEY"}})
        assert cfg.llm.api_key == "sk-custom"

    def test_explicit_key_not_overwritten(self, isolated_env, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-from-env")
        cfg = load_config(overrides={"llm": {"api_key": "sk-explicit"}})
        assert cfg.llm.api_key == "sk-explicit"

    def test_ollama_needs_no_key(self, isolated_env):
        cfg = load_config(overrides={"llm": {"provider": "ollama"}})
        assert cfg.llm.api_key is None


class TestIdentifierChecks:
    def test_unknown_provider(self, isolated_env):
        with pytest.raises(ConfigError, match="llm.provider must be one of"):
            load_config(overrides={"llm": {"provider": "gemini"}})

    def test_unknown_transport(self, isolated_env):
        toml_file = isolated_env / "test.toml"
        toml_file.write_text('[gateway]\ntransport = "carrier-pigeon"\n')
        with pytest.raises(ConfigError, match="gateway.transport must be one of"):
            load_config(path=toml_file)

    def test_base_url_rejected_for_anthropic(self, isolated_env):
        with pytest.raises(ConfigError, match="not used by the anthropic provider"):
            load_config(overrides={"llm": {"base_url": "http://proxy"}})

    @pytest.mark.parametrize("provider", ["openai", "ollama"])
    def test_base_url_accepted(self, isolated_env, provider):
        overrides = {"llm": {"provider": provider, "base_url": "http://host"}}
        cfg = load_config(overrides=overrides)
        assert cfg.llm.base_url == "http://host"


class TestConfigFiles:
    def test_search_order(self, isolated_env, monkeypatch):
        user_dir = isolated_env / "xdg" / "toolrelay"
        user_dir.mkdir(parents=True)
        (user_dir / "config.toml").write_text("")
        (isolated_env / "toolrelay.toml").write_text("")
        explicit = isolated_env / "explicit.toml"
        explicit.write_text("")
        monkeypatch.setenv("XDG_CONFIG_HOME", str(isolated_env / "xdg"))

        files = config_files(explicit)
        names = [f.name for f in files]
        assert names == ["config.toml", "toolrelay.toml", "explicit.toml"]

    def test_nothing_found(self, isolated_env):
        assert config_files() == []
