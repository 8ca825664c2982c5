"""
Tests for configuration management.

Tests config loading from:
1. Environment variables
2. YAML files
3. Combined (env overrides YAML)
"""

import os

import pytest
import yaml

from askgraph.config import AccessConfig, Config, LLMConfig, SearchConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove ASKGRAPH_* variables inherited from the host environment."""
    for key in list(os.environ):
        if key.startswith("ASKGRAPH_"):
            monkeypatch.delenv(key)


@pytest.mark.unit
class TestConfigDefaults:
    """Test default configuration values."""

    def test_default_config_creation(self):
        """Test creating config with defaults."""
        config = Config()

        # LLM defaults
        assert config.llm.provider == "none"
        assert config.llm.model == "llama3.1:8b"
        assert config.llm.base_url is None
        assert config.llm.context_window == 128000

        # Graph store
        assert config.graph_store.backend == "sqlite"
        assert config.graph_store.db_path == "data/graph.db"

        # Search
        assert config.search.tool_timeout == 10.0
        assert config.search.automatic_expansion_mode == "auto_until_result"
        assert config.search.max_expansion_attempts == 5
        assert config.search.fallback_to_natural_language is True
        assert config.search.concurrent_requests == "queue"
        assert config.search.random_seed is None

        # Access
        assert config.access.default_mode == "balanced"
        assert config.access.balanced_budget_fraction == 0.5
        assert config.access.full_budget_fraction == 0.8

    def test_llm_config_creation(self):
        llm_config = LLMConfig(provider="openai", model="gpt-4o", api_key="sk-test")

        assert llm_config.provider == "openai"
        assert llm_config.api_key == "sk-test"

    def test_section_overrides(self):
        config = Config(
            search=SearchConfig(tool_timeout=2.5),
            access=AccessConfig(default_mode="full"),
        )

        assert config.search.tool_timeout == 2.5
        assert config.search.hierarchy_timeout == 30.0
        assert config.access.default_mode == "full"


@pytest.mark.unit
class TestConfigFromEnv:
    """Test loading configuration from environment variables."""

    def test_from_env_basic(self, monkeypatch):
        monkeypatch.setenv("ASKGRAPH_LLM_PROVIDER", "openai")
        monkeypatch.setenv("ASKGRAPH_LLM_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("ASKGRAPH_LLM_API_KEY", "sk-test-key")
        monkeypatch.setenv("ASKGRAPH_GRAPH_DB_PATH", "/tmp/roam.db")

        config = Config.from_env()

        assert config.llm.provider == "openai"
        assert config.llm.model == "gpt-4o-mini"
        assert config.llm.api_key == "sk-test-key"
        assert config.graph_store.db_path == "/tmp/roam.db"

    def test_from_env_with_numbers(self, monkeypatch):
        """Test loading numeric values from environment."""
        monkeypatch.setenv("ASKGRAPH_SEARCH_TOOL_TIMEOUT", "2.5")
        monkeypatch.setenv("ASKGRAPH_SEARCH_DEFAULT_LIMIT", "50")
        monkeypatch.setenv("ASKGRAPH_SEARCH_RANDOM_SEED", "42")
        monkeypatch.setenv("ASKGRAPH_LLM_CONTEXT_WINDOW", "32000")

        config = Config.from_env()

        assert config.search.tool_timeout == 2.5
        assert config.search.default_result_limit == 50
        assert config.search.random_seed == 42
        assert config.llm.context_window == 32000

    def test_from_env_with_booleans(self, monkeypatch):
        """Test loading boolean values from environment."""
        monkeypatch.setenv("ASKGRAPH_SEARCH_NL_FALLBACK", "false")
        monkeypatch.setenv("ASKGRAPH_LOG_TO_FILE", "0")
        monkeypatch.setenv("ASKGRAPH_LOG_SERIALIZE", "yes")

        config = Config.from_env()

        assert config.search.fallback_to_natural_language is False
        assert config.logging.log_to_file is False
        assert config.logging.serialize is True

    def test_from_env_modes(self, monkeypatch):
        monkeypatch.setenv("ASKGRAPH_ACCESS_MODE", "private")
        monkeypatch.setenv("ASKGRAPH_SEARCH_EXPANSION_MODE", "ask_user")
        monkeypatch.setenv("ASKGRAPH_SEARCH_CONCURRENT_REQUESTS", "cancel")

        config = Config.from_env()

        assert config.access.default_mode == "private"
        assert config.search.automatic_expansion_mode == "ask_user"
        assert config.search.concurrent_requests == "cancel"

    def test_empty_value_uses_default(self, monkeypatch):
        monkeypatch.setenv("ASKGRAPH_LLM_MODEL", "")

        config = Config.from_env()

        assert config.llm.model == "llama3.1:8b"

    def test_from_env_with_dotenv_file(self, tmp_path):
        """Test loading from .env file."""
        env_file = tmp_path / ".env.test"
        env_file.write_text("ASKGRAPH_LLM_PROVIDER=ollama\nASKGRAPH_ACCESS_MODE=full\n")

        try:
            config = Config.from_env(env_file=str(env_file))
        finally:
            os.environ.pop("ASKGRAPH_LLM_PROVIDER", None)
            os.environ.pop("ASKGRAPH_ACCESS_MODE", None)

        assert config.llm.provider == "ollama"
        assert config.access.default_mode == "full"


@pytest.mark.unit
class TestConfigFromYAML:
    """Test loading configuration from YAML files."""

    def test_from_yaml_basic(self, tmp_path):
        yaml_file = tmp_path / "config.yaml"
        config_data = {
            "llm": {"provider": "ollama", "model": "qwen2.5:7b"},
            "search": {"tool_timeout": 5.0, "automatic_expansion_mode": "always_fuzzy"},
            "access": {"default_mode": "full"},
        }
        yaml_file.write_text(yaml.dump(config_data))

        config = Config.from_yaml(str(yaml_file))

        assert config.llm.model == "qwen2.5:7b"
        assert config.search.tool_timeout == 5.0
        assert config.search.automatic_expansion_mode == "always_fuzzy"
        assert config.access.default_mode == "full"
        # Unlisted values keep their defaults
        assert config.search.hierarchy_timeout == 30.0

    def test_from_yaml_empty_file(self, tmp_path):
        yaml_file = tmp_path / "empty.yaml"
        yaml_file.write_text("")

        assert Config.from_yaml(yaml_file) == Config()

    def test_from_yaml_file_not_found(self):
        with pytest.raises(FileNotFoundError):
            Config.from_yaml("/nonexistent/config.yaml")

    def test_from_yaml_invalid_yaml(self, tmp_path):
        yaml_file = tmp_path / "bad.yaml"
        yaml_file.write_text("invalid: yaml: content: [")

        with pytest.raises(yaml.YAMLError):
            Config.from_yaml(str(yaml_file))


@pytest.mark.unit
class TestConfigCombined:
    """Test env variables overriding YAML."""

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text(yaml.dump({"access": {"default_mode": "full"}, "llm": {"model": "yaml-model"}}))
        monkeypatch.setenv("ASKGRAPH_LLM_MODEL", "env-model")

        config = Config.from_env_or_yaml(yaml_path=str(yaml_file))

        assert config.llm.model == "env-model"
        assert config.access.default_mode == "full"

    def test_missing_yaml_uses_env(self, monkeypatch):
        monkeypatch.setenv("ASKGRAPH_ACCESS_MODE", "private")

        config = Config.from_env_or_yaml(yaml_path="/nonexistent/config.yaml")

        assert config.access.default_mode == "private"
