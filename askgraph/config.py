"""
Configuration for Ask Your Graph.

Supports loading from:
1. Environment variables (highest priority)
2. YAML config file
3. Default values (fallback)
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: str = "none"  # none, ollama, openai
    model: str = "llama3.1:8b"
    base_url: str | None = None  # provider default when unset
    api_key: str | None = None
    temperature: float = 0.0
    max_tokens: int = 1000
    timeout: float = 60.0
    # Context window (tokens) of the model that consumes the results
    context_window: int = 128000


class GraphStoreConfig(BaseModel):
    """Graph store backend configuration."""

    backend: str = "sqlite"
    db_path: str = "data/graph.db"


class SearchConfig(BaseModel):
    """Query execution configuration."""

    tool_timeout: float = 10.0
    # The hierarchical tool is allowed to be slow on large graphs
    hierarchy_timeout: float = 30.0
    slow_hierarchy_threshold: float = 2.0
    default_result_limit: int = 500
    max_results: int = 10000
    automatic_expansion_mode: str = "auto_until_result"
    max_expansion_attempts: int = 5
    fallback_to_natural_language: bool = True
    concurrent_requests: str = "queue"  # queue, cancel
    random_seed: int | None = None
    # Named conversations kept by the API server (least recently used evicted)
    max_conversations: int = 1000


class AccessConfig(BaseModel):
    """Access policy defaults."""

    default_mode: str = "balanced"  # private, balanced, full
    balanced_budget_fraction: float = 0.5
    full_budget_fraction: float = 0.8
    min_result_budget: int = 300
    max_result_budget: int = 20000


class TokenizerConfig(BaseModel):
    """Token counting configuration."""

    provider: str = "tiktoken"  # tiktoken, approximate
    model: str = "cl100k_base"
    chars_per_token: float = 4.0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class Config(BaseModel):
    """Main configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    graph_store: GraphStoreConfig = Field(default_factory=GraphStoreConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    access: AccessConfig = Field(default_factory=AccessConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Load configuration from environment variables.

        Priority: .env file -> system environment variables -> defaults

        Args:
            env_file: Optional path to .env file (default: .env in project root)

        Returns:
            Config instance

        Environment variables:
            ASKGRAPH_LLM_PROVIDER: LLM provider (none, ollama, openai)
            ASKGRAPH_LLM_MODEL: LLM model name
            ASKGRAPH_LLM_BASE_URL: LLM base URL
            ASKGRAPH_LLM_API_KEY: LLM API key (for OpenAI)
            ASKGRAPH_LLM_CONTEXT_WINDOW: Context window of the consuming model
            ASKGRAPH_GRAPH_BACKEND: Graph backend (sqlite)
            ASKGRAPH_GRAPH_DB_PATH: SQLite database path
            ASKGRAPH_SEARCH_TOOL_TIMEOUT: Per tool call timeout (seconds)
            ASKGRAPH_SEARCH_EXPANSION_MODE: Automatic expansion mode
            ASKGRAPH_SEARCH_MAX_CONVERSATIONS: Named conversations kept by the API server
            ASKGRAPH_ACCESS_MODE: Default access mode (private, balanced, full)
            ASKGRAPH_TOKENIZER_PROVIDER: tiktoken or approximate
            ASKGRAPH_LOG_LEVEL: Log level
        """
        # Load .env file if provided or exists
        if env_file:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            """Get environment variable with type conversion."""
            value = os.getenv(key)
            if value is None:
                return default
            # If value is empty string, return default
            if value == "":
                return default
            # Convert boolean strings
            if isinstance(default, bool):
                return str(value).lower() in ("true", "1", "yes")
            # Convert numeric strings
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
            return value

        return cls(
            llm=LLMConfig(
                provider=get_env("ASKGRAPH_LLM_PROVIDER", "none"),
                model=get_env("ASKGRAPH_LLM_MODEL", "llama3.1:8b"),
                base_url=get_env("ASKGRAPH_LLM_BASE_URL"),
                api_key=get_env("ASKGRAPH_LLM_API_KEY"),
                temperature=get_env("ASKGRAPH_LLM_TEMPERATURE", 0.0),
                max_tokens=get_env("ASKGRAPH_LLM_MAX_TOKENS", 1000),
                timeout=get_env("ASKGRAPH_LLM_TIMEOUT", 60.0),
                context_window=get_env("ASKGRAPH_LLM_CONTEXT_WINDOW", 128000),
            ),
            graph_store=GraphStoreConfig(
                backend=get_env("ASKGRAPH_GRAPH_BACKEND", "sqlite"),
                db_path=get_env("ASKGRAPH_GRAPH_DB_PATH", "data/graph.db"),
            ),
            search=SearchConfig(
                tool_timeout=get_env("ASKGRAPH_SEARCH_TOOL_TIMEOUT", 10.0),
                hierarchy_timeout=get_env("ASKGRAPH_SEARCH_HIERARCHY_TIMEOUT", 30.0),
                slow_hierarchy_threshold=get_env("ASKGRAPH_SEARCH_SLOW_HIERARCHY_THRESHOLD", 2.0),
                default_result_limit=get_env("ASKGRAPH_SEARCH_DEFAULT_LIMIT", 500),
                max_results=get_env("ASKGRAPH_SEARCH_MAX_RESULTS", 10000),
                automatic_expansion_mode=get_env(
                    "ASKGRAPH_SEARCH_EXPANSION_MODE", "auto_until_result"
                ),
                max_expansion_attempts=get_env("ASKGRAPH_SEARCH_MAX_EXPANSION_ATTEMPTS", 5),
                fallback_to_natural_language=get_env("ASKGRAPH_SEARCH_NL_FALLBACK", True),
                concurrent_requests=get_env("ASKGRAPH_SEARCH_CONCURRENT_REQUESTS", "queue"),
                random_seed=get_env("ASKGRAPH_SEARCH_RANDOM_SEED", 0) or None,
                max_conversations=get_env("ASKGRAPH_SEARCH_MAX_CONVERSATIONS", 1000),
            ),
            access=AccessConfig(
                default_mode=get_env("ASKGRAPH_ACCESS_MODE", "balanced"),
                balanced_budget_fraction=get_env("ASKGRAPH_ACCESS_BALANCED_FRACTION", 0.5),
                full_budget_fraction=get_env("ASKGRAPH_ACCESS_FULL_FRACTION", 0.8),
                min_result_budget=get_env("ASKGRAPH_ACCESS_MIN_RESULT_BUDGET", 300),
                max_result_budget=get_env("ASKGRAPH_ACCESS_MAX_RESULT_BUDGET", 20000),
            ),
            tokenizer=TokenizerConfig(
                provider=get_env("ASKGRAPH_TOKENIZER_PROVIDER", "tiktoken"),
                model=get_env("ASKGRAPH_TOKENIZER_MODEL", "cl100k_base"),
                chars_per_token=get_env("ASKGRAPH_TOKENIZER_CHARS_PER_TOKEN", 4.0),
            ),
            logging=LoggingConfig(
                level=get_env("ASKGRAPH_LOG_LEVEL", "INFO"),
                log_to_file=get_env("ASKGRAPH_LOG_TO_FILE", True),
                log_dir=get_env("ASKGRAPH_LOG_DIR", "logs"),
                file_rotation=get_env("ASKGRAPH_LOG_FILE_ROTATION", "10 MB"),
                file_retention=get_env("ASKGRAPH_LOG_FILE_RETENTION", "7 days"),
                compression=get_env("ASKGRAPH_LOG_COMPRESSION", "zip"),
                serialize=get_env("ASKGRAPH_LOG_SERIALIZE", True),
            ),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        return cls(**(data or {}))

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load configuration with priority: env vars > YAML > defaults.

        Args:
            yaml_path: Optional path to YAML config
            env_file: Optional path to .env file

        Returns:
            Config instance
        """
        if yaml_path and Path(yaml_path).exists():
            with open(yaml_path) as f:
                config_dict = yaml.safe_load(f) or {}
        else:
            config_dict = {}

        env_config = cls.from_env(env_file=env_file)

        # Merge: env vars override YAML
        final_dict = {**config_dict}

        # Apply env overrides (non-default values)
        default = cls()
        for section in ("llm", "graph_store", "search", "access", "tokenizer", "logging"):
            env_section = getattr(env_config, section)
            if env_section != getattr(default, section):
                final_dict[section] = env_section.model_dump()

        return cls(**final_dict) if final_dict else env_config


# Default config instance
default_config = Config()
