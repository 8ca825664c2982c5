"""
Factory for creating LLM providers.
"""

from askgraph.config import LLMConfig
from askgraph.core.llm.base import LLMProvider
from askgraph.core.llm.ollama import OllamaLLM
from askgraph.core.llm.openai import OpenAILLM


class LLMFactory:
    """Factory for creating LLM providers from configuration."""

    @staticmethod
    def create(config: LLMConfig) -> LLMProvider | None:
        """
        Create LLM provider from configuration.

        Args:
            config: LLM configuration

        Returns:
            LLM provider instance, or None when provider is "none"
            (LLM-assisted steps then use their deterministic fallback)

        Raises:
            ValueError: If provider is not supported
        """
        if config.provider == "none":
            return None
        elif config.provider == "ollama":
            return OllamaLLM(
                host=config.base_url or "http://localhost:11434",
                model=config.model,
                timeout=config.timeout,
            )
        elif config.provider == "openai":
            if not config.api_key:
                raise ValueError("OpenAI API key is required")
            return OpenAILLM(
                api_key=config.api_key,
                model=config.model,
                base_url=config.base_url,
                timeout=config.timeout,
            )
        else:
            raise ValueError(f"Unsupported LLM provider: {config.provider}")
