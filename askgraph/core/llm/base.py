"""
Abstract base class for LLM providers.

The query engine uses an LLM for two optional steps: extracting a structured
intent from natural language and proposing synonyms for semantic expansion.
Both ask for a Pydantic model, validate it, and fall back to deterministic
code on LLMError; nothing consumes free-form text.
"""

from abc import ABC, abstractmethod
from typing import TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class LLMProvider(ABC):
    """Structured extraction against a chat model."""

    @abstractmethod
    async def extract(
        self,
        prompt: str,
        schema: type[T],
        *,
        system: str | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.0,
    ) -> T:
        """
        Ask the model for an instance of `schema`.

        Args:
            prompt: User message describing the extraction
            schema: Pydantic model the answer must validate against
            system: Optional system message
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0.0 = deterministic)

        Returns:
            Validated `schema` instance

        Raises:
            LLMError: If the provider fails or the answer does not validate
        """

    @abstractmethod
    async def close(self):
        """Close any open connections."""


def chat_messages(prompt: str, system: str | None = None) -> list[dict[str, str]]:
    """Chat messages of one extraction, system message first."""
    messages = [{"role": "system", "content": system}] if system else []
    messages.append({"role": "user", "content": prompt})
    return messages
