"""
Ollama LLM provider using native ollama-python SDK.
"""

import time

import ollama
from pydantic import ValidationError as PydanticValidationError

from askgraph.core.llm.base import LLMProvider, T, chat_messages
from askgraph.utils.exceptions import LLMError
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)


def extract_json(content: str) -> str:
    """
    Extract JSON from content that might have markdown formatting.

    Args:
        content: Raw content that may contain JSON

    Returns:
        Cleaned JSON string
    """
    content = content.strip()

    if "```json" in content:
        content = content.split("```json")[1].split("```")[0].strip()
    elif "```" in content:
        content = content.split("```")[1].split("```")[0].strip()

    return content


class OllamaLLM(LLMProvider):
    """
    Ollama LLM provider.

    Extractions use Ollama's schema-constrained JSON format and are validated
    against the Pydantic model; small local models still wrap JSON in markdown
    fences now and then, so fences are stripped first.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: float = 60.0,
    ):
        self.host = host
        self.model = model
        self.timeout = timeout
        self.client = ollama.AsyncClient(host=host, timeout=timeout)

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
        Raises:
            LLMError: If the request fails or the output does not validate
        """
        instructions = (
            f"{prompt}\n\nRespond ONLY with a JSON object with the fields "
            f"{', '.join(schema.model_fields)}. No markdown, no extra text."
        )
        start = time.perf_counter()
        try:
            response = await self.client.chat(
                model=self.model,
                messages=chat_messages(instructions, system),
                format=schema.model_json_schema(),
                options={"temperature": temperature, "num_predict": max_tokens},
            )
        except Exception as e:
            logger.bind(model=self.model, error_type=type(e).__name__).error(f"Ollama API error: {e}")
            raise LLMError(f"Ollama API error: {e}", context={"model": self.model}) from e

        content = response["message"]["content"]
        try:
            parsed = schema.model_validate_json(extract_json(content))
        except PydanticValidationError as e:
            raise LLMError(
                f"Failed to parse structured output: {e}",
                context={"expected": schema.__name__, "raw": content[:500]},
            ) from e
        logger.debug(f"{schema.__name__} from {self.model} in {time.perf_counter() - start:.2f}s")
        return parsed

    async def close(self):
        """Close client (Ollama SDK handles cleanup internally)."""
