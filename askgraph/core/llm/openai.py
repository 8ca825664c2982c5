"""
OpenAI LLM provider using official SDK.
"""

import time

from openai import AsyncOpenAI

from askgraph.core.llm.base import LLMProvider, T, chat_messages
from askgraph.utils.exceptions import LLMError, ValidationError
from askgraph.utils.logger import get_logger

logger = get_logger(__name__)


class OpenAILLM(LLMProvider):
    """
    OpenAI LLM provider (or any OpenAI-compatible server via `base_url`).

    Extractions go through the SDK's native Parse API.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 60.0,
    ):
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

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
            ValidationError: If the prompt is empty
            LLMError: If the API call fails or the model refuses
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        start = time.perf_counter()
        try:
            response = await self.client.chat.completions.parse(
                model=self.model,
                messages=chat_messages(prompt, system),
                response_format=schema,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            logger.bind(model=self.model, error_type=type(e).__name__).error(
                f"OpenAI API error: {e}"
            )
            raise LLMError(f"OpenAI API error: {e}", context={"model": self.model}) from e

        message = response.choices[0].message
        if message.parsed is None:
            raise LLMError(
                f"OpenAI returned no {schema.__name__}",
                context={"model": self.model, "refusal": getattr(message, "refusal", None)},
            )
        logger.debug(f"{schema.__name__} from {self.model} in {time.perf_counter() - start:.2f}s")
        return message.parsed

    async def close(self):
        """Close OpenAI client."""
        await self.client.close()
