"""
Tests for OpenAI LLM provider.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from askgraph.core.llm.openai import OpenAILLM
from askgraph.utils.exceptions import LLMError, ValidationError


class Extraction(BaseModel):
    """Test response model."""

    symbolic_query: str
    result_limit: int | None = None


@pytest.fixture
def openai_llm():
    """Create OpenAI LLM for testing."""
    return OpenAILLM(api_key="test-key", model="gpt-4o", timeout=120.0)


def chat_response(**message) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(**message))]
    return response


@pytest.mark.unit
@pytest.mark.asyncio
class TestOpenAILLM:
    """Test OpenAI LLM provider."""

    async def test_initialization(self, openai_llm):
        assert openai_llm.model == "gpt-4o"
        assert openai_llm.client is not None

    async def test_initialization_with_base_url(self):
        llm = OpenAILLM(api_key="test-key", base_url="https://llm.internal/v1")
        assert str(llm.client.base_url).startswith("https://llm.internal/v1")

    async def test_extract(self, openai_llm):
        """Test extraction through the Parse API."""
        extraction = Extraction(symbolic_query="ref:finance", result_limit=5)
        with patch.object(
            openai_llm.client.chat.completions, "parse", new_callable=AsyncMock
        ) as mock_parse:
            mock_parse.return_value = chat_response(parsed=extraction)

            result = await openai_llm.extract("five finance blocks", Extraction)

            assert result == extraction
            kwargs = mock_parse.call_args.kwargs
            assert kwargs["response_format"] is Extraction
            assert kwargs["temperature"] == 0.0
            assert kwargs["messages"] == [{"role": "user", "content": "five finance blocks"}]

    async def test_extract_with_system_and_parameters(self, openai_llm):
        with patch.object(
            openai_llm.client.chat.completions, "parse", new_callable=AsyncMock
        ) as mock_parse:
            mock_parse.return_value = chat_response(parsed=Extraction(symbolic_query="budget"))

            await openai_llm.extract(
                "budget", Extraction, system="Write queries.", temperature=0.3, max_tokens=200
            )

            kwargs = mock_parse.call_args.kwargs
            assert kwargs["messages"][0] == {"role": "system", "content": "Write queries."}
            assert kwargs["temperature"] == 0.3
            assert kwargs["max_tokens"] == 200

    async def test_refusal(self, openai_llm):
        with patch.object(
            openai_llm.client.chat.completions, "parse", new_callable=AsyncMock
        ) as mock_parse:
            mock_parse.return_value = chat_response(parsed=None, refusal="no")

            with pytest.raises(LLMError, match="returned no Extraction") as exc_info:
                await openai_llm.extract("test", Extraction)
            assert exc_info.value.context["refusal"] == "no"

    async def test_api_error(self, openai_llm):
        """Test braces in the error text are logged verbatim."""
        with patch.object(
            openai_llm.client.chat.completions, "parse", new_callable=AsyncMock
        ) as mock_parse:
            mock_parse.side_effect = Exception("{'error': {'code': 'rate_limit'}}")

            with pytest.raises(LLMError, match="OpenAI API error"):
                await openai_llm.extract("test", Extraction)

    async def test_empty_prompt(self, openai_llm):
        with pytest.raises(ValidationError):
            await openai_llm.extract("   ", Extraction)

    async def test_close(self, openai_llm):
        with patch.object(openai_llm.client, "close", new_callable=AsyncMock) as mock_close:
            await openai_llm.close()
            mock_close.assert_called_once()
