"""
LLM provider abstraction layer.

Supported providers:
- Ollama (native SDK)
- OpenAI (official SDK)
"""
from askgraph.core.llm.base import LLMProvider
from askgraph.core.llm.ollama import OllamaLLM
from askgraph.core.llm.openai import OpenAILLM

__all__ = [
    "LLMProvider",
    "OllamaLLM",
    "OpenAILLM",
]
