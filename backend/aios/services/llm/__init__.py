"""LLM provider factory."""

from aios.core.config import settings
from aios.services.llm.base import BaseLLMProvider


def get_llm_provider() -> BaseLLMProvider:
    """Factory function that returns the configured LLM provider."""
    if settings.llm_provider == "gemini":
        from aios.services.llm.gemini import GeminiProvider
        return GeminiProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")
