"""
LLM Adapter - Unified interface for language model access.

Supports:
- Anthropic Messages API
- OpenAI Chat Completions API

Usage:
    from halacha.adapters.llm import LLMService

    llm = LLMService()
    response = await llm.generate("When are Shabbat candles lit?")
"""

from .service import LLMResponse, LLMService

__all__ = ["LLMService", "LLMResponse"]
