"""
Answering Domain - Answers grounded in retrieved sources.

This domain handles:
- Community resolution from user profiles
- Mode-specific prompt construction
- LLM generation and answer logging
"""

from .contracts import AnswerLog, ProfileStore, Retriever, TextGenerator
from .models import NO_SOURCES_MESSAGE, AnswerRequest, AnswerResult
from .prompts import build_user_prompt, get_system_prompt
from .service import AnswerService

__all__ = [
    # Contracts
    "Retriever",
    "TextGenerator",
    "AnswerLog",
    "ProfileStore",
    # Models
    "NO_SOURCES_MESSAGE",
    "AnswerRequest",
    "AnswerResult",
    # Prompts
    "get_system_prompt",
    "build_user_prompt",
    # Implementations
    "AnswerService",
]
