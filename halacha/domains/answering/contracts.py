"""
Answering Contracts - Interfaces the answer service depends on.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, Protocol, runtime_checkable

from halacha.domains.retrieval.models import CorpusTier, RetrievalResult, SearchMode


@runtime_checkable
class Retriever(Protocol):
    """Contract for source retrieval."""

    async def retrieve(
        self,
        question: str,
        tiers: Iterable[CorpusTier | str],
        community: str = ...,
        mode: SearchMode | str = ...,
    ) -> RetrievalResult:
        """Retrieve ranked sources for a question."""
        ...


@runtime_checkable
class TextGenerator(Protocol):
    """Contract for LLM text generation."""

    async def generate(
        self,
        prompt: str,
        system_instruction: str | None = None,
    ) -> Any:
        """Generate a response exposing .text and .model."""
        ...


@runtime_checkable
class AnswerLog(Protocol):
    """Contract for recording produced answers."""

    async def insert_answer(
        self,
        question: str,
        answer: str,
        cited_ids: Sequence[int],
        user_id: int | None = None,
        user_community: str | None = None,
        corpus_tiers_used: Sequence[CorpusTier] | None = None,
        mode: str | None = None,
        model: str | None = None,
    ) -> int:
        """Store the answer; returns its id."""
        ...


@runtime_checkable
class ProfileStore(Protocol):
    """Contract for user profile lookup."""

    async def get_user_profile(self, user_id: int) -> dict[str, Any] | None:
        """Get a profile with at least primary_community, or None."""
        ...
