"""
Answer Service - Retrieval-grounded answer generation.

Flow:
    request -> resolve community (user profile) -> retrieve sources
            -> no sources: fixed message, nothing generated or logged
            -> system/user prompts -> generate -> log answer with cited ids
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from halacha.domains.retrieval.models import GENERAL_COMMUNITY, CorpusTier

from .contracts import AnswerLog, ProfileStore, Retriever, TextGenerator
from .models import NO_SOURCES_MESSAGE, AnswerRequest, AnswerResult
from .prompts import build_user_prompt, get_system_prompt

logger = logging.getLogger(__name__)

__all__ = ["AnswerService"]


class AnswerService:
    """
    Answers questions from retrieved halakhic sources.

    Example:
        >>> service = AnswerService(retriever, llm, repo, repo)
        >>> result = await service.answer(AnswerRequest(question="..."))
        >>> print(result.answer)
    """

    def __init__(
        self,
        retriever: Retriever,
        generator: TextGenerator,
        answer_log: AnswerLog,
        profiles: ProfileStore,
        default_tiers: Sequence[CorpusTier] = (CorpusTier.CANONICAL,),
        default_community: str = GENERAL_COMMUNITY,
    ) -> None:
        """
        Initialize service.

        Args:
            retriever: Hybrid retriever
            generator: LLM used to write the answer
            answer_log: Store for produced answers
            profiles: User profile lookup
            default_tiers: Tiers used when the request names none
            default_community: Community used when neither request nor profile names one
        """
        self._retriever = retriever
        self._generator = generator
        self._answer_log = answer_log
        self._profiles = profiles
        self.default_tiers = list(default_tiers)
        self.default_community = default_community

    async def resolve_community(self, request: AnswerRequest) -> str:
        """A user's profile community wins over the requested one."""
        community = request.community or self.default_community
        if request.user_id is not None:
            profile = await self._profiles.get_user_profile(request.user_id)
            if profile and profile.get("primary_community"):
                community = profile["primary_community"]
        return community

    async def answer(self, request: AnswerRequest) -> AnswerResult:
        """
        Retrieve sources and generate an answer.

        Raises:
            RetrievalInputError: Invalid question or tiers
            RetrievalFailed: A retrieval dependency failed
            LLMError: Generation failed
        """
        start_time = time.perf_counter()
        community = await self.resolve_community(request)
        tiers = request.tiers or self.default_tiers

        result = await self._retriever.retrieve(
            request.question, tiers, community, request.mode
        )

        if result.is_empty:
            logger.info("Answer: query='%s' -> no sources", request.question[:50])
            return AnswerResult(
                answer=NO_SOURCES_MESSAGE,
                mode=request.mode,
                community=community,
                tiers=list(result.query.tiers),
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        response = await self._generator.generate(
            build_user_prompt(result.query.question, result.sources, result.context),
            system_instruction=get_system_prompt(request.mode),
        )

        answer_id = await self._answer_log.insert_answer(
            question=result.query.question,
            answer=response.text,
            cited_ids=result.cited_ids,
            user_id=request.user_id,
            user_community=community,
            corpus_tiers_used=list(result.query.tiers),
            mode=request.mode.value,
            model=response.model,
        )

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Answer %d: mode=%s community=%s sources=%d (%.0fms)",
            answer_id,
            request.mode.value,
            community,
            len(result.sources),
            duration_ms,
        )

        return AnswerResult(
            answer=response.text,
            sources=result.sources,
            mode=request.mode,
            community=community,
            tiers=list(result.query.tiers),
            answer_id=answer_id,
            model=response.model,
            duration_ms=duration_ms,
        )
