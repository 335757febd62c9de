"""
Halacha Routes - Source retrieval and answer endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from halacha.config import get_settings
from halacha.domains.answering import AnswerRequest, AnswerResult, AnswerService
from halacha.domains.retrieval import (
    CorpusTier,
    HybridRetriever,
    Passage,
    RetrievedSource,
    SearchMode,
)
from halacha.interfaces.api.deps import get_answer_service, get_retriever

router = APIRouter()


class RetrieveRequest(BaseModel):
    """Retrieve request body. Question and tiers are validated by the retriever."""

    question: str
    tiers: list[str] | None = None
    community: str | None = None
    mode: SearchMode = SearchMode.PRACTICAL


class RetrieveResponse(BaseModel):
    """Ranked sources with surrounding context."""

    question: str
    tiers: list[CorpusTier]
    community: str
    sources: list[RetrievedSource]
    context: list[Passage] = Field(default_factory=list)
    stats: dict = Field(default_factory=dict)


@router.post("/retrieve", response_model=RetrieveResponse)
async def retrieve(
    request: RetrieveRequest,
    retriever: HybridRetriever = Depends(get_retriever),
):
    """
    Retrieve ranked sources without generating an answer.

    - **question**: Natural-language question
    - **tiers**: Corpus tiers to search (default: configured tiers)
    - **community**: Community whose passages are boosted
    """
    settings = get_settings()
    result = await retriever.retrieve(
        request.question,
        request.tiers if request.tiers is not None else settings.default_tiers,
        request.community or settings.default_community,
        request.mode,
    )

    return RetrieveResponse(
        question=result.query.question,
        tiers=list(result.query.tiers),
        community=result.query.community,
        sources=result.sources,
        context=result.context,
        stats=result.stats,
    )


@router.post("/query", response_model=AnswerResult)
async def query(
    request: AnswerRequest,
    service: AnswerService = Depends(get_answer_service),
):
    """
    Answer a question from retrieved sources.

    - **question**: Natural-language question
    - **tiers**: Corpus tiers to search (default: canonical)
    - **community**: Community whose passages are boosted
    - **mode**: practical, deep_research or posek_view
    - **user_id**: Profile whose community overrides the request
    """
    return await service.answer(request)
