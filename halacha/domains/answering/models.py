"""
Answering Models - Request and result types for answer generation.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from halacha.domains.retrieval.models import CorpusTier, RetrievedSource, SearchMode

NO_SOURCES_MESSAGE = (
    "No relevant sources were found for this question in the selected corpus "
    "tiers. Try broadening your search or adjusting corpus tier settings."
)


class AnswerRequest(BaseModel):
    """A question to answer from retrieved sources."""

    question: str
    community: str | None = None
    # Validated by the retriever, so bad values surface as RetrievalInputError
    tiers: list[str] | None = None
    mode: SearchMode = SearchMode.PRACTICAL
    user_id: int | None = None

    model_config = {"str_strip_whitespace": True}


class AnswerResult(BaseModel):
    """Generated answer with the sources it was grounded on."""

    answer: str
    sources: list[RetrievedSource] = Field(default_factory=list)
    mode: SearchMode = SearchMode.PRACTICAL
    community: str
    tiers: list[CorpusTier] = Field(default_factory=list)
    answer_id: int | None = None
    model: str | None = None
    duration_ms: float = 0.0
