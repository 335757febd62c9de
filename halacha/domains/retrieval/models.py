"""
Retrieval Models - Data types for retrieval domain.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from halacha.config import Settings

GENERAL_COMMUNITY = "General"


class CorpusTier(str, Enum):
    """Closed trust classification of a passage's source corpus."""

    CANONICAL = "canonical"
    APOCRYPHA = "apocrypha"
    PSEUDEPIGRAPHA = "pseudepigrapha"
    ACADEMIC = "academic"
    PRIVATE = "private"


class RelationType(str, Enum):
    """Types of edges between passages."""

    ARGUES_WITH = "argues_with"
    SUPPORTS = "supports"
    QUOTES = "quotes"
    BASED_ON = "based_on"
    MINHAG_OVERRIDE = "minhag_override"
    SUPERSEDES = "supersedes"
    CONTEXTUALIZES = "contextualizes"


class RelationDirection(str, Enum):
    """Whether an edge reads one way or both ways."""

    DIRECTED = "directed"
    BIDIRECTIONAL = "bidirectional"


class SearchMode(str, Enum):
    """Answer style. Only affects prompt construction, never retrieval."""

    PRACTICAL = "practical"
    DEEP_RESEARCH = "deep_research"
    POSEK_VIEW = "posek_view"


DEFAULT_RELATION_TYPES: tuple[RelationType, ...] = (
    RelationType.ARGUES_WITH,
    RelationType.SUPPORTS,
    RelationType.MINHAG_OVERRIDE,
    RelationType.CONTEXTUALIZES,
)


class Passage(BaseModel):
    """A retrievable unit of source text, as stored at ingestion."""

    id: int
    work: str
    section_ref: str
    parent_ref: str | None = None
    text: str
    community: str = GENERAL_COMMUNITY
    corpus_tier: CorpusTier
    author: str | None = None
    era: str | None = None
    authority_weight: float = 0.0

    model_config = {"frozen": True}


class Relation(BaseModel):
    """Typed edge between two passage ids."""

    from_id: int
    to_id: int
    relation_type: RelationType
    direction: RelationDirection = RelationDirection.DIRECTED
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = {"frozen": True}

    def opposite(self, passage_id: int) -> int | None:
        """Return the other endpoint, or None if passage_id is not on this edge."""
        if passage_id == self.from_id:
            return self.to_id
        if passage_id == self.to_id:
            return self.from_id
        return None


class RetrievalQuery(BaseModel):
    """Validated retrieval request."""

    question: str = Field(..., min_length=1)
    tiers: tuple[CorpusTier, ...] = Field(..., min_length=1)
    community: str = GENERAL_COMMUNITY
    mode: SearchMode = SearchMode.PRACTICAL

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @field_validator("tiers", mode="after")
    @classmethod
    def _canonical_tier_order(cls, tiers: tuple[CorpusTier, ...]) -> tuple[CorpusTier, ...]:
        # Dedupe and fix the order so both searches see the same filter.
        order = list(CorpusTier)
        return tuple(sorted(set(tiers), key=order.index))


@dataclass(frozen=True)
class RankedCandidate:
    """Per-call fusion state for one candidate id. Never persisted."""

    passage_id: int
    semantic_rank: int
    lexical_rank: int
    fused_score: float
    boost: float = 0.0

    @property
    def final_score(self) -> float:
        return self.fused_score + self.boost


class RetrievalConfig(BaseModel):
    """Tunable parameters of the hybrid retriever."""

    rrf_k: int = Field(default=60, ge=1)
    semantic_k: int = Field(default=60, ge=1)
    lexical_k: int = Field(default=60, ge=1)
    top_k: int = Field(default=40, ge=1)
    relation_types: tuple[RelationType, ...] = DEFAULT_RELATION_TYPES
    expand_across_tiers: bool = False

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, settings: Settings) -> RetrievalConfig:
        """Build retriever parameters from application settings."""
        return cls(
            rrf_k=settings.rrf_k,
            semantic_k=settings.semantic_k,
            lexical_k=settings.lexical_k,
            top_k=settings.top_k,
            relation_types=tuple(RelationType(t) for t in settings.relation_types),
            expand_across_tiers=settings.expand_across_tiers,
        )


class RetrievedSource(BaseModel):
    """A passage in the returned source list, with provenance."""

    id: int
    work: str
    section_ref: str
    parent_ref: str | None = None
    community: str
    corpus_tier: CorpusTier
    author: str | None = None
    era: str | None = None
    text: str
    is_primary: bool = True
    score: float | None = None

    @classmethod
    def from_passage(
        cls,
        passage: Passage,
        is_primary: bool,
        score: float | None = None,
    ) -> RetrievedSource:
        return cls(
            id=passage.id,
            work=passage.work,
            section_ref=passage.section_ref,
            parent_ref=passage.parent_ref,
            community=passage.community,
            corpus_tier=passage.corpus_tier,
            author=passage.author,
            era=passage.era,
            text=passage.text,
            is_primary=is_primary,
            score=score,
        )


class RetrievalResult(BaseModel):
    """Ordered, deduplicated sources plus surrounding hierarchical context."""

    query: RetrievalQuery
    sources: list[RetrievedSource] = Field(default_factory=list)
    context: list[Passage] = Field(default_factory=list)
    stats: dict[str, Any] = Field(default_factory=dict)

    @property
    def primary(self) -> list[RetrievedSource]:
        return [s for s in self.sources if s.is_primary]

    @property
    def related(self) -> list[RetrievedSource]:
        return [s for s in self.sources if not s.is_primary]

    @property
    def is_empty(self) -> bool:
        """True when no sources were found. Not an error."""
        return not self.sources

    @property
    def cited_ids(self) -> list[int]:
        return [s.id for s in self.sources]
