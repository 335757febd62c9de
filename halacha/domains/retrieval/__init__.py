"""
Retrieval Domain - Hybrid retrieval and ranking of source passages.

This domain handles:
- Vector similarity search and full-text search, run concurrently
- Reciprocal Rank Fusion
- Community and trust-tier boosting
- Hierarchical context and relation-graph expansion
"""

from .contracts import ChunkStore, Embedder, LexicalIndex, RelationGraph, VectorIndex
from .models import (
    GENERAL_COMMUNITY,
    CorpusTier,
    Passage,
    RankedCandidate,
    Relation,
    RelationDirection,
    RelationType,
    RetrievalConfig,
    RetrievalQuery,
    RetrievalResult,
    RetrievedSource,
    SearchMode,
)
from .planner import HybridRetriever

__all__ = [
    # Contracts
    "Embedder",
    "VectorIndex",
    "LexicalIndex",
    "ChunkStore",
    "RelationGraph",
    # Models
    "GENERAL_COMMUNITY",
    "CorpusTier",
    "Passage",
    "Relation",
    "RelationDirection",
    "RelationType",
    "SearchMode",
    "RankedCandidate",
    "RetrievalConfig",
    "RetrievalQuery",
    "RetrievalResult",
    "RetrievedSource",
    # Implementations
    "HybridRetriever",
]
