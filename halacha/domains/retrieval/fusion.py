"""
Rank Fusion - Reciprocal Rank Fusion and trust/community boosting.

Pure functions over candidate ids and passage metadata; no storage access.

Scoring:
    fused = 1/(k + semantic_rank) + 1/(k + lexical_rank)
    final = fused + boost

A candidate missing from one list gets that list's length + 1 as its rank,
so its fused score is always defined and always lower than a real hit.
Boosts are additive:
    +0.15 passage community == requested community
    +0.05 passage community == "General" (stacks with the above)
    +0.10 canonical tier
Equal final scores are ordered by ascending passage id.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace

from .models import GENERAL_COMMUNITY, CorpusTier, Passage, RankedCandidate

__all__ = [
    "COMMUNITY_BOOST",
    "GENERAL_COMMUNITY_BOOST",
    "CANONICAL_BOOST",
    "build_rank_map",
    "reciprocal_rank_fusion",
    "compute_boost",
    "apply_boosts",
    "sort_and_truncate",
]

COMMUNITY_BOOST = 0.15
GENERAL_COMMUNITY_BOOST = 0.05
CANONICAL_BOOST = 0.10


def build_rank_map(ids: Sequence[int]) -> dict[int, int]:
    """Map each id to its 1-based position; repeated ids keep their first rank."""
    ranks: dict[int, int] = {}
    for position, passage_id in enumerate(ids, 1):
        ranks.setdefault(passage_id, position)
    return ranks


def reciprocal_rank_fusion(
    semantic_ids: Sequence[int],
    lexical_ids: Sequence[int],
    k: int = 60,
) -> list[RankedCandidate]:
    """
    Fuse two ranked id lists.

    Args:
        semantic_ids: Ids from the vector search, best first
        lexical_ids: Ids from the full-text search, best first
        k: RRF constant; larger values flatten the top of the curve

    Returns:
        One candidate per distinct id, in first-seen order (semantic list
        first). Not sorted.
    """
    semantic_ranks = build_rank_map(semantic_ids)
    lexical_ranks = build_rank_map(lexical_ids)
    semantic_sentinel = len(semantic_ids) + 1
    lexical_sentinel = len(lexical_ids) + 1

    candidates = []
    for passage_id in dict.fromkeys([*semantic_ids, *lexical_ids]):
        semantic_rank = semantic_ranks.get(passage_id, semantic_sentinel)
        lexical_rank = lexical_ranks.get(passage_id, lexical_sentinel)
        candidates.append(
            RankedCandidate(
                passage_id=passage_id,
                semantic_rank=semantic_rank,
                lexical_rank=lexical_rank,
                fused_score=1.0 / (k + semantic_rank) + 1.0 / (k + lexical_rank),
            )
        )
    return candidates


def compute_boost(passage: Passage | None, community: str) -> float:
    """Trust/community boost for one passage. Unknown metadata earns nothing."""
    if passage is None:
        return 0.0

    boost = 0.0
    if passage.community == community:
        boost += COMMUNITY_BOOST
    if passage.community == GENERAL_COMMUNITY:
        boost += GENERAL_COMMUNITY_BOOST
    if passage.corpus_tier == CorpusTier.CANONICAL:
        boost += CANONICAL_BOOST
    return boost


def apply_boosts(
    candidates: Iterable[RankedCandidate],
    metadata: Mapping[int, Passage],
    community: str,
) -> list[RankedCandidate]:
    """Attach the boost for each candidate's passage."""
    return [
        replace(c, boost=compute_boost(metadata.get(c.passage_id), community))
        for c in candidates
    ]


def sort_and_truncate(
    candidates: Iterable[RankedCandidate],
    top_k: int,
) -> list[RankedCandidate]:
    """Order by final score descending, ties by ascending id, keep top_k."""
    ordered = sorted(candidates, key=lambda c: (-c.final_score, c.passage_id))
    return ordered[:top_k]
