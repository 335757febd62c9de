"""
Retrieval Contracts - Interfaces the hybrid retriever depends on.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from .models import CorpusTier, Passage, Relation, RelationType


@runtime_checkable
class Embedder(Protocol):
    """Contract for question embedding."""

    async def embed_query(self, text: str) -> list[float]:
        """Embed a question. Raises EmbeddingUnavailable on failure."""
        ...


@runtime_checkable
class VectorIndex(Protocol):
    """Contract for nearest-neighbour passage search."""

    async def search(
        self,
        vector: Sequence[float],
        tiers: Sequence[CorpusTier],
        limit: int,
    ) -> list[tuple[int, float]]:
        """Return (passage_id, distance) pairs in ascending distance order."""
        ...


@runtime_checkable
class LexicalIndex(Protocol):
    """Contract for full-text passage search."""

    async def search(
        self,
        text: str,
        tiers: Sequence[CorpusTier],
        limit: int,
    ) -> list[tuple[int, float]]:
        """Return (passage_id, rank) pairs in descending rank order."""
        ...


@runtime_checkable
class ChunkStore(Protocol):
    """Contract for canonical passage records."""

    async def get_by_ids(self, ids: Sequence[int]) -> list[Passage]:
        """Fetch passages. Unordered; stale ids are silently missing."""
        ...

    async def get_by_parent_or_section(self, ref: str) -> list[Passage]:
        """Fetch passages whose parent_ref or section_ref equals ref."""
        ...


@runtime_checkable
class RelationGraph(Protocol):
    """Contract for typed edges between passages."""

    async def get_relations(
        self,
        ids: Sequence[int],
        type_filter: Sequence[RelationType],
    ) -> list[Relation]:
        """Edges with either endpoint in ids and a type in type_filter."""
        ...
