"""
Hybrid Retriever - Plans and executes one retrieval call.

Flow:
    question -> embed -> {vector search, lexical search} (concurrent)
             -> RRF -> metadata load -> boosts -> sort/truncate
             -> hierarchical context + relational expansion -> result

Every dependency failure aborts the call with RetrievalFailed. Nothing is
retried or cached here, and the retriever holds no per-call state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Collection, Iterable, Sequence
from typing import TypeVar

from pydantic import ValidationError

from halacha.config.errors import RetrievalFailed, RetrievalInputError

from .contracts import ChunkStore, Embedder, LexicalIndex, RelationGraph, VectorIndex
from .fusion import apply_boosts, reciprocal_rank_fusion, sort_and_truncate
from .models import (
    GENERAL_COMMUNITY,
    CorpusTier,
    Passage,
    RankedCandidate,
    Relation,
    RetrievalConfig,
    RetrievalQuery,
    RetrievalResult,
    RetrievedSource,
    SearchMode,
)

logger = logging.getLogger(__name__)

__all__ = ["HybridRetriever"]

T = TypeVar("T")


class HybridRetriever:
    """
    Hybrid semantic + lexical retriever with graph expansion.

    Example:
        >>> retriever = HybridRetriever(embedder, faiss_index, repo, repo, repo)
        >>> result = await retriever.retrieve("lighting candles late", ["canonical"])
        >>> [s.section_ref for s in result.primary]
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_index: VectorIndex,
        lexical_index: LexicalIndex,
        chunk_store: ChunkStore,
        relation_graph: RelationGraph,
        config: RetrievalConfig | None = None,
    ) -> None:
        """
        Initialize retriever.

        Args:
            embedder: Question embedding capability
            vector_index: Tier-filterable nearest-neighbour search
            lexical_index: Tier-filterable full-text search
            chunk_store: Passage records by id or parent reference
            relation_graph: Typed edges between passages
            config: Fusion and expansion parameters
        """
        self._embedder = embedder
        self._vector_index = vector_index
        self._lexical_index = lexical_index
        self._chunks = chunk_store
        self._relations = relation_graph
        self.config = config or RetrievalConfig()

    async def retrieve(
        self,
        question: str,
        tiers: Iterable[CorpusTier | str],
        community: str = GENERAL_COMMUNITY,
        mode: SearchMode | str = SearchMode.PRACTICAL,
    ) -> RetrievalResult:
        """
        Retrieve ranked, deduplicated sources for a question.

        Args:
            question: Natural-language question (non-empty after trimming)
            tiers: Allowed corpus tiers (non-empty, closed set)
            community: Community whose passages get the community boost
            mode: Answer mode, carried through for prompt construction

        Returns:
            Primary matches in score order followed by related matches in
            edge-discovery order, plus hierarchical context.

        Raises:
            RetrievalInputError: Invalid question or tiers (no I/O performed)
            RetrievalFailed: A dependency failed
        """
        query = self._validate(question, tiers, community, mode)
        start_time = time.perf_counter()

        vector = await self._call("embedder", self._embedder.embed_query(query.question))
        semantic_hits, lexical_hits = await self._search(vector, query)

        candidates = reciprocal_rank_fusion(
            [passage_id for passage_id, _ in semantic_hits],
            [passage_id for passage_id, _ in lexical_hits],
            k=self.config.rrf_k,
        )
        stats = {
            "semantic_hits": len(semantic_hits),
            "lexical_hits": len(lexical_hits),
            "candidates": len(candidates),
        }

        if not candidates:
            logger.info("Retrieve: query='%s' -> no candidates", query.question[:50])
            return RetrievalResult(query=query, stats=stats)

        passages = await self._call(
            "chunk_store",
            self._chunks.get_by_ids([c.passage_id for c in candidates]),
        )
        metadata = {p.id: p for p in passages}

        ranked = sort_and_truncate(
            apply_boosts(
                self._eligible(candidates, metadata, query.tiers),
                metadata,
                query.community,
            ),
            self.config.top_k,
        )
        primary = [metadata[c.passage_id] for c in ranked]

        context = await self._expand_hierarchy(primary, query.tiers)
        related = await self._expand_relations(primary, query.tiers)

        sources = [
            RetrievedSource.from_passage(metadata[c.passage_id], True, c.final_score)
            for c in ranked
        ]
        sources.extend(RetrievedSource.from_passage(p, False) for p in related)

        stats.update(
            primary=len(primary),
            related=len(related),
            context=len(context),
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )
        logger.info(
            "Retrieve: query='%s' tiers=%s -> %d primary, %d related "
            "(semantic=%d, lexical=%d)",
            query.question[:50],
            ",".join(t.value for t in query.tiers),
            len(primary),
            len(related),
            len(semantic_hits),
            len(lexical_hits),
        )

        return RetrievalResult(query=query, sources=sources, context=context, stats=stats)

    @staticmethod
    def _validate(
        question: str,
        tiers: Iterable[CorpusTier | str],
        community: str,
        mode: SearchMode | str,
    ) -> RetrievalQuery:
        """Reject bad input before any dependency is touched."""
        if isinstance(tiers, str):
            tiers = (tiers,)
        try:
            return RetrievalQuery(
                question=question,
                tiers=tuple(tiers or ()),
                community=community,
                mode=mode,
            )
        except ValidationError as e:
            raise RetrievalInputError(
                "Invalid retrieval query",
                {"errors": [err["msg"] for err in e.errors()]},
            ) from e

    @staticmethod
    async def _call(dependency: str, awaitable: Awaitable[T]) -> T:
        """Await a dependency call, surfacing any failure as RetrievalFailed."""
        try:
            return await awaitable
        except Exception as e:
            logger.error("Retrieval dependency %s failed: %s", dependency, e)
            raise RetrievalFailed(dependency, e) from e

    async def _search(
        self,
        vector: Sequence[float],
        query: RetrievalQuery,
    ) -> tuple[list[tuple[int, float]], list[tuple[int, float]]]:
        """Run both searches concurrently with the same tier filter."""
        try:
            async with asyncio.TaskGroup() as tg:
                semantic = tg.create_task(
                    self._call(
                        "vector_index",
                        self._vector_index.search(
                            vector, query.tiers, self.config.semantic_k
                        ),
                    )
                )
                lexical = tg.create_task(
                    self._call(
                        "lexical_index",
                        self._lexical_index.search(
                            query.question, query.tiers, self.config.lexical_k
                        ),
                    )
                )
        except ExceptionGroup as eg:
            # The first failure cancels the sibling; report that one.
            raise eg.exceptions[0]

        return semantic.result(), lexical.result()

    @staticmethod
    def _eligible(
        candidates: Iterable[RankedCandidate],
        metadata: dict[int, Passage],
        tiers: Collection[CorpusTier],
    ) -> list[RankedCandidate]:
        """Drop stale ids and anything outside the requested tiers."""
        eligible = []
        for candidate in candidates:
            passage = metadata.get(candidate.passage_id)
            if passage is None:
                logger.warning("Dropping stale candidate id %d", candidate.passage_id)
            elif passage.corpus_tier not in tiers:
                logger.warning(
                    "Dropping candidate %d with tier %s outside request",
                    passage.id,
                    passage.corpus_tier.value,
                )
            else:
                eligible.append(candidate)
        return eligible

    def _allowed(self, passage: Passage, tiers: Collection[CorpusTier]) -> bool:
        return self.config.expand_across_tiers or passage.corpus_tier in tiers

    async def _expand_hierarchy(
        self,
        primary: list[Passage],
        tiers: Collection[CorpusTier],
    ) -> list[Passage]:
        """Fetch passages sharing a parent with the primaries, as context only."""
        parent_refs = list(dict.fromkeys(p.parent_ref for p in primary if p.parent_ref))
        if not parent_refs:
            return []

        async def fetch(ref: str) -> list[Passage]:
            return await self._call("chunk_store", self._chunks.get_by_parent_or_section(ref))

        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(fetch(ref)) for ref in parent_refs]
        except ExceptionGroup as eg:
            raise eg.exceptions[0]

        seen = {p.id for p in primary}
        context = []
        for task in tasks:
            for passage in task.result():
                if passage.id not in seen and self._allowed(passage, tiers):
                    seen.add(passage.id)
                    context.append(passage)
        return context

    async def _expand_relations(
        self,
        primary: list[Passage],
        tiers: Collection[CorpusTier],
    ) -> list[Passage]:
        """Pull in the far endpoint of allowed edges touching the primaries."""
        if not primary:
            return []

        primary_ids = [p.id for p in primary]
        relations = await self._call(
            "relation_graph",
            self._relations.get_relations(primary_ids, self.config.relation_types),
        )
        related_ids = self._opposite_endpoints(relations, set(primary_ids))
        if not related_ids:
            return []

        passages = await self._call("chunk_store", self._chunks.get_by_ids(related_ids))
        by_id = {p.id: p for p in passages}

        related = []
        for passage_id in related_ids:
            passage = by_id.get(passage_id)
            if passage is not None and self._allowed(passage, tiers):
                related.append(passage)
        return related

    def _opposite_endpoints(
        self,
        relations: Iterable[Relation],
        primary_ids: set[int],
    ) -> list[int]:
        """Far endpoints in discovery order, excluding primaries and repeats."""
        allowed_types = set(self.config.relation_types)
        found: dict[int, None] = {}
        for relation in relations:
            if relation.relation_type not in allowed_types:
                continue
            for endpoint in (relation.from_id, relation.to_id):
                if endpoint in primary_ids:
                    other = relation.opposite(endpoint)
                    if other is not None and other not in primary_ids:
                        found.setdefault(other, None)
        return list(found)
