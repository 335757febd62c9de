"""
Tests for the hybrid retriever.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from unittest.mock import AsyncMock

import pytest

from halacha.config.errors import EmbeddingUnavailable, RetrievalFailed, RetrievalInputError

from .models import (
    CorpusTier,
    Passage,
    Relation,
    RelationDirection,
    RelationType,
    RetrievalConfig,
    SearchMode,
)
from .planner import HybridRetriever


def _passage(
    passage_id: int,
    community: str = "Ashkenazi",
    tier: CorpusTier = CorpusTier.CANONICAL,
    parent_ref: str | None = None,
) -> Passage:
    return Passage(
        id=passage_id,
        work="Shulchan Arukh",
        section_ref=f"OC {passage_id}",
        parent_ref=parent_ref,
        text=f"Passage {passage_id}",
        community=community,
        corpus_tier=tier,
        authority_weight=1.0 if tier == CorpusTier.CANONICAL else 0.0,
    )


class FakeChunkStore:
    """In-memory chunk store returning passages in reverse order."""

    def __init__(self, passages: list[Passage]) -> None:
        self.passages = {p.id: p for p in passages}
        self.get_by_ids_calls: list[list[int]] = []
        self.parent_calls: list[str] = []

    async def get_by_ids(self, ids: Sequence[int]) -> list[Passage]:
        self.get_by_ids_calls.append(list(ids))
        found = [self.passages[i] for i in ids if i in self.passages]
        return list(reversed(found))

    async def get_by_parent_or_section(self, ref: str) -> list[Passage]:
        self.parent_calls.append(ref)
        return [
            p for p in self.passages.values()
            if p.parent_ref == ref or p.section_ref == ref
        ]


@pytest.fixture
def passages() -> list[Passage]:
    """Canonical corpus used by most tests."""
    return [_passage(i) for i in (10, 20, 30, 40)]


@pytest.fixture
def embedder() -> AsyncMock:
    mock = AsyncMock()
    mock.embed_query.return_value = [0.1, 0.2, 0.3]
    return mock


@pytest.fixture
def vector_index() -> AsyncMock:
    mock = AsyncMock()
    mock.search.return_value = [(10, 0.1), (20, 0.2), (30, 0.3)]
    return mock


@pytest.fixture
def lexical_index() -> AsyncMock:
    mock = AsyncMock()
    mock.search.return_value = [(20, 3.0), (10, 2.0), (40, 1.0)]
    return mock


@pytest.fixture
def relation_graph() -> AsyncMock:
    mock = AsyncMock()
    mock.get_relations.return_value = []
    return mock


@pytest.fixture
def chunk_store(passages: list[Passage]) -> FakeChunkStore:
    return FakeChunkStore(passages)


@pytest.fixture
def retriever(
    embedder: AsyncMock,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
    chunk_store: FakeChunkStore,
    relation_graph: AsyncMock,
) -> HybridRetriever:
    return HybridRetriever(
        embedder=embedder,
        vector_index=vector_index,
        lexical_index=lexical_index,
        chunk_store=chunk_store,
        relation_graph=relation_graph,
    )


# --- Input Validation Tests ---


@pytest.mark.parametrize("question", ["", "   "])
async def test_retrieve_rejects_empty_question(
    retriever: HybridRetriever, embedder: AsyncMock, question: str
) -> None:
    """Test empty questions are rejected before any I/O."""
    with pytest.raises(RetrievalInputError):
        await retriever.retrieve(question, ["canonical"])
    embedder.embed_query.assert_not_called()


@pytest.mark.parametrize("tiers", [[], ["canonical", "heretical"], None])
async def test_retrieve_rejects_bad_tiers(
    retriever: HybridRetriever,
    embedder: AsyncMock,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
    tiers: list[str] | None,
) -> None:
    """Test empty or unknown tiers never mean 'match everything'."""
    with pytest.raises(RetrievalInputError):
        await retriever.retrieve("shabbat candles", tiers)  # type: ignore[arg-type]
    embedder.embed_query.assert_not_called()
    vector_index.search.assert_not_called()
    lexical_index.search.assert_not_called()


async def test_retrieve_trims_question(
    retriever: HybridRetriever, embedder: AsyncMock, lexical_index: AsyncMock
) -> None:
    """Test the trimmed question is what gets embedded and searched."""
    await retriever.retrieve("  shabbat candles  ", ["canonical"])
    embedder.embed_query.assert_awaited_once_with("shabbat candles")
    assert lexical_index.search.call_args.args[0] == "shabbat candles"


# --- Ranking Tests ---


async def test_retrieve_worked_example_order(retriever: HybridRetriever) -> None:
    """Test fused order with id tie-break: 10, 20, 30, 40."""
    result = await retriever.retrieve("candles", ["canonical"], community="Ashkenazi")

    assert [s.id for s in result.primary] == [10, 20, 30, 40]
    assert all(s.is_primary for s in result.primary)
    assert result.primary[0].score == pytest.approx(1 / 61 + 1 / 62 + 0.25)


async def test_retrieve_same_tiers_to_both_searches(
    retriever: HybridRetriever,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
) -> None:
    """Test the tier filter is applied identically to both searches."""
    await retriever.retrieve("candles", ["academic", "canonical", "academic"])

    semantic_tiers = vector_index.search.call_args.args[1]
    lexical_tiers = lexical_index.search.call_args.args[1]
    assert semantic_tiers == lexical_tiers == (CorpusTier.CANONICAL, CorpusTier.ACADEMIC)
    assert vector_index.search.call_args.args[2] == 60
    assert lexical_index.search.call_args.args[2] == 60


async def test_retrieve_community_boost_reorders(
    embedder: AsyncMock,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
    relation_graph: AsyncMock,
) -> None:
    """Test a passage from the requested community moves up."""
    store = FakeChunkStore(
        [_passage(10), _passage(20), _passage(30, community="Sephardi"), _passage(40)]
    )
    retriever = HybridRetriever(embedder, vector_index, lexical_index, store, relation_graph)

    result = await retriever.retrieve("candles", ["canonical"], community="Sephardi")
    assert result.primary[0].id == 30


async def test_retrieve_top_k_truncates(
    embedder: AsyncMock,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
    chunk_store: FakeChunkStore,
    relation_graph: AsyncMock,
) -> None:
    """Test only top_k primary matches are kept."""
    retriever = HybridRetriever(
        embedder, vector_index, lexical_index, chunk_store, relation_graph,
        config=RetrievalConfig(top_k=2),
    )
    result = await retriever.retrieve("candles", ["canonical"])
    assert [s.id for s in result.primary] == [10, 20]


async def test_retrieve_drops_stale_ids(
    retriever: HybridRetriever, vector_index: AsyncMock
) -> None:
    """Test ids missing from the chunk store never reach the output."""
    vector_index.search.return_value = [(99, 0.01), (10, 0.1)]
    result = await retriever.retrieve("candles", ["canonical"])

    assert 99 not in result.cited_ids
    assert sorted(result.cited_ids) == [10, 20, 40]


async def test_retrieve_primary_respects_tier_filter(
    embedder: AsyncMock,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
    relation_graph: AsyncMock,
) -> None:
    """Test a mis-tiered hit from an index is not returned as primary."""
    store = FakeChunkStore(
        [_passage(10), _passage(20, tier=CorpusTier.APOCRYPHA), _passage(30), _passage(40)]
    )
    retriever = HybridRetriever(embedder, vector_index, lexical_index, store, relation_graph)

    result = await retriever.retrieve("candles", ["canonical"])
    assert 20 not in result.cited_ids
    assert all(s.corpus_tier == CorpusTier.CANONICAL for s in result.primary)


async def test_retrieve_is_idempotent(retriever: HybridRetriever) -> None:
    """Test identical inputs give identical ordered output."""
    first = await retriever.retrieve("candles", ["canonical"], "Ashkenazi")
    second = await retriever.retrieve("candles", ["canonical"], "Ashkenazi")
    assert first.sources == second.sources


async def test_retrieve_carries_mode(retriever: HybridRetriever) -> None:
    """Test mode is carried through without affecting ranking."""
    practical = await retriever.retrieve("candles", ["canonical"])
    posek = await retriever.retrieve("candles", ["canonical"], mode="posek_view")

    assert posek.query.mode == SearchMode.POSEK_VIEW
    assert posek.sources == practical.sources


# --- Empty Result Tests ---


async def test_retrieve_empty_is_not_an_error(
    retriever: HybridRetriever,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
    chunk_store: FakeChunkStore,
    relation_graph: AsyncMock,
) -> None:
    """Test no hits gives an empty result and skips every expansion step."""
    vector_index.search.return_value = []
    lexical_index.search.return_value = []

    result = await retriever.retrieve("candles", ["canonical"])

    assert result.is_empty
    assert result.primary == []
    assert result.context == []
    assert chunk_store.get_by_ids_calls == []
    assert chunk_store.parent_calls == []
    relation_graph.get_relations.assert_not_called()


async def test_retrieve_one_empty_search_is_fine(
    retriever: HybridRetriever, lexical_index: AsyncMock
) -> None:
    """Test an empty lexical list still yields semantic results."""
    lexical_index.search.return_value = []
    result = await retriever.retrieve("candles", ["canonical"])
    assert [s.id for s in result.primary] == [10, 20, 30]


# --- Expansion Tests ---


async def test_hierarchy_is_context_not_sources(
    embedder: AsyncMock,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
    relation_graph: AsyncMock,
) -> None:
    """Test sibling passages land in context, not in the source list."""
    store = FakeChunkStore(
        [
            _passage(10, parent_ref="OC 263"),
            _passage(20, parent_ref="OC 263"),
            _passage(30),
            _passage(40),
            _passage(50, parent_ref="OC 263"),
            _passage(60, parent_ref="OC 999"),
        ]
    )
    retriever = HybridRetriever(embedder, vector_index, lexical_index, store, relation_graph)

    result = await retriever.retrieve("candles", ["canonical"])

    assert store.parent_calls == ["OC 263"]
    assert [p.id for p in result.context] == [50]
    assert 50 not in result.cited_ids


async def test_relations_add_related_matches(
    retriever: HybridRetriever,
    relation_graph: AsyncMock,
    chunk_store: FakeChunkStore,
) -> None:
    """Test opposite endpoints are appended as related, in discovery order."""
    chunk_store.passages[70] = _passage(70)
    chunk_store.passages[80] = _passage(80)
    relation_graph.get_relations.return_value = [
        Relation(from_id=80, to_id=20, relation_type=RelationType.ARGUES_WITH),
        Relation(from_id=10, to_id=70, relation_type=RelationType.SUPPORTS),
        Relation(from_id=10, to_id=20, relation_type=RelationType.SUPPORTS),
        Relation(
            from_id=30,
            to_id=80,
            relation_type=RelationType.CONTEXTUALIZES,
            direction=RelationDirection.BIDIRECTIONAL,
        ),
    ]

    result = await retriever.retrieve("candles", ["canonical"])

    assert [s.id for s in result.related] == [80, 70]
    assert all(not s.is_primary for s in result.related)
    assert result.cited_ids == [10, 20, 30, 40, 80, 70]

    ids, type_filter = relation_graph.get_relations.call_args.args
    assert sorted(ids) == [10, 20, 30, 40]
    assert set(type_filter) == {
        RelationType.ARGUES_WITH,
        RelationType.SUPPORTS,
        RelationType.MINHAG_OVERRIDE,
        RelationType.CONTEXTUALIZES,
    }


async def test_relations_never_duplicate_primary(
    retriever: HybridRetriever, relation_graph: AsyncMock
) -> None:
    """Test no id appears in both primary and related lists."""
    relation_graph.get_relations.return_value = [
        Relation(from_id=10, to_id=20, relation_type=RelationType.ARGUES_WITH),
        Relation(from_id=40, to_id=30, relation_type=RelationType.SUPPORTS),
    ]
    result = await retriever.retrieve("candles", ["canonical"])

    assert result.related == []
    assert len(result.cited_ids) == len(set(result.cited_ids))


async def test_relations_outside_allowlist_ignored(
    retriever: HybridRetriever,
    relation_graph: AsyncMock,
    chunk_store: FakeChunkStore,
) -> None:
    """Test edge types outside the allowlist never expand."""
    chunk_store.passages[70] = _passage(70)
    relation_graph.get_relations.return_value = [
        Relation(from_id=10, to_id=70, relation_type=RelationType.QUOTES),
    ]
    result = await retriever.retrieve("candles", ["canonical"])
    assert result.related == []


async def test_relations_tier_filtered_by_default(
    retriever: HybridRetriever,
    relation_graph: AsyncMock,
    chunk_store: FakeChunkStore,
) -> None:
    """Test related passages from excluded tiers are dropped by default."""
    chunk_store.passages[70] = _passage(70, tier=CorpusTier.APOCRYPHA)
    chunk_store.passages[80] = _passage(80)
    relation_graph.get_relations.return_value = [
        Relation(from_id=10, to_id=70, relation_type=RelationType.SUPPORTS),
        Relation(from_id=10, to_id=80, relation_type=RelationType.SUPPORTS),
    ]
    result = await retriever.retrieve("candles", ["canonical"])
    assert [s.id for s in result.related] == [80]


async def test_relations_across_tiers_when_enabled(
    embedder: AsyncMock,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
    chunk_store: FakeChunkStore,
    relation_graph: AsyncMock,
) -> None:
    """Test cross-tier context keeps its own tier as provenance."""
    chunk_store.passages[70] = _passage(70, tier=CorpusTier.APOCRYPHA)
    relation_graph.get_relations.return_value = [
        Relation(from_id=10, to_id=70, relation_type=RelationType.SUPPORTS),
    ]
    retriever = HybridRetriever(
        embedder, vector_index, lexical_index, chunk_store, relation_graph,
        config=RetrievalConfig(expand_across_tiers=True),
    )

    result = await retriever.retrieve("candles", ["canonical"])

    [related] = result.related
    assert related.id == 70
    assert related.corpus_tier == CorpusTier.APOCRYPHA
    assert all(s.corpus_tier == CorpusTier.CANONICAL for s in result.primary)


# --- Failure Tests ---


async def test_embedding_failure_aborts(
    retriever: HybridRetriever,
    embedder: AsyncMock,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
) -> None:
    """Test no retrieval happens without a query vector."""
    embedder.embed_query.side_effect = EmbeddingUnavailable("quota exceeded")

    with pytest.raises(RetrievalFailed) as exc_info:
        await retriever.retrieve("candles", ["canonical"])

    assert exc_info.value.dependency == "embedder"
    assert isinstance(exc_info.value.cause, EmbeddingUnavailable)
    vector_index.search.assert_not_called()
    lexical_index.search.assert_not_called()


@pytest.mark.parametrize("failing", ["vector_index", "lexical_index"])
async def test_search_failure_aborts(
    retriever: HybridRetriever,
    vector_index: AsyncMock,
    lexical_index: AsyncMock,
    chunk_store: FakeChunkStore,
    failing: str,
) -> None:
    """Test either search failing aborts the whole call."""
    mock = vector_index if failing == "vector_index" else lexical_index
    mock.search.side_effect = ConnectionError("down")

    with pytest.raises(RetrievalFailed) as exc_info:
        await retriever.retrieve("candles", ["canonical"])

    assert exc_info.value.dependency == failing
    assert chunk_store.get_by_ids_calls == []


async def test_search_failure_cancels_sibling(
    embedder: AsyncMock,
    lexical_index: AsyncMock,
    chunk_store: FakeChunkStore,
    relation_graph: AsyncMock,
) -> None:
    """Test a failing branch cancels the slow one instead of waiting."""
    cancelled = asyncio.Event()

    class SlowVectorIndex:
        async def search(self, vector, tiers, limit):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return []

    lexical_index.search.side_effect = ConnectionError("down")
    retriever = HybridRetriever(
        embedder, SlowVectorIndex(), lexical_index, chunk_store, relation_graph
    )

    with pytest.raises(RetrievalFailed):
        await asyncio.wait_for(retriever.retrieve("candles", ["canonical"]), timeout=2)
    assert cancelled.is_set()


async def test_searches_run_concurrently(
    embedder: AsyncMock,
    chunk_store: FakeChunkStore,
    relation_graph: AsyncMock,
) -> None:
    """Test each search waits for the other to start."""
    semantic_started = asyncio.Event()
    lexical_started = asyncio.Event()

    class VectorIndex:
        async def search(self, vector, tiers, limit):
            semantic_started.set()
            await asyncio.wait_for(lexical_started.wait(), timeout=1)
            return [(10, 0.1)]

    class LexicalIndex:
        async def search(self, text, tiers, limit):
            lexical_started.set()
            await asyncio.wait_for(semantic_started.wait(), timeout=1)
            return [(20, 1.0)]

    retriever = HybridRetriever(
        embedder, VectorIndex(), LexicalIndex(), chunk_store, relation_graph
    )
    result = await retriever.retrieve("candles", ["canonical"])
    assert sorted(result.cited_ids) == [10, 20]


async def test_caller_cancellation_propagates(
    embedder: AsyncMock,
    lexical_index: AsyncMock,
    chunk_store: FakeChunkStore,
    relation_graph: AsyncMock,
) -> None:
    """Test a caller timeout cancels the in-flight searches."""
    cancelled = asyncio.Event()

    class HangingVectorIndex:
        async def search(self, vector, tiers, limit):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return []

    retriever = HybridRetriever(
        embedder, HangingVectorIndex(), lexical_index, chunk_store, relation_graph
    )

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(retriever.retrieve("candles", ["canonical"]), timeout=0.05)
    assert cancelled.is_set()


async def test_relation_graph_failure_aborts(
    retriever: HybridRetriever, relation_graph: AsyncMock
) -> None:
    """Test expansion failures are not swallowed into a partial result."""
    relation_graph.get_relations.side_effect = RuntimeError("graph offline")

    with pytest.raises(RetrievalFailed) as exc_info:
        await retriever.retrieve("candles", ["canonical"])
    assert exc_info.value.dependency == "relation_graph"
