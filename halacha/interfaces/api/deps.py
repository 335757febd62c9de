"""
API Dependencies - Dependency injection for FastAPI routes.

Provides singleton instances of storage, index and service objects.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from halacha.adapters.embeddings import HuggingFaceEmbedder, SentenceTransformerEmbedder
from halacha.adapters.faiss import FAISSIndex
from halacha.adapters.llm import LLMService
from halacha.adapters.sqlite import SQLiteRepository
from halacha.config import get_settings
from halacha.domains.answering import AnswerService
from halacha.domains.relations import RelationGraphStore
from halacha.domains.retrieval import CorpusTier, Embedder, HybridRetriever, RetrievalConfig

logger = logging.getLogger(__name__)


@lru_cache
def get_sqlite_repository() -> SQLiteRepository:
    """Get SQLite repository singleton."""
    settings = get_settings()
    return SQLiteRepository(settings.db_path)


@lru_cache
def get_vector_index() -> FAISSIndex:
    """Get FAISS index singleton."""
    settings = get_settings()
    return FAISSIndex(
        dimension=settings.embedding_dim,
        index_type=settings.vector_index_type,
    )


@lru_cache
def get_relation_graph() -> RelationGraphStore:
    """Get relation graph singleton."""
    return RelationGraphStore()


@lru_cache
def get_embedder() -> Embedder:
    """Get embedder singleton for the configured provider."""
    settings = get_settings()
    if settings.embedding_provider == "local":
        return SentenceTransformerEmbedder(
            model_name=settings.embedding_model,
            dimension=settings.embedding_dim,
        )
    return HuggingFaceEmbedder(
        api_url=settings.embedding_api_url,
        api_key=settings.embedding_api_key,
        dimension=settings.embedding_dim,
        timeout=settings.embedding_timeout,
    )


@lru_cache
def get_llm_service() -> LLMService:
    """Get LLM service singleton."""
    return LLMService(settings=get_settings())


@lru_cache
def get_retriever() -> HybridRetriever:
    """Get hybrid retriever wired to the singletons above."""
    repo = get_sqlite_repository()
    return HybridRetriever(
        embedder=get_embedder(),
        vector_index=get_vector_index(),
        lexical_index=repo,
        chunk_store=repo,
        relation_graph=get_relation_graph(),
        config=RetrievalConfig.from_settings(get_settings()),
    )


@lru_cache
def get_answer_service() -> AnswerService:
    """Get answer service singleton."""
    settings = get_settings()
    repo = get_sqlite_repository()
    return AnswerService(
        retriever=get_retriever(),
        generator=get_llm_service(),
        answer_log=repo,
        profiles=repo,
        default_tiers=[CorpusTier(t) for t in settings.default_tiers],
        default_community=settings.default_community,
    )


async def init_services() -> None:
    """
    Initialize services on startup.

    This should be called from the FastAPI lifespan handler.
    """
    settings = get_settings()

    # Initialize SQLite
    repo = get_sqlite_repository()
    await repo.initialize()

    # Load vector index if one was built
    index_path = Path(settings.vector_index_path)
    if (index_path / "metadata.json").exists():
        await get_vector_index().load(index_path)
    else:
        logger.warning("No vector index at %s; semantic search returns nothing", index_path)

    # Relation graph: stored edges plus an optional JSON file
    graph = get_relation_graph()
    graph.clear()
    await graph.load_from_repository(repo)
    await graph.load_from_json(Path(settings.data_dir) / "graph" / "relations.json")


async def cleanup_services() -> None:
    """Cleanup services on shutdown."""
    await get_sqlite_repository().close()
    await get_llm_service().close()

    embedder = get_embedder()
    if isinstance(embedder, HuggingFaceEmbedder):
        await embedder.close()
