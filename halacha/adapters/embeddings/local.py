"""
Local Embedder - sentence-transformers model run in-process.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from sentence_transformers import SentenceTransformer

from halacha.config.errors import EmbeddingUnavailable

from .client import BGE_QUERY_PREFIX

logger = logging.getLogger(__name__)

__all__ = ["SentenceTransformerEmbedder"]


class SentenceTransformerEmbedder:
    """
    Embedder backed by a local sentence-transformers model.

    The model is loaded lazily on first use; encoding runs in a worker
    thread so the event loop is not blocked.

    Example:
        >>> embedder = SentenceTransformerEmbedder("BAAI/bge-m3")
        >>> vector = await embedder.embed_query("May candles be lit late?")
    """

    def __init__(
        self,
        model_name: str = "BAAI/bge-m3",
        dimension: int = 1024,
        batch_size: int = 32,
        query_prefix: str = BGE_QUERY_PREFIX,
        model: Any | None = None,
    ) -> None:
        self.model_name = model_name
        self.dimension = dimension
        self.batch_size = batch_size
        self.query_prefix = query_prefix
        self._model = model
        self._load_lock = asyncio.Lock()

    async def _get_model(self) -> Any:
        async with self._load_lock:
            if self._model is None:
                logger.info("Loading embedding model: %s", self.model_name)
                try:
                    self._model = await asyncio.to_thread(
                        SentenceTransformer, self.model_name
                    )
                except Exception as e:
                    logger.error("Failed to load embedding model %s: %s", self.model_name, e)
                    raise EmbeddingUnavailable(
                        f"Could not load embedding model: {e}",
                        {"model": self.model_name},
                    ) from e
        return self._model

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed passages, L2-normalized and truncated to the index dimension.

        Raises:
            EmbeddingUnavailable: Model failed to load or encode
        """
        model = await self._get_model()
        try:
            embeddings = await asyncio.to_thread(
                model.encode,
                list(texts),
                batch_size=self.batch_size,
                normalize_embeddings=True,
                convert_to_numpy=True,
            )
        except Exception as e:
            raise EmbeddingUnavailable(
                f"Embedding model failed to encode: {e}", {"model": self.model_name}
            ) from e

        if any(len(row) < self.dimension for row in embeddings):
            raise EmbeddingUnavailable(
                "Embedding shorter than configured dimension",
                {"model": self.model_name, "dimension": self.dimension},
            )
        return [row[: self.dimension].tolist() for row in embeddings]

    async def embed_query(self, text: str) -> list[float]:
        """Embed a question with the retrieval instruction prefix."""
        [vector] = await self.embed_texts([f"{self.query_prefix}{text}"])
        return vector
