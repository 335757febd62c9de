"""
FAISS Index - Vector similarity search, partitioned by corpus tier.

Features:
- Async-compatible operations
- One sub-index per corpus tier, so tier filtering happens before ranking
- Index persistence
- Batch operations
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import faiss
import numpy as np

from halacha.domains.retrieval.models import CorpusTier

logger = logging.getLogger(__name__)

__all__ = ["FAISSIndex"]


class FAISSIndex:
    """
    FAISS vector index for semantic passage search.

    Vectors are L2-normalized and searched by inner product; results are
    reported as cosine distance (1 - similarity), smallest first.

    Example:
        >>> index = FAISSIndex(dimension=1024)
        >>> await index.add_vectors(embeddings, passage_ids, tiers)
        >>> hits = await index.search(query_embedding, [CorpusTier.CANONICAL], 60)
    """

    def __init__(
        self,
        dimension: int = 1024,
        index_type: str = "Flat",
    ) -> None:
        """
        Initialize FAISS index.

        Args:
            dimension: Vector dimension (1024 for bge-m3)
            index_type: Index type ("Flat", "HNSW")
        """
        self.dimension = dimension
        self.index_type = index_type
        self._partitions: dict[CorpusTier, faiss.Index] = {}

    def _create_index(self) -> faiss.Index:
        """Create FAISS index based on type."""
        if self.index_type == "HNSW":
            base = faiss.IndexHNSWFlat(self.dimension, 32, faiss.METRIC_INNER_PRODUCT)
        else:
            base = faiss.IndexFlatIP(self.dimension)
        return faiss.IndexIDMap(base)

    def _partition(self, tier: CorpusTier) -> faiss.Index:
        if tier not in self._partitions:
            self._partitions[tier] = self._create_index()
            logger.info(
                "FAISS partition created: tier=%s, dimension=%d, type=%s",
                tier.value,
                self.dimension,
                self.index_type,
            )
        return self._partitions[tier]

    def _prepare(self, vectors: np.ndarray) -> np.ndarray:
        vectors = np.ascontiguousarray(np.asarray(vectors, dtype="float32"))
        if vectors.ndim == 1:
            vectors = vectors.reshape(1, -1)
        if vectors.shape[1] != self.dimension:
            raise ValueError(
                f"Vector dimension {vectors.shape[1]} does not match index "
                f"dimension {self.dimension}"
            )
        # Normalize for inner product (cosine similarity)
        faiss.normalize_L2(vectors)
        return vectors

    async def add_vectors(
        self,
        vectors: np.ndarray,
        passage_ids: Sequence[int],
        tiers: Sequence[CorpusTier | str],
    ) -> None:
        """
        Add passage vectors.

        Args:
            vectors: numpy array of shape (n, dimension)
            passage_ids: Passage id per row
            tiers: Corpus tier per row
        """
        if not (len(vectors) == len(passage_ids) == len(tiers)):
            raise ValueError("vectors, passage_ids and tiers must have equal length")

        vectors = self._prepare(vectors)
        ids = np.asarray(passage_ids, dtype="int64")
        row_tiers = np.asarray([CorpusTier(t).value for t in tiers])

        for tier_value in dict.fromkeys(row_tiers.tolist()):
            mask = row_tiers == tier_value
            partition = self._partition(CorpusTier(tier_value))
            await asyncio.to_thread(
                partition.add_with_ids,
                np.ascontiguousarray(vectors[mask]),
                ids[mask],
            )

        logger.debug("Added %d vectors to index", len(vectors))

    async def search(
        self,
        vector: Sequence[float],
        tiers: Sequence[CorpusTier],
        limit: int = 60,
    ) -> list[tuple[int, float]]:
        """
        Search for nearest passages within the given tiers.

        Args:
            vector: Query vector of shape (dimension,)
            tiers: Corpus tiers to search
            limit: Number of results

        Returns:
            (passage_id, distance) pairs in ascending distance order
        """
        query = self._prepare(np.asarray(vector))

        hits: list[tuple[int, float]] = []
        for tier in dict.fromkeys(CorpusTier(t) for t in tiers):
            partition = self._partitions.get(tier)
            if partition is None or partition.ntotal == 0:
                continue

            scores, indices = await asyncio.to_thread(
                partition.search, query, min(limit, partition.ntotal)
            )
            hits.extend(
                (int(idx), 1.0 - float(score))
                for score, idx in zip(scores[0], indices[0])
                if idx >= 0
            )

        hits.sort(key=lambda hit: (hit[1], hit[0]))
        return hits[:limit]

    async def save(self, path: str | Path) -> None:
        """
        Save index to disk.

        Args:
            path: Directory to save index
        """
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)

        for tier, partition in self._partitions.items():
            await asyncio.to_thread(
                faiss.write_index, partition, str(path / f"{tier.value}.faiss")
            )

        metadata = {
            "dimension": self.dimension,
            "index_type": self.index_type,
            "tiers": [tier.value for tier in self._partitions],
        }
        await asyncio.to_thread(self._write_json, path / "metadata.json", metadata)

        logger.info("Index saved to %s (%d vectors)", path, self.size)

    @staticmethod
    def _write_json(path: Path, data: dict[str, Any]) -> None:
        """Write JSON file (sync helper for to_thread)."""
        with open(path, "w") as f:
            json.dump(data, f)

    async def load(self, path: str | Path) -> None:
        """
        Load index from disk.

        Args:
            path: Directory containing saved index
        """
        path = Path(path)

        data = await asyncio.to_thread(self._read_json, path / "metadata.json")
        self.dimension = data["dimension"]
        self.index_type = data["index_type"]

        self._partitions = {}
        for tier_value in data["tiers"]:
            self._partitions[CorpusTier(tier_value)] = await asyncio.to_thread(
                faiss.read_index, str(path / f"{tier_value}.faiss")
            )

        logger.info("Index loaded from %s (%d vectors)", path, self.size)

    @staticmethod
    def _read_json(path: Path) -> dict[str, Any]:
        """Read JSON file (sync helper for to_thread)."""
        with open(path) as f:
            result: dict[str, Any] = json.load(f)
            return result

    @property
    def size(self) -> int:
        """Get number of vectors in index."""
        return sum(p.ntotal for p in self._partitions.values())

    def tier_size(self, tier: CorpusTier) -> int:
        """Get number of vectors stored for one tier."""
        partition = self._partitions.get(tier)
        return partition.ntotal if partition else 0
