"""
HuggingFace Embedder - Question and passage embeddings over HTTP.

Features:
- Async HTTP client with connection reuse
- Automatic retries on transport errors with exponential backoff
- BGE query prefix for asymmetric retrieval
- Accepts bare-array and {"embeddings": ...} response shapes
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from halacha.config.errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)

__all__ = ["HuggingFaceEmbedder", "BGE_QUERY_PREFIX"]

BGE_QUERY_PREFIX = "Represent this sentence for searching relevant passages: "


class HuggingFaceEmbedder:
    """
    Embedding client for the HuggingFace inference API.

    Example:
        >>> embedder = HuggingFaceEmbedder(api_url, api_key, dimension=1024)
        >>> vector = await embedder.embed_query("May candles be lit late?")
        >>> len(vector)
        1024
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        dimension: int = 1024,
        timeout: float = 30.0,
        batch_size: int = 32,
        query_prefix: str = BGE_QUERY_PREFIX,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize embedder.

        Args:
            api_url: Feature-extraction endpoint for the model
            api_key: HuggingFace API token
            dimension: Vector size; longer vectors are truncated
            timeout: Request timeout in seconds
            batch_size: Texts per request in embed_texts
            query_prefix: Instruction prepended to questions
            client: Preconfigured HTTP client (tests)
        """
        self.api_url = api_url
        self.api_key = api_key
        self.dimension = dimension
        self.timeout = timeout
        self.batch_size = batch_size
        self.query_prefix = query_prefix
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _post(self, inputs: str | list[str]) -> Any:
        client = await self._get_client()
        response = await client.post(
            self.api_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={"inputs": inputs, "options": {"wait_for_model": True}},
        )

        if response.status_code in (401, 403):
            raise EmbeddingUnavailable(
                "Embedding API rejected credentials",
                {"status": response.status_code},
            )
        if response.status_code == 429:
            raise EmbeddingUnavailable("Embedding API quota exceeded", {"status": 429})
        if response.status_code != 200:
            logger.error(
                "Embedding API error: %s %s", response.status_code, response.text[:200]
            )
            raise EmbeddingUnavailable(
                f"Embedding API error: {response.status_code}",
                {"status": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise EmbeddingUnavailable(
                "Embedding API returned a non-JSON body",
                {"content_type": response.headers.get("content-type", "")},
            ) from e

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed texts in batches.

        Raises:
            EmbeddingUnavailable: Missing key, auth/quota failure,
                transport failure or unexpected response shape
        """
        if not self.api_key:
            raise EmbeddingUnavailable("Embedding API key is not configured")

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = list(texts[start : start + self.batch_size])
            try:
                data = await self._post(batch)
            except httpx.HTTPError as e:
                raise EmbeddingUnavailable(
                    f"Embedding API unreachable: {e}", {"url": self.api_url}
                ) from e
            vectors.extend(self._parse_vectors(data, len(batch)))

        logger.debug("Embedded %d texts", len(vectors))
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        """Embed a question with the retrieval instruction prefix."""
        [vector] = await self.embed_texts([f"{self.query_prefix}{text}"])
        return vector

    def _parse_vectors(self, data: Any, expected: int) -> list[list[float]]:
        """Normalize the response into `expected` vectors of self.dimension floats."""
        if isinstance(data, dict):
            data = data.get("embeddings")

        # A single input may come back as a bare vector.
        if expected == 1 and isinstance(data, list) and data and _is_number(data[0]):
            data = [data]

        if not isinstance(data, list) or len(data) != expected:
            raise EmbeddingUnavailable(
                "Unexpected embedding response shape",
                {"expected": expected, "type": type(data).__name__},
            )

        vectors = []
        for row in data:
            if not isinstance(row, list) or len(row) < self.dimension:
                raise EmbeddingUnavailable(
                    "Embedding shorter than configured dimension",
                    {"dimension": self.dimension},
                )
            # Token-level output ([[[...]]]) is not a sentence embedding.
            if not all(_is_number(x) for x in row[: self.dimension]):
                raise EmbeddingUnavailable(
                    "Embedding row contains non-numeric values",
                    {"dimension": self.dimension},
                )
            vectors.append([float(x) for x in row[: self.dimension]])
        return vectors

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
