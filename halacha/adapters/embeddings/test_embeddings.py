"""
Tests for embedding adapters.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from unittest.mock import MagicMock

import httpx
import numpy as np
import pytest
from tenacity import wait_none

from halacha.config.errors import EmbeddingUnavailable

from . import local
from .client import BGE_QUERY_PREFIX, HuggingFaceEmbedder
from .local import SentenceTransformerEmbedder

API_URL = "https://embeddings.test/models/bge-m3"


def _embedder(
    handler: Callable[[httpx.Request], httpx.Response],
    api_key: str = "hf_test",
    dimension: int = 4,
) -> HuggingFaceEmbedder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HuggingFaceEmbedder(API_URL, api_key, dimension=dimension, client=client)


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    """Skip backoff sleeps between retries."""
    monkeypatch.setattr(HuggingFaceEmbedder._post.retry, "wait", wait_none())


# --- HuggingFace Tests ---


async def test_embed_query_sends_prefixed_question() -> None:
    """Test the question is sent with the BGE instruction prefix."""
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        assert request.headers["Authorization"] == "Bearer hf_test"
        return httpx.Response(200, json=[[0.1, 0.2, 0.3, 0.4]])

    vector = await _embedder(handler).embed_query("May candles be lit late?")

    assert vector == [0.1, 0.2, 0.3, 0.4]
    assert seen[0]["inputs"] == [f"{BGE_QUERY_PREFIX}May candles be lit late?"]


async def test_embed_query_accepts_bare_vector() -> None:
    """Test a single unnested vector response."""
    embedder = _embedder(lambda request: httpx.Response(200, json=[1, 2, 3, 4]))
    assert await embedder.embed_query("q") == [1.0, 2.0, 3.0, 4.0]


async def test_embed_query_accepts_embeddings_object() -> None:
    """Test the {"embeddings": [...]} response shape."""
    embedder = _embedder(
        lambda request: httpx.Response(200, json={"embeddings": [[1, 2, 3, 4]]})
    )
    assert await embedder.embed_query("q") == [1.0, 2.0, 3.0, 4.0]


async def test_long_vectors_truncated_to_dimension() -> None:
    """Test vectors longer than the index dimension are cut."""
    embedder = _embedder(
        lambda request: httpx.Response(200, json=[[1, 2, 3, 4, 5, 6]]), dimension=4
    )
    assert await embedder.embed_query("q") == [1.0, 2.0, 3.0, 4.0]


async def test_short_vectors_rejected() -> None:
    """Test vectors shorter than the dimension are a format error."""
    embedder = _embedder(lambda request: httpx.Response(200, json=[[1, 2]]))
    with pytest.raises(EmbeddingUnavailable):
        await embedder.embed_query("q")


async def test_non_json_body_raises_unavailable() -> None:
    """Test an HTML error page served with 200 is a format error."""
    embedder = _embedder(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(EmbeddingUnavailable):
        await embedder.embed_query("q")


async def test_token_level_vectors_rejected() -> None:
    """Test per-token output (one vector per token) is a format error."""
    embedder = _embedder(
        lambda request: httpx.Response(200, json=[[[0.1, 0.2, 0.3]] * 4])
    )
    with pytest.raises(EmbeddingUnavailable):
        await embedder.embed_texts(["q"])


async def test_embed_texts_batches() -> None:
    """Test texts are split into batches and order is kept."""
    batches: list[list[str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        inputs = json.loads(request.content)["inputs"]
        batches.append(inputs)
        return httpx.Response(200, json=[[float(t), 0, 0, 0] for t in inputs])

    embedder = _embedder(handler)
    embedder.batch_size = 2
    vectors = await embedder.embed_texts(["1", "2", "3"])

    assert batches == [["1", "2"], ["3"]]
    assert [v[0] for v in vectors] == [1.0, 2.0, 3.0]


@pytest.mark.parametrize("status", [401, 403, 429, 500])
async def test_http_errors_raise_unavailable(status: int) -> None:
    """Test auth, quota and server errors surface as EmbeddingUnavailable."""
    embedder = _embedder(lambda request: httpx.Response(status, text="nope"))
    with pytest.raises(EmbeddingUnavailable) as exc_info:
        await embedder.embed_query("q")
    assert exc_info.value.details["status"] == status


async def test_missing_key_raises_without_request() -> None:
    """Test no request is made when the key is missing."""
    handler = MagicMock()
    embedder = _embedder(handler, api_key="")

    with pytest.raises(EmbeddingUnavailable):
        await embedder.embed_query("q")
    handler.assert_not_called()


async def test_transport_errors_retried_then_raised() -> None:
    """Test connection failures are retried before giving up."""
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(EmbeddingUnavailable):
        await _embedder(handler).embed_query("q")
    assert calls == 3


async def test_transport_error_recovers() -> None:
    """Test a transient failure followed by success."""
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ReadTimeout("slow", request=request)
        return httpx.Response(200, json=[[1, 2, 3, 4]])

    assert await _embedder(handler).embed_query("q") == [1.0, 2.0, 3.0, 4.0]
    assert calls == 2


# --- Local Model Tests ---


async def test_local_embedder_prefixes_and_normalizes() -> None:
    """Test the local model is called with the prefix and normalization."""
    model = MagicMock()
    model.encode.return_value = np.array([[0.5, 0.5, 0.5, 0.5, 0.9]])
    embedder = SentenceTransformerEmbedder(dimension=4, model=model)

    vector = await embedder.embed_query("q")

    assert vector == [0.5, 0.5, 0.5, 0.5]
    args, kwargs = model.encode.call_args
    assert args[0] == [f"{BGE_QUERY_PREFIX}q"]
    assert kwargs["normalize_embeddings"] is True


async def test_local_model_load_failure_raises_unavailable(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test a model that cannot be loaded surfaces as EmbeddingUnavailable."""
    monkeypatch.setattr(
        local, "SentenceTransformer", MagicMock(side_effect=OSError("no such model"))
    )
    embedder = SentenceTransformerEmbedder("missing/model", dimension=4)

    with pytest.raises(EmbeddingUnavailable) as exc_info:
        await embedder.embed_query("q")
    assert exc_info.value.details["model"] == "missing/model"


async def test_local_encode_failure_raises_unavailable() -> None:
    """Test encode errors surface as EmbeddingUnavailable."""
    model = MagicMock()
    model.encode.side_effect = RuntimeError("CUDA out of memory")
    embedder = SentenceTransformerEmbedder(dimension=4, model=model)

    with pytest.raises(EmbeddingUnavailable):
        await embedder.embed_texts(["a"])


async def test_local_short_vectors_rejected() -> None:
    """Test model output shorter than the dimension is rejected."""
    model = MagicMock()
    model.encode.return_value = np.array([[0.5, 0.5]])
    embedder = SentenceTransformerEmbedder(dimension=4, model=model)

    with pytest.raises(EmbeddingUnavailable):
        await embedder.embed_texts(["a"])
