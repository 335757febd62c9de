"""
Adapters - External service integrations.

All storage, index and model calls are wrapped here to isolate domains from third-party changes.
"""

from .embeddings import HuggingFaceEmbedder, SentenceTransformerEmbedder
from .faiss import FAISSIndex
from .llm import LLMResponse, LLMService
from .sqlite import SQLiteRepository

__all__ = [
    # Storage and search
    "SQLiteRepository",
    "FAISSIndex",
    # Embeddings
    "HuggingFaceEmbedder",
    "SentenceTransformerEmbedder",
    # Generation
    "LLMService",
    "LLMResponse",
]
