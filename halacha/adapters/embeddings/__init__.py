"""
Embeddings Adapter - Question and passage vectors.
"""

from .client import BGE_QUERY_PREFIX, HuggingFaceEmbedder
from .local import SentenceTransformerEmbedder

__all__ = ["BGE_QUERY_PREFIX", "HuggingFaceEmbedder", "SentenceTransformerEmbedder"]
