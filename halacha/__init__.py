"""
Halacha - Hybrid retrieval and source-grounded answers over halakhic texts.

Example:
    >>> from halacha.domains.retrieval import HybridRetriever
    >>> retriever = HybridRetriever(embedder, vector_index, repo, repo, graph)
    >>> result = await retriever.retrieve("May candles be lit late?", ["canonical"])
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
