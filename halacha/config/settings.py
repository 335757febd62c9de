"""
Settings - Application configuration using Pydantic Settings.

Loads from environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Paths
    data_dir: Path = Path("data")
    db_path: Path = Path("data/halacha.db")
    vector_index_path: Path = Path("data/indices/faiss")
    vector_index_type: str = "Flat"

    # Embeddings: "huggingface" (inference API) or "local" (sentence-transformers)
    embedding_provider: str = "huggingface"
    embedding_api_url: str = "https://api-inference.huggingface.co/models/BAAI/bge-m3"
    embedding_api_key: str = ""
    embedding_model: str = "BAAI/bge-m3"
    embedding_dim: int = 1024
    embedding_timeout: float = 30.0

    # Retrieval
    rrf_k: int = 60
    semantic_k: int = 60
    lexical_k: int = 60
    top_k: int = 40
    relation_types: list[str] = [
        "argues_with",
        "supports",
        "minhag_override",
        "contextualizes",
    ]
    expand_across_tiers: bool = False
    default_community: str = "General"
    default_tiers: list[str] = ["canonical"]

    # Generation: "anthropic" or "openai"
    llm_provider: str = "anthropic"
    llm_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 8192
    llm_timeout: float = 120.0
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
