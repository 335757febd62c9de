"""
Configuration - Application settings and error taxonomy.
"""

from .errors import (
    EmbeddingUnavailable,
    ErrorCode,
    HalachaError,
    LLMAuthError,
    LLMError,
    RetrievalFailed,
    RetrievalInputError,
    StorageError,
)
from .settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Errors
    "ErrorCode",
    "HalachaError",
    "RetrievalInputError",
    "RetrievalFailed",
    "EmbeddingUnavailable",
    "LLMError",
    "LLMAuthError",
    "StorageError",
]
