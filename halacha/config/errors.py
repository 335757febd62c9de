"""
Error Taxonomy - Consistent error codes across the application.

Usage:
    from halacha.config.errors import ErrorCode, HalachaError

    raise HalachaError(ErrorCode.STORAGE_READ_FAILED, "chunk lookup failed")
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes for machine-readable error responses."""

    # Retrieval errors
    RETRIEVAL_INVALID_QUERY = "RETRIEVAL_INVALID_QUERY"
    RETRIEVAL_DEPENDENCY_FAILED = "RETRIEVAL_DEPENDENCY_FAILED"

    # Embedding errors
    EMBEDDING_UNAVAILABLE = "EMBEDDING_UNAVAILABLE"

    # LLM/Model errors
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_AUTH_FAILED = "LLM_AUTH_FAILED"

    # Storage errors
    STORAGE_CONNECTION_FAILED = "STORAGE_CONNECTION_FAILED"
    STORAGE_READ_FAILED = "STORAGE_READ_FAILED"
    STORAGE_WRITE_FAILED = "STORAGE_WRITE_FAILED"

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"


class HalachaError(Exception):
    """Base exception with error code support."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to API-friendly dictionary."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class RetrievalInputError(HalachaError):
    """Question or tier set rejected before any dependency is touched."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.RETRIEVAL_INVALID_QUERY, message, details)


class RetrievalFailed(HalachaError):
    """A retrieval dependency failed; the whole call is aborted."""

    def __init__(self, dependency: str, cause: BaseException) -> None:
        self.dependency = dependency
        self.cause = cause
        super().__init__(
            ErrorCode.RETRIEVAL_DEPENDENCY_FAILED,
            f"{dependency} failed: {cause}",
            {"dependency": dependency, "cause": type(cause).__name__},
        )


class EmbeddingUnavailable(HalachaError):
    """Embedding capability failed (auth, quota or response format)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.EMBEDDING_UNAVAILABLE, message, details)


class LLMError(HalachaError):
    """LLM/model errors."""

    code_value = ErrorCode.LLM_UNAVAILABLE

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(self.code_value, message, details)


class StorageError(HalachaError):
    """Storage/database errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.STORAGE_CONNECTION_FAILED, message, details)


class LLMAuthError(LLMError):
    """LLM provider rejected the credentials."""

    code_value = ErrorCode.LLM_AUTH_FAILED
