"""
API Middleware - Request/response processing.

Provides:
- Request ID tracking
- Response latency measurement
- Error handling with taxonomy codes
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from halacha.config.errors import ErrorCode, HalachaError

logger = logging.getLogger(__name__)

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

# Answer generation routinely takes seconds; retrieval alone should not.
SLOW_REQUEST_MS = 5000.0


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuse a well-formed X-Request-ID or mint a new one."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        incoming = request.headers.get("X-Request-ID", "")
        request_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else uuid.uuid4().hex
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class LatencyMiddleware(BaseHTTPMiddleware):
    """Report per-request latency in a header and the access log."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"

        level = logging.WARNING if duration_ms > SLOW_REQUEST_MS else logging.INFO
        logger.log(
            level,
            "%s %s -> %d in %.0fms [%s]",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            getattr(request.state, "request_id", "-"),
        )
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Render HalachaError as {"error": ..., "request_id": ...} with a mapped status."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = getattr(request.state, "request_id", "-")
        try:
            return await call_next(request)
        except HalachaError as e:
            status = _error_code_to_status(e.code)
            # Client mistakes are not server faults.
            level = logging.WARNING if status < 500 else logging.ERROR
            logger.log(
                level,
                "%s on %s: %s details=%s [%s]",
                e.code.value,
                request.url.path,
                e.message,
                e.details,
                request_id,
            )
            return JSONResponse(
                status_code=status,
                content={"error": e.to_dict(), "request_id": request_id},
            )
        except Exception:
            logger.exception("Unhandled error on %s [%s]", request.url.path, request_id)
            return JSONResponse(
                status_code=500,
                content={
                    "error": {
                        "code": ErrorCode.INTERNAL_ERROR.value,
                        "message": "Internal server error",
                        "details": {},
                    },
                    "request_id": request_id,
                },
            )


def _error_code_to_status(code: ErrorCode) -> int:
    """Input errors are 400; unavailable dependencies (including LLM keys) are 503."""
    mapping = {
        ErrorCode.RETRIEVAL_INVALID_QUERY: 400,
        ErrorCode.VALIDATION_ERROR: 400,
        ErrorCode.NOT_FOUND: 404,
        ErrorCode.RETRIEVAL_DEPENDENCY_FAILED: 503,
        ErrorCode.EMBEDDING_UNAVAILABLE: 503,
        ErrorCode.LLM_UNAVAILABLE: 503,
        ErrorCode.LLM_AUTH_FAILED: 503,
        ErrorCode.STORAGE_CONNECTION_FAILED: 503,
    }
    return mapping.get(code, 500)
