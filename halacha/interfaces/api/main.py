"""
FastAPI Main Application - Unified API entry point.

Run with: uvicorn halacha.interfaces.api.main:app --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from halacha.config import get_settings

from .deps import cleanup_services, init_services
from .middleware import (
    ErrorHandlerMiddleware,
    LatencyMiddleware,
    RequestIDMiddleware,
)
from .routes import halacha, health

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logger.info("Starting Halacha API...")
    logger.info("  Database: %s", settings.db_path)
    logger.info("  Embeddings: %s (%s)", settings.embedding_provider, settings.embedding_model)
    logger.info("  LLM: %s (%s)", settings.llm_provider, settings.llm_model)

    # Initialize resources (SQLite, vector index, relation graph)
    await init_services()
    logger.info("  Services initialized")

    yield

    # Cleanup
    logger.info("Shutting down Halacha API...")
    await cleanup_services()


def create_app() -> FastAPI:
    """Create FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Halacha API",
        description="Hybrid retrieval and source-grounded answers over halakhic texts",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters - last added = outermost)
    # 1. Error handling (innermost, wraps the routes)
    app.add_middleware(ErrorHandlerMiddleware)

    # 2. Latency tracking
    app.add_middleware(LatencyMiddleware)

    # 3. Request ID (outermost custom - runs first)
    app.add_middleware(RequestIDMiddleware)

    # 4. CORS (framework middleware)
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]
    if settings.api_debug:
        allowed_origins.append("http://localhost:*")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(halacha.router, prefix="/api/halacha", tags=["Halacha"])

    return app


# Create app instance
app = create_app()
