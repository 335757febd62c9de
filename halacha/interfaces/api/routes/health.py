"""
Health Routes - System health and status endpoints.
"""

from typing import Any

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": "halacha"}


@router.get("/api")
async def api_info() -> dict[str, Any]:
    """API info endpoint."""
    return {
        "name": "Halacha API",
        "version": "0.1.0",
        "description": "Hybrid retrieval and source-grounded answers over halakhic texts",
        "docs": "/docs",
    }
