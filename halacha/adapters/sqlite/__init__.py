"""
SQLite Adapter - Passage store, full-text search and answer log.
"""

from .repository import SQLiteRepository, build_fts_query

__all__ = ["SQLiteRepository", "build_fts_query"]
