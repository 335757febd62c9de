"""
Relation Graph Models - Summary types for the passage relation graph.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class GraphStats(BaseModel):
    """Statistics about the relation graph."""

    total_passages: int = 0
    total_relations: int = 0
    relations_by_type: dict[str, int] = Field(default_factory=dict)
