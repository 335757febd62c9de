"""
Relations Domain - Typed edges between passages.

This domain handles:
- In-memory relation graph backed by NetworkX
- Loading edges from the passage store or a JSON file
- Neighbor lookups by type and direction
"""

from .graph_store import RelationGraphStore, RelationSource
from .models import GraphStats

__all__ = ["RelationGraphStore", "RelationSource", "GraphStats"]
