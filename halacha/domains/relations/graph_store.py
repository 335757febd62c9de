"""
Relation Graph Store - Typed edges between passages, held in NetworkX.

Edges are kept in a MultiDiGraph keyed by insertion sequence, so lookups
return relations in the order they were discovered.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol

import networkx as nx

from halacha.domains.retrieval.models import Relation, RelationDirection, RelationType

from .models import GraphStats

logger = logging.getLogger(__name__)

__all__ = ["RelationGraphStore", "RelationSource"]


class RelationSource(Protocol):
    """Anything that can list stored relations, e.g. the SQLite repository."""

    async def list_relations(self) -> list[Relation]: ...


class RelationGraphStore:
    """
    In-memory relation graph.

    Example:
        >>> store = RelationGraphStore()
        >>> await store.load_from_repository(repo)
        >>> edges = await store.get_relations([12, 40], [RelationType.SUPPORTS])
    """

    def __init__(self) -> None:
        self._graph = nx.MultiDiGraph()
        self._next_seq = 0

    async def add_relation(self, relation: Relation) -> int:
        """Add an edge; returns its insertion sequence number."""
        seq = self._next_seq
        self._next_seq += 1
        self._graph.add_edge(relation.from_id, relation.to_id, key=seq, relation=relation)

        logger.debug(
            "Added relation: %d -[%s]-> %d",
            relation.from_id,
            relation.relation_type.value,
            relation.to_id,
        )
        return seq

    async def add_relations(self, relations: Iterable[Relation]) -> int:
        """Add many edges; returns the count added."""
        count = 0
        for relation in relations:
            await self.add_relation(relation)
            count += 1
        return count

    def _touching(self, passage_id: int) -> list[tuple[int, Relation]]:
        if passage_id not in self._graph:
            return []
        edges = [
            (key, data["relation"])
            for _, _, key, data in self._graph.out_edges(passage_id, keys=True, data=True)
        ]
        edges.extend(
            (key, data["relation"])
            for _, _, key, data in self._graph.in_edges(passage_id, keys=True, data=True)
        )
        return edges

    async def get_relations(
        self,
        ids: Sequence[int],
        type_filter: Sequence[RelationType],
    ) -> list[Relation]:
        """Edges with either endpoint in ids and a type in type_filter, in insertion order."""
        allowed = set(type_filter)
        if not ids or not allowed:
            return []

        found: dict[int, Relation] = {}
        for passage_id in dict.fromkeys(ids):
            for seq, relation in self._touching(passage_id):
                if relation.relation_type in allowed:
                    found[seq] = relation

        return [found[seq] for seq in sorted(found)]

    async def get_neighbors(
        self,
        passage_id: int,
        relation_type: RelationType | None = None,
        direction: str = "both",
    ) -> list[int]:
        """
        Get ids connected to a passage.

        Args:
            passage_id: Passage to start from
            relation_type: Filter by relation type
            direction: "in", "out", or "both". Bidirectional edges match
                either way.

        Returns:
            Neighbor ids in insertion order, without repeats
        """
        neighbors: dict[int, int] = {}
        for seq, relation in sorted(self._touching(passage_id), key=lambda e: e[0]):
            if relation_type is not None and relation.relation_type != relation_type:
                continue

            outgoing = relation.from_id == passage_id
            either_way = relation.direction == RelationDirection.BIDIRECTIONAL
            if direction == "out" and not (outgoing or either_way):
                continue
            if direction == "in" and not (not outgoing or either_way):
                continue

            other = relation.opposite(passage_id)
            if other is not None and other != passage_id:
                neighbors.setdefault(other, seq)

        return list(neighbors)

    async def get_stats(self) -> GraphStats:
        """Get graph statistics."""
        relations_by_type: dict[str, int] = {}
        for _, _, data in self._graph.edges(data=True):
            type_name = data["relation"].relation_type.value
            relations_by_type[type_name] = relations_by_type.get(type_name, 0) + 1

        return GraphStats(
            total_passages=self._graph.number_of_nodes(),
            total_relations=self._graph.number_of_edges(),
            relations_by_type=relations_by_type,
        )

    async def load_from_repository(self, source: RelationSource) -> int:
        """
        Load every stored relation.

        Args:
            source: Store exposing list_relations()

        Returns:
            Relation count
        """
        count = await self.add_relations(await source.list_relations())
        logger.info("Loaded relation graph from repository: %d relations", count)
        return count

    async def load_from_json(self, path: str | Path) -> int:
        """
        Load relations from a JSON file.

        Args:
            path: File holding a list of objects with from_id, to_id,
                relation_type and optional direction/confidence

        Returns:
            Relation count. Entries with an unknown relation type are skipped.
        """
        path = Path(path)
        if not path.exists():
            logger.warning("Relation file not found: %s", path)
            return 0

        data = await asyncio.to_thread(self._read_json, path)

        count = 0
        for entry in data:
            try:
                relation = Relation.model_validate(entry)
            except ValueError as e:
                logger.warning("Skipping invalid relation %s: %s", entry, e)
                continue
            await self.add_relation(relation)
            count += 1

        logger.info("Loaded relation graph from JSON: %d relations", count)
        return count

    @staticmethod
    def _read_json(path: Path) -> list[dict[str, Any]]:
        """Read JSON file (sync helper for to_thread)."""
        with open(path) as f:
            result: list[dict[str, Any]] = json.load(f)
            return result

    def clear(self) -> None:
        """Remove every edge."""
        self._graph.clear()
        self._next_seq = 0
