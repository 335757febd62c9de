"""
SQLite Repository - Passage storage with FTS5 search.

Features:
- Async operations via aiosqlite
- Full-text search with FTS5, filtered by corpus tier
- Passage lookup by id and by parent/section reference
- Relation edges, answer log and user profiles
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiosqlite

from halacha.domains.retrieval.models import (
    GENERAL_COMMUNITY,
    CorpusTier,
    Passage,
    Relation,
    RelationDirection,
    RelationType,
)

logger = logging.getLogger(__name__)

__all__ = ["SQLiteRepository", "build_fts_query"]

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def build_fts_query(text: str) -> str:
    """
    Turn free text into an FTS5 query matching all of its terms.

    Terms are quoted so punctuation and FTS5 operators in the question
    are matched literally.
    """
    terms = dict.fromkeys(token.lower() for token in _TOKEN_RE.findall(text))
    return " ".join(f'"{term}"' for term in terms)


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class SQLiteRepository:
    """
    SQLite repository for passages, relations and answers.

    Example:
        >>> repo = SQLiteRepository("data/halacha.db")
        >>> await repo.initialize()
        >>> passage_id = await repo.insert_passage(work="Shulchan Arukh", ...)
        >>> hits = await repo.search("candles before shabbat", [CorpusTier.CANONICAL], 60)
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(str(self.db_path))
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    async def initialize(self) -> None:
        """Initialize database schema."""
        conn = await self._get_connection()

        await conn.executescript("""
            -- Passages table
            CREATE TABLE IF NOT EXISTS passages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                work TEXT NOT NULL,
                section_ref TEXT NOT NULL,
                parent_ref TEXT,
                language TEXT NOT NULL DEFAULT 'he',
                text TEXT NOT NULL,
                author TEXT,
                era TEXT,
                community TEXT NOT NULL DEFAULT 'General',
                minhag_scope TEXT NOT NULL DEFAULT 'global',
                authority_weight REAL NOT NULL DEFAULT 1.0,
                corpus_tier TEXT NOT NULL,
                tags TEXT,
                topics TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            -- FTS5 virtual table for full-text search
            CREATE VIRTUAL TABLE IF NOT EXISTS passages_fts USING fts5(
                work,
                section_ref,
                text,
                content='passages',
                content_rowid='id',
                tokenize='unicode61'
            );

            -- Triggers to keep FTS in sync
            CREATE TRIGGER IF NOT EXISTS passages_ai AFTER INSERT ON passages BEGIN
                INSERT INTO passages_fts(rowid, work, section_ref, text)
                VALUES (new.id, new.work, new.section_ref, new.text);
            END;

            CREATE TRIGGER IF NOT EXISTS passages_ad AFTER DELETE ON passages BEGIN
                INSERT INTO passages_fts(passages_fts, rowid, work, section_ref, text)
                VALUES ('delete', old.id, old.work, old.section_ref, old.text);
            END;

            CREATE TRIGGER IF NOT EXISTS passages_au AFTER UPDATE ON passages BEGIN
                INSERT INTO passages_fts(passages_fts, rowid, work, section_ref, text)
                VALUES ('delete', old.id, old.work, old.section_ref, old.text);
                INSERT INTO passages_fts(rowid, work, section_ref, text)
                VALUES (new.id, new.work, new.section_ref, new.text);
            END;

            -- Relations between passages
            CREATE TABLE IF NOT EXISTS relations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                from_id INTEGER NOT NULL,
                to_id INTEGER NOT NULL,
                relation_type TEXT NOT NULL,
                direction TEXT NOT NULL DEFAULT 'directed',
                confidence REAL NOT NULL DEFAULT 1.0,
                notes TEXT,
                created_by TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (from_id) REFERENCES passages(id),
                FOREIGN KEY (to_id) REFERENCES passages(id)
            );

            -- Produced answers with cited passage ids, for later review
            CREATE TABLE IF NOT EXISTS answers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                question TEXT NOT NULL,
                answer TEXT NOT NULL,
                cited_ids TEXT NOT NULL,
                user_id INTEGER,
                user_community TEXT,
                corpus_tiers_used TEXT,
                mode TEXT,
                model TEXT,
                review_status TEXT NOT NULL DEFAULT 'unreviewed',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            -- User profiles
            CREATE TABLE IF NOT EXISTS user_profiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                display_name TEXT,
                primary_community TEXT NOT NULL DEFAULT 'General',
                corpus_tiers TEXT,
                role TEXT NOT NULL DEFAULT 'learner',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            -- Indexes
            CREATE INDEX IF NOT EXISTS idx_passages_tier ON passages(corpus_tier);
            CREATE INDEX IF NOT EXISTS idx_passages_parent ON passages(parent_ref);
            CREATE INDEX IF NOT EXISTS idx_passages_section ON passages(section_ref);
            CREATE INDEX IF NOT EXISTS idx_relations_from ON relations(from_id);
            CREATE INDEX IF NOT EXISTS idx_relations_to ON relations(to_id);
        """)

        await conn.commit()
        logger.info("Database initialized: %s", self.db_path)

    # --- Passages ---

    async def insert_passage(
        self,
        work: str,
        section_ref: str,
        text: str,
        corpus_tier: CorpusTier | str,
        parent_ref: str | None = None,
        community: str = GENERAL_COMMUNITY,
        author: str | None = None,
        era: str | None = None,
        language: str = "he",
        minhag_scope: str = "global",
        authority_weight: float = 1.0,
        tags: list[str] | None = None,
        topics: list[str] | None = None,
    ) -> int:
        """
        Insert a passage.

        Non-canonical passages are always stored with authority_weight 0.0.

        Returns:
            Passage ID
        """
        tier = CorpusTier(corpus_tier)
        if tier != CorpusTier.CANONICAL:
            authority_weight = 0.0

        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            INSERT INTO passages
            (work, section_ref, parent_ref, language, text, author, era,
             community, minhag_scope, authority_weight, corpus_tier, tags, topics)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                work,
                section_ref,
                parent_ref,
                language,
                text,
                author,
                era,
                community,
                minhag_scope,
                authority_weight,
                tier.value,
                json.dumps(tags) if tags else None,
                json.dumps(topics) if topics else None,
            ),
        )

        await conn.commit()
        return cursor.lastrowid

    async def get_by_ids(self, ids: Sequence[int]) -> list[Passage]:
        """Get passages by id. Unordered; unknown ids are skipped."""
        if not ids:
            return []
        conn = await self._get_connection()

        unique_ids = list(dict.fromkeys(ids))
        cursor = await conn.execute(
            f"SELECT * FROM passages WHERE id IN ({_placeholders(unique_ids)})",
            unique_ids,
        )
        rows = await cursor.fetchall()
        return [self._row_to_passage(row) for row in rows]

    async def get_by_parent_or_section(self, ref: str) -> list[Passage]:
        """Get passages whose parent_ref or section_ref equals ref."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM passages WHERE parent_ref = ? OR section_ref = ? ORDER BY id",
            (ref, ref),
        )
        rows = await cursor.fetchall()
        return [self._row_to_passage(row) for row in rows]

    async def search(
        self,
        text: str,
        tiers: Sequence[CorpusTier],
        limit: int = 60,
    ) -> list[tuple[int, float]]:
        """
        Full-text search using FTS5.

        Args:
            text: Question text
            tiers: Corpus tiers to search
            limit: Maximum results

        Returns:
            (passage_id, rank) pairs, best first. Rank is the negated
            BM25 score, so higher is better.
        """
        fts_query = build_fts_query(text)
        if not fts_query or not tiers:
            return []

        conn = await self._get_connection()
        tier_values = [CorpusTier(t).value for t in tiers]
        cursor = await conn.execute(
            f"""
            SELECT p.id, bm25(passages_fts) AS score
            FROM passages_fts
            JOIN passages p ON passages_fts.rowid = p.id
            WHERE passages_fts MATCH ?
              AND p.corpus_tier IN ({_placeholders(tier_values)})
            ORDER BY score, p.id
            LIMIT ?
            """,
            (fts_query, *tier_values, limit),
        )
        rows = await cursor.fetchall()
        return [(row["id"], -row["score"]) for row in rows]

    async def get_passage_count(self) -> int:
        """Get total passage count."""
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT COUNT(*) FROM passages")
        row = await cursor.fetchone()
        return row[0] if row else 0

    # --- Relations ---

    async def insert_relation(
        self,
        from_id: int,
        to_id: int,
        relation_type: RelationType | str,
        direction: RelationDirection | str = RelationDirection.DIRECTED,
        confidence: float = 1.0,
        notes: str | None = None,
        created_by: str | None = None,
    ) -> int:
        """Insert a relation edge."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            INSERT INTO relations
            (from_id, to_id, relation_type, direction, confidence, notes, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                from_id,
                to_id,
                RelationType(relation_type).value,
                RelationDirection(direction).value,
                confidence,
                notes,
                created_by,
            ),
        )

        await conn.commit()
        return cursor.lastrowid

    async def get_relations(
        self,
        ids: Sequence[int],
        type_filter: Sequence[RelationType],
    ) -> list[Relation]:
        """Get edges touching any of ids whose type is in type_filter."""
        if not ids or not type_filter:
            return []
        conn = await self._get_connection()

        id_values = list(dict.fromkeys(ids))
        type_values = [RelationType(t).value for t in type_filter]
        cursor = await conn.execute(
            f"""
            SELECT * FROM relations
            WHERE (from_id IN ({_placeholders(id_values)})
                   OR to_id IN ({_placeholders(id_values)}))
              AND relation_type IN ({_placeholders(type_values)})
            ORDER BY id
            """,
            (*id_values, *id_values, *type_values),
        )
        rows = await cursor.fetchall()
        return [self._row_to_relation(row) for row in rows]

    async def list_relations(self) -> list[Relation]:
        """Get every relation edge, in insertion order."""
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT * FROM relations ORDER BY id")
        rows = await cursor.fetchall()
        return [self._row_to_relation(row) for row in rows]

    # --- Answers ---

    async def insert_answer(
        self,
        question: str,
        answer: str,
        cited_ids: Sequence[int],
        user_id: int | None = None,
        user_community: str | None = None,
        corpus_tiers_used: Sequence[CorpusTier] | None = None,
        mode: str | None = None,
        model: str | None = None,
    ) -> int:
        """Log a produced answer with the passage ids it cited."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            INSERT INTO answers
            (question, answer, cited_ids, user_id, user_community,
             corpus_tiers_used, mode, model)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                question,
                answer,
                json.dumps(list(cited_ids)),
                user_id,
                user_community,
                json.dumps([CorpusTier(t).value for t in corpus_tiers_used])
                if corpus_tiers_used
                else None,
                mode,
                model,
            ),
        )

        await conn.commit()
        return cursor.lastrowid

    async def list_answers(
        self,
        review_status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List logged answers, newest first."""
        conn = await self._get_connection()

        if review_status:
            cursor = await conn.execute(
                """
                SELECT * FROM answers WHERE review_status = ?
                ORDER BY id DESC LIMIT ? OFFSET ?
                """,
                (review_status, limit, offset),
            )
        else:
            cursor = await conn.execute(
                "SELECT * FROM answers ORDER BY id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )

        rows = await cursor.fetchall()
        answers = []
        for row in rows:
            record = dict(row)
            record["cited_ids"] = json.loads(record["cited_ids"])
            if record["corpus_tiers_used"]:
                record["corpus_tiers_used"] = json.loads(record["corpus_tiers_used"])
            answers.append(record)
        return answers

    # --- User profiles ---

    async def insert_user_profile(
        self,
        primary_community: str = GENERAL_COMMUNITY,
        display_name: str | None = None,
        corpus_tiers: Sequence[CorpusTier] | None = None,
        role: str = "learner",
    ) -> int:
        """Insert a user profile."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            """
            INSERT INTO user_profiles (display_name, primary_community, corpus_tiers, role)
            VALUES (?, ?, ?, ?)
            """,
            (
                display_name,
                primary_community,
                json.dumps([CorpusTier(t).value for t in corpus_tiers])
                if corpus_tiers
                else None,
                role,
            ),
        )

        await conn.commit()
        return cursor.lastrowid

    async def get_user_profile(self, user_id: int) -> dict[str, Any] | None:
        """Get user profile by ID."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT * FROM user_profiles WHERE id = ?", (user_id,)
        )
        row = await cursor.fetchone()

        if row:
            profile = dict(row)
            if profile["corpus_tiers"]:
                profile["corpus_tiers"] = json.loads(profile["corpus_tiers"])
            return profile
        return None

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @staticmethod
    def _row_to_passage(row: aiosqlite.Row) -> Passage:
        return Passage(
            id=row["id"],
            work=row["work"],
            section_ref=row["section_ref"],
            parent_ref=row["parent_ref"],
            text=row["text"],
            community=row["community"],
            corpus_tier=CorpusTier(row["corpus_tier"]),
            author=row["author"],
            era=row["era"],
            authority_weight=row["authority_weight"],
        )

    @staticmethod
    def _row_to_relation(row: aiosqlite.Row) -> Relation:
        return Relation(
            from_id=row["from_id"],
            to_id=row["to_id"],
            relation_type=RelationType(row["relation_type"]),
            direction=RelationDirection(row["direction"]),
            confidence=row["confidence"],
        )
