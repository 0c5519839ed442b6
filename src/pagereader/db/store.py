"""Chunk store: SQLite rows + sqlite-vec vectors behind one handle.

The store is an explicitly constructed context object with lifecycle
``open() -> use -> close()``. ``open()`` performs the create-if-absent setup
(schema migrations and the per-model vec table), so every query method may
assume the collection exists.

Rows in ``chunks`` are partitioned by ``embedding_model``; a store opened for
one model never sees chunks embedded with another.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from pagereader.db.connection import Database
from pagereader.db.migrations import run_migrations
from pagereader.db.models import Chunk, ScoredChunk
from pagereader.db.vectors import ensure_vec_table, model_to_slug
from pagereader.errors import DimensionMismatchError, StoreError

logger = logging.getLogger(__name__)


class VectorStore:
    """Persist and query page chunks with their embeddings.

    Args:
        db_path: SQLite database file (created if missing).
        model: Embedding model the stored vectors come from.
        dimensions: Vector width; every upserted embedding must match it.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
    ) -> None:
        self._db = Database(db_path)
        self.model = model
        self.dimensions = dimensions
        self._conn: sqlite3.Connection | None = None
        self._vec_table: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> VectorStore:
        """Connect and create the schema and vec table if absent."""
        if self._conn is not None:
            return self
        try:
            conn = self._db.connect()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open store at '{self._db.db_path}': {exc}") from exc
        try:
            run_migrations(conn)
            self._vec_table = ensure_vec_table(conn, model_to_slug(self.model), self.dimensions)
        except sqlite3.Error as exc:
            conn.close()
            raise StoreError(f"Cannot initialise store at '{self._db.db_path}': {exc}") from exc
        except DimensionMismatchError:
            conn.close()
            raise
        self._conn = conn
        logger.debug("Opened store %s (table %s)", self._db.db_path, self._vec_table)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> VectorStore:
        return self.open()

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Store is not open — call open() first.")
        return self._conn

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def exists_for_url(self, url: str) -> bool:
        """Return True if at least one chunk is stored for *url*."""
        row = self._query_one(
            "SELECT 1 FROM chunks WHERE embedding_model = ? AND url = ? LIMIT 1",
            (self.model, url),
        )
        return row is not None

    def windowed_read(self, url: str, upper_bound: int = 5, limit: int = 5) -> list[str]:
        """Return content of chunks with ``chunk_index < upper_bound``, ascending.

        The SQL carries no ORDER BY: rows are sorted by ``chunk_index`` here so
        the result does not depend on the store's native row order.
        """
        rows = self._query_all(
            """
            SELECT chunk_index, content FROM chunks
            WHERE embedding_model = ? AND url = ? AND chunk_index < ?
            LIMIT ?
            """,
            (self.model, url, upper_bound, limit),
        )
        return [r["content"] for r in sorted(rows, key=lambda r: r["chunk_index"])]

    def similarity_search(
        self, vector: list[float], url: str, top_k: int = 10
    ) -> list[ScoredChunk]:
        """Nearest-neighbour search over the chunks of *url*.

        Returns up to *top_k* hits ordered by descending cosine similarity
        (``score = 1 - cosine distance``).
        """
        self._check_dimensions(vector)
        rows = self._query_all(
            f"""
            SELECT c.content, c.chunk_index,
                   vec_distance_cosine(v.embedding, ?) AS distance
            FROM chunks c
            JOIN {self._vec_table} v ON v.rowid = c.rowid
            WHERE c.embedding_model = ? AND c.url = ?
            ORDER BY distance
            LIMIT ?
            """,
            (json.dumps(vector), self.model, url, top_k),
        )
        return [
            ScoredChunk(
                content=r["content"],
                chunk_index=r["chunk_index"],
                score=1.0 - r["distance"],
            )
            for r in rows
        ]

    def count_chunks(self, url: str) -> int:
        row = self._query_one(
            "SELECT COUNT(*) FROM chunks WHERE embedding_model = ? AND url = ?",
            (self.model, url),
        )
        return row[0]

    def list_urls(self) -> list[tuple[str, int]]:
        """Return ``[(url, chunk_count), ...]`` ordered by first indexing time."""
        rows = self._query_all(
            """
            SELECT url, COUNT(*) AS n FROM chunks
            WHERE embedding_model = ?
            GROUP BY url
            ORDER BY MIN(created_at), url
            """,
            (self.model,),
        )
        return [(r["url"], r["n"]) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, chunk: Chunk) -> None:
        """Insert or replace *chunk* by key; row and vector commit together.

        Raises:
            DimensionMismatchError: If the embedding width differs from the store's.
            StoreError: On any SQLite failure (the transaction is rolled back).
        """
        self._check_dimensions(chunk.embedding)
        if not chunk.content:
            raise StoreError(f"Refusing to store empty chunk {chunk.chunk_index}", url=chunk.url)
        conn = self.conn
        try:
            with conn:
                row = conn.execute(
                    "SELECT rowid FROM chunks WHERE key = ?", (chunk.key,)
                ).fetchone()
                if row is None:
                    cur = conn.execute(
                        """
                        INSERT INTO chunks (key, url, chunk_index, content, embedding_model)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (chunk.key, chunk.url, chunk.chunk_index, chunk.content, self.model),
                    )
                    rowid = cur.lastrowid
                else:
                    rowid = row[0]
                    conn.execute(
                        """
                        UPDATE chunks
                        SET url = ?, chunk_index = ?, content = ?, embedding_model = ?
                        WHERE rowid = ?
                        """,
                        (chunk.url, chunk.chunk_index, chunk.content, self.model, rowid),
                    )
                    conn.execute(f"DELETE FROM {self._vec_table} WHERE rowid = ?", (rowid,))
                conn.execute(
                    f"INSERT INTO {self._vec_table}(rowid, embedding) VALUES (?, ?)",
                    (rowid, json.dumps(chunk.embedding)),
                )
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to store chunk {chunk.chunk_index} of '{chunk.url}': {exc}",
                url=chunk.url,
            ) from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_dimensions(self, vector: list[float]) -> None:
        if len(vector) != self.dimensions:
            raise DimensionMismatchError(
                f"Embedding has {len(vector)} dimensions; the store expects {self.dimensions}."
            )

    def _query_one(self, sql: str, params: tuple) -> sqlite3.Row | None:
        try:
            return self.conn.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Store query failed: {exc}") from exc

    def _query_all(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Store query failed: {exc}") from exc
