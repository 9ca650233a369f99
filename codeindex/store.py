"""Per-project vector store backed by a single SQLite file.

Rows are keyed by ``(path, chunk_index)``. Mutations accumulate in an open
transaction and only reach the file on ``save()``; a run that dies before
saving leaves the previously saved index untouched.

Embeddings are stored as base64-wrapped little-endian float32 bytes (~4
bytes per dimension, far smaller than a JSON array of decimals).
"""

from __future__ import annotations

import base64
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import aiosqlite
import numpy as np

from codeindex import config
from codeindex.chunker import Chunk

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT NOT NULL,
    hash TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    start_line INTEGER NOT NULL,
    end_line INTEGER NOT NULL,
    content TEXT NOT NULL,
    embedding TEXT,
    created_at INTEGER DEFAULT (strftime('%s', 'now')),
    UNIQUE(path, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_chunks_path ON chunks(path);
CREATE INDEX IF NOT EXISTS idx_chunks_hash ON chunks(hash);
"""

_EMBEDDING_DTYPE = np.dtype("<f4")


class StoreError(RuntimeError):
    """Raised when the index database cannot be read or written."""

    pass


@dataclass
class IndexEntry:
    """A persisted chunk row."""

    path: str
    content_hash: str
    chunk_index: int
    start_line: int
    end_line: int
    content: str
    embedding: np.ndarray | None = None


@dataclass
class StoreStats:
    files: int
    chunks: int
    total_bytes: int


def encode_embedding(embedding: Sequence[float] | np.ndarray) -> str:
    """Encode a vector as base64 of little-endian float32 bytes."""
    data = np.asarray(embedding, dtype=_EMBEDDING_DTYPE).tobytes()
    return base64.b64encode(data).decode("ascii")


def decode_embedding(encoded: str) -> np.ndarray:
    """Decode a vector produced by ``encode_embedding``."""
    data = base64.b64decode(encoded)
    return np.frombuffer(data, dtype=_EMBEDDING_DTYPE).astype(np.float32)


class VectorStore:
    """Index rows of one project, persisted in ``db_path``."""

    def __init__(self, db_path: str | os.PathLike) -> None:
        self.db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None

    @classmethod
    async def open(cls, project_root: str | os.PathLike) -> VectorStore:
        """Open (or create) the store of a project."""
        store = cls(config.get_index_db_path(project_root))
        await store.connect()
        return store

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Load the backing file, creating it and the schema if absent."""
        if self._conn is not None:
            return
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(str(self.db_path))
        except (OSError, aiosqlite.Error) as e:
            raise StoreError(f"Cannot open index at {self.db_path}: {e}") from e
        try:
            await conn.executescript(_SCHEMA)
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.close()
            raise StoreError(f"Cannot initialise index at {self.db_path}: {e}") from e
        self._conn = conn
        logger.debug("Opened index %s", self.db_path)

    def _require(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreError("Index store is not open")
        return self._conn

    async def get_hash(self, path: str) -> str | None:
        """Return the stored content hash of ``path``, if indexed."""
        conn = self._require()
        async with conn.execute(
            "SELECT hash FROM chunks WHERE path = ? LIMIT 1", (path,)
        ) as cursor:
            row = await cursor.fetchone()
            return row[0] if row else None

    async def delete_file(self, path: str) -> None:
        """Delete every row of ``path``."""
        conn = self._require()
        try:
            await conn.execute("DELETE FROM chunks WHERE path = ?", (path,))
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to delete {path}: {e}") from e

    async def upsert_chunks(
        self,
        chunks: Sequence[Chunk],
        embeddings: Sequence[Sequence[float] | np.ndarray | None],
    ) -> None:
        """Insert one row per chunk, replacing rows with the same key."""
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"Got {len(embeddings)} embeddings for {len(chunks)} chunks"
            )
        conn = self._require()
        for chunk, embedding in zip(chunks, embeddings):
            try:
                await conn.execute(
                    """
                    INSERT OR REPLACE INTO chunks
                    (path, hash, chunk_index, start_line, end_line, content, embedding)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        chunk.path,
                        chunk.content_hash,
                        chunk.chunk_index,
                        chunk.start_line,
                        chunk.end_line,
                        chunk.content,
                        encode_embedding(embedding) if embedding is not None else None,
                    ),
                )
            except aiosqlite.Error as e:
                raise StoreError(
                    f"Failed to store {chunk.path}#{chunk.chunk_index}: {e}"
                ) from e

    async def all_embedded_entries(self) -> list[IndexEntry]:
        """Return every row that has an embedding, in store order."""
        conn = self._require()
        async with conn.execute(
            """
            SELECT path, hash, chunk_index, start_line, end_line, content, embedding
            FROM chunks WHERE embedding IS NOT NULL
            ORDER BY id
            """
        ) as cursor:
            rows = await cursor.fetchall()

        return [
            IndexEntry(
                path=row[0],
                content_hash=row[1],
                chunk_index=row[2],
                start_line=row[3],
                end_line=row[4],
                content=row[5],
                embedding=decode_embedding(row[6]),
            )
            for row in rows
        ]

    async def indexed_paths(self) -> set[str]:
        """Return every path that has at least one row."""
        conn = self._require()
        async with conn.execute("SELECT DISTINCT path FROM chunks") as cursor:
            return {row[0] async for row in cursor}

    async def stats(self) -> StoreStats:
        """Return file count, chunk count and total content size in bytes."""
        conn = self._require()
        async with conn.execute(
            """
            SELECT
                COUNT(DISTINCT path),
                COUNT(*),
                COALESCE(SUM(LENGTH(CAST(content AS BLOB))), 0)
            FROM chunks
            """
        ) as cursor:
            row = await cursor.fetchone()
        return StoreStats(files=row[0], chunks=row[1], total_bytes=row[2])

    async def clear(self) -> None:
        """Delete every row."""
        conn = self._require()
        try:
            await conn.execute("DELETE FROM chunks")
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to clear index: {e}") from e

    async def save(self, compact: bool = False) -> None:
        """Write pending changes to the backing file.

        With ``compact`` the file is also vacuumed to reclaim the space of
        deleted rows.
        """
        conn = self._require()
        try:
            await conn.commit()
            if compact:
                await conn.execute("VACUUM")
                await conn.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to save index: {e}") from e

    async def rollback(self) -> None:
        """Discard every change made since the last ``save()``."""
        if self._conn is None:
            return
        try:
            await self._conn.rollback()
        except aiosqlite.Error as e:
            raise StoreError(f"Failed to roll back index: {e}") from e

    async def close(self) -> None:
        """Close the connection, discarding unsaved changes."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        await conn.close()

    async def destroy(self) -> None:
        """Close the store and delete its backing file."""
        await self.close()
        try:
            self.db_path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to delete {self.db_path}: {e}") from e
