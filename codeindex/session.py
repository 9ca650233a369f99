"""Per-project index session.

A ``CodebaseIndex`` owns the vector store and the embedding client of one
project root. The store is opened on first use and closed on ``close()``;
every command and tool goes through the same session object.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

from codeindex import config
from codeindex.embeddings import EmbeddingClient
from codeindex.indexer import Indexer, IndexingInProgressError, IndexSummary
from codeindex.search import SearchResult, search_by_embedding
from codeindex.store import StoreStats, VectorStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Any], None]


class CodebaseIndex:
    """Semantic index of a single project."""

    def __init__(
        self,
        project_root: str | Path,
        *,
        embedder: EmbeddingClient | None = None,
        store: VectorStore | None = None,
    ) -> None:
        self.project_root = Path(project_root).resolve()
        self.embedder = embedder or EmbeddingClient()
        self._store = store
        self._indexing = False
        self._pending: set[asyncio.Task] = set()

    async def __aenter__(self) -> CodebaseIndex:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def db_path(self) -> Path:
        if self._store is not None:
            return self._store.db_path
        return config.get_index_db_path(self.project_root)

    @property
    def indexing_in_progress(self) -> bool:
        return self._indexing

    async def get_store(self) -> VectorStore:
        """Return the open store, opening it on first use."""
        if self._store is None:
            self._store = await VectorStore.open(self.project_root)
        elif not self._store.is_open:
            await self._store.connect()
        return self._store

    async def index(self, on_progress: ProgressCallback | None = None) -> IndexSummary:
        """Run one index pass over the project.

        Raises:
            IndexingInProgressError: If another run is active.
            ConfigurationError: If the embedding credential is missing.
            StoreError: If the store cannot be written.
        """
        if self._indexing:
            raise IndexingInProgressError("Indexing already in progress")
        self._indexing = True
        try:
            self.embedder.ensure_configured()
            store = await self.get_store()
            indexer = Indexer(self.project_root, store, self.embedder)
            summary = IndexSummary()
            async for event_type, data in indexer.run():
                if on_progress is not None:
                    on_progress(event_type, data)
                if event_type == "complete":
                    summary = data
            return summary
        finally:
            self._indexing = False

    def schedule(self, factory: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """Run a coroutine in the background, keeping a reference to it."""
        task = asyncio.ensure_future(factory())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def status(self) -> StoreStats:
        store = await self.get_store()
        return await store.stats()

    async def clear(self) -> None:
        """Drop every indexed row and delete the backing file."""
        if self._indexing:
            raise IndexingInProgressError("Indexing in progress, cannot clear the index")
        store = await self.get_store()
        await store.clear()
        await store.save()
        await store.destroy()
        logger.info("Cleared index %s", store.db_path)

    async def search(
        self,
        query: str,
        limit: int = 10,
        *,
        exclude_path: str | None = None,
        timeout: float | None = None,
    ) -> list[SearchResult] | None:
        """Embed ``query`` and return the most similar chunks.

        Returns None when the project has not been indexed.
        """
        if limit <= 0:
            raise ValueError("limit must be a positive number")
        self.embedder.ensure_configured()
        store = await self.get_store()
        [query_embedding] = await self.embedder.embed([query], timeout=timeout)
        return await search_by_embedding(store, query_embedding, limit, exclude_path)

    async def find_similar(
        self,
        file: str | None = None,
        code: str | None = None,
        limit: int = 5,
        *,
        timeout: float | None = None,
    ) -> list[SearchResult] | None:
        """Return chunks similar to a project file or a code snippet.

        Exactly one of ``file`` and ``code`` must be given. A file is
        excluded from its own results.

        Raises:
            ValueError: If neither or both of ``file`` and ``code`` are given,
                or ``file`` lies outside the project.
        """
        if bool(file) == bool(code):
            raise ValueError("Either 'file' or 'code' parameter is required")
        if file:
            path = (self.project_root / file).resolve()
            if not path.is_relative_to(self.project_root):
                raise ValueError(f"File is outside the project: {file}")
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            exclude = path.relative_to(self.project_root).as_posix()
        else:
            text = code or ""
            exclude = None
        return await self.search(
            text[: config.CHUNK_SIZE], limit, exclude_path=exclude, timeout=timeout
        )

    async def close(self) -> None:
        """Wait for background runs and close the store."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._store is not None:
            await self._store.close()
