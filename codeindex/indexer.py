"""Incremental indexing of a project into the vector store.

Steps:
    1. Check the embedding credential before touching any file.
    2. Collect filenames to scan, respecting .gitignore if present.
    3. For each file: skip oversized, undecodable and binary-looking files,
       and files whose stored hash matches the current content. Otherwise
       delete the file's old rows and chunk the new content.
    4. Remove rows of files that are no longer part of the project.
    5. Embed all new chunks in fixed-size batches, storing each batch as
       soon as it is embedded. A failed batch is reported, and every file
       it touched is dropped from the run so the next run retries it whole.
    6. Save and compact the store once at the end.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncGenerator

from codeindex import config
from codeindex.chunker import Chunk, chunk_file, content_hash, is_likely_binary
from codeindex.embeddings import EmbeddingClient, EmbeddingError
from codeindex.scanner import collect_files
from codeindex.store import VectorStore

logger = logging.getLogger(__name__)

# Emit a "collected" progress event every this many changed files
_PROGRESS_EVERY = 50


class IndexingInProgressError(RuntimeError):
    """Raised when an index run is requested while one is active."""

    pass


class IndexState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DIFFING = "diffing"
    EMBEDDING = "embedding"
    PERSISTING = "persisting"


@dataclass
class BatchOutcome:
    """Result of embedding one batch of chunks."""

    index: int  # Batch number, 0-based
    start: int  # Offset of the first chunk in the run's chunk list
    size: int
    embedded: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class IndexSummary:
    """Totals of one index run."""

    total_files: int = 0
    indexed: int = 0
    skipped: int = 0
    removed: int = 0
    chunks: int = 0
    embedded: int = 0
    failed_batches: list[BatchOutcome] = field(default_factory=list)
    duration: float = 0.0

    def message(self) -> str:
        text = f"✓ Indexed {self.indexed} files ({self.skipped} skipped, {self.chunks} chunks)"
        if self.failed_batches:
            missing = self.chunks - self.embedded
            text += (
                f", {len(self.failed_batches)} batch(es) failed, "
                f"{missing} chunks not embedded"
            )
        return text


def read_source_file(path: Path, max_size: int) -> tuple[str | None, str]:
    """Read a file for indexing.

    Returns ``(content, "")`` or ``(None, reason)`` when the file must be
    skipped.
    """
    try:
        if path.stat().st_size > max_size:
            return None, "too large"
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return None, "not utf-8"
    except OSError as e:
        return None, f"unreadable: {e.strerror or e}"
    if is_likely_binary(content):
        return None, "binary or minified"
    return content, ""


def embedding_text(chunk: Chunk) -> str:
    """Text sent to the embedding model for a chunk."""
    return f"File: {chunk.path}\n\n{chunk.content}"


class Indexer:
    """Runs scan → diff → chunk → embed → persist over one project."""

    def __init__(
        self,
        project_root: str | Path,
        store: VectorStore,
        embedder: EmbeddingClient,
        *,
        batch_size: int | None = None,
        max_file_size: int | None = None,
        chunk_size: int | None = None,
        timeout: float | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.store = store
        self.embedder = embedder
        self.batch_size = batch_size or config.BATCH_SIZE
        self.max_file_size = max_file_size or config.MAX_FILE_SIZE
        self.chunk_size = chunk_size or config.CHUNK_SIZE
        self.timeout = timeout
        self.state = IndexState.IDLE

    async def run(self) -> AsyncGenerator[tuple[str, Any], None]:
        """Index the project, yielding progress events.

        Yields:
            ("start", {"total_files": int})
            ("collected", {"indexed": int, "total": int})
            ("cleanup", {"removed_files": int})
            ("embedding", {"chunks": int, "files": int})
            ("batch", BatchOutcome)
            ("complete", IndexSummary)

        Raises:
            ConfigurationError: If the embedding credential is missing.
            StoreError: If the store cannot be written. Every change of the
                run is rolled back.
        """
        self.embedder.ensure_configured()
        start_time = time.time()
        summary = IndexSummary()

        try:
            self.state = IndexState.SCANNING
            files = await asyncio.to_thread(collect_files, self.project_root)
            summary.total_files = len(files)
            logger.info("Found %d files to index in %s", len(files), self.project_root)
            yield ("start", {"total_files": len(files)})

            self.state = IndexState.DIFFING
            all_chunks: list[Chunk] = []
            for rel_path in files:
                chunks = await self._diff_file(rel_path, summary)
                if chunks is None:
                    continue
                all_chunks.extend(chunks)
                summary.indexed += 1
                if summary.indexed % _PROGRESS_EVERY == 0:
                    yield (
                        "collected",
                        {
                            "indexed": summary.indexed,
                            "total": len(files) - summary.skipped,
                        },
                    )

            stale = await self.store.indexed_paths() - set(files)
            for rel_path in sorted(stale):
                await self.store.delete_file(rel_path)
            summary.removed = len(stale)
            if stale:
                logger.info("Removed %d files no longer in the project", len(stale))
                yield ("cleanup", {"removed_files": len(stale)})

            summary.chunks = len(all_chunks)
            yield ("embedding", {"chunks": len(all_chunks), "files": summary.indexed})

            # A file is stored whole or not at all, so the next run retries it
            failed_paths: set[str] = set()
            stored: Counter[str] = Counter()
            for batch_index, start in enumerate(range(0, len(all_chunks), self.batch_size)):
                batch = all_chunks[start : start + self.batch_size]
                pending = [c for c in batch if c.path not in failed_paths]
                outcome = await self._embed_batch(batch_index, start, len(batch), pending)
                if outcome.ok:
                    stored.update(c.path for c in pending)
                else:
                    summary.failed_batches.append(outcome)
                    for path in sorted({c.path for c in pending}):
                        await self.store.delete_file(path)
                        failed_paths.add(path)
                        stored.pop(path, None)
                yield ("batch", outcome)
            summary.embedded = sum(stored.values())

            self.state = IndexState.PERSISTING
            await self.store.save(compact=True)
        except BaseException:
            # Nothing of an unfinished run reaches the file
            await self.store.rollback()
            raise
        finally:
            self.state = IndexState.IDLE

        summary.duration = round(time.time() - start_time, 2)
        logger.info(
            "Indexed %d files (%d skipped, %d chunks, %d embedded) in %ss",
            summary.indexed,
            summary.skipped,
            summary.chunks,
            summary.embedded,
            summary.duration,
        )
        yield ("complete", summary)

    async def _diff_file(self, rel_path: str, summary: IndexSummary) -> list[Chunk] | None:
        """Return the new chunks of a changed file, or None if it is skipped."""
        full_path = self.project_root / rel_path
        content, reason = await asyncio.to_thread(
            read_source_file, full_path, self.max_file_size
        )
        if content is None:
            logger.debug("Skipping %s: %s", rel_path, reason)
            summary.skipped += 1
            return None

        file_hash = content_hash(content)
        if await self.store.get_hash(rel_path) == file_hash:
            summary.skipped += 1
            return None

        # Changed or new: old rows go before the new ones are embedded
        await self.store.delete_file(rel_path)
        chunks = chunk_file(rel_path, content, self.chunk_size)
        if not chunks:
            logger.debug("Skipping %s: empty", rel_path)
            summary.skipped += 1
            return None
        return chunks

    async def _embed_batch(
        self, batch_index: int, start: int, size: int, batch: list[Chunk]
    ) -> BatchOutcome:
        outcome = BatchOutcome(index=batch_index, start=start, size=size)
        if not batch:
            return outcome
        self.state = IndexState.EMBEDDING
        try:
            vectors = await self.embedder.embed(
                [embedding_text(c) for c in batch], timeout=self.timeout
            )
        except EmbeddingError as e:
            outcome.error = str(e)
            logger.warning(
                "Embedding batch %d (chunks %d-%d) failed: %s",
                batch_index,
                start,
                start + len(batch) - 1,
                e,
            )
            return outcome

        self.state = IndexState.PERSISTING
        await self.store.upsert_chunks(batch, vectors)
        outcome.embedded = len(batch)
        return outcome
