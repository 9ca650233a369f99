"""Brute-force cosine similarity search over the stored embeddings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from codeindex.store import IndexEntry, VectorStore

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    path: str
    content: str
    score: float
    start_line: int
    end_line: int


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Return dot(a, b) / (|a| * |b|), or 0.0 if either vector is zero."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def rank_entries(
    query: Sequence[float] | np.ndarray,
    entries: Sequence[IndexEntry],
    limit: int,
    exclude_path: str | None = None,
) -> list[SearchResult]:
    """Score ``entries`` against ``query`` and return the best ``limit``.

    The sort is stable, so equal scores keep store order. Entries whose
    dimension differs from the query (e.g. indexed with another model) are
    left out.
    """
    q = np.asarray(query, dtype=np.float64)
    candidates: list[IndexEntry] = []
    mismatched = 0
    for entry in entries:
        if exclude_path and entry.path == exclude_path:
            continue
        if entry.embedding is None:
            continue
        if entry.embedding.shape != q.shape:
            mismatched += 1
            continue
        candidates.append(entry)

    if mismatched:
        logger.warning(
            "Skipped %d entries with embedding dimension other than %d",
            mismatched,
            q.shape[0] if q.ndim else 0,
        )
    if not candidates or limit <= 0:
        return []

    matrix = np.vstack([e.embedding for e in candidates]).astype(np.float64)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(q)
    dots = matrix @ q
    scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)

    order = np.argsort(-scores, kind="stable")[:limit]
    return [
        SearchResult(
            path=candidates[i].path,
            content=candidates[i].content,
            score=float(scores[i]),
            start_line=candidates[i].start_line,
            end_line=candidates[i].end_line,
        )
        for i in order
    ]


async def search_by_embedding(
    store: VectorStore,
    query_embedding: Sequence[float] | np.ndarray,
    limit: int,
    exclude_path: str | None = None,
) -> list[SearchResult] | None:
    """Return the ``limit`` most similar chunks.

    Returns None when nothing has been embedded yet, so callers can tell
    "never indexed" apart from "no match".
    """
    entries = await store.all_embedded_entries()
    if not entries:
        return None
    return rank_entries(query_embedding, entries, limit, exclude_path)
