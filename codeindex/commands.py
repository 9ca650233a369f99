"""Host commands: ``index``, ``index-status`` and ``index-clear``.

Command handlers never raise. Progress and failures are reported through a
``Notifier`` supplied by the host.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Protocol

from codeindex.indexer import BatchOutcome, IndexingInProgressError, IndexSummary
from codeindex.session import CodebaseIndex

logger = logging.getLogger(__name__)

STATUS_KEY = "index"


class Notifier(Protocol):
    """User-facing notification surface of the host."""

    def notify(self, message: str, level: str = "info") -> None: ...

    def set_status(self, key: str, text: str | None) -> None: ...


class LogNotifier:
    """Notifier that writes to the log, for hosts without a UI."""

    def notify(self, message: str, level: str = "info") -> None:
        log = {"error": logger.error, "warning": logger.warning}.get(level, logger.info)
        log("%s", message)

    def set_status(self, key: str, text: str | None) -> None:
        if text:
            logger.debug("[%s] %s", key, text)


class _ProgressReporter:
    """Turns indexer progress events into notifications."""

    def __init__(self, notifier: Notifier) -> None:
        self.notifier = notifier
        self.total_files = 0
        self.total_chunks = 0

    def __call__(self, event_type: str, data: Any) -> None:
        if event_type == "start":
            self.total_files = data["total_files"]
            self.notifier.notify(f"Found {self.total_files} files to index", "info")
        elif event_type == "collected":
            self.notifier.set_status(
                STATUS_KEY, f"🔍 Collected {data['indexed']}/{data['total']} files..."
            )
        elif event_type == "embedding":
            self.total_chunks = data["chunks"]
            self.notifier.notify(
                f"Embedding {data['chunks']} chunks from {data['files']} files...", "info"
            )
        elif event_type == "batch":
            outcome: BatchOutcome = data
            if not outcome.ok:
                self.notifier.notify(f"Embedding error: {outcome.error}", "error")
            done = min(outcome.start + outcome.size, self.total_chunks)
            self.notifier.set_status(
                STATUS_KEY, f"🔍 Embedded {done}/{self.total_chunks}..."
            )


async def index_command(session: CodebaseIndex, notifier: Notifier) -> IndexSummary | None:
    """Run the indexer, reporting progress and the final summary."""
    if session.indexing_in_progress:
        notifier.notify("Indexing already in progress", "warning")
        return None

    notifier.set_status(STATUS_KEY, "🔍 Indexing...")
    try:
        summary = await session.index(on_progress=_ProgressReporter(notifier))
    except IndexingInProgressError:
        notifier.notify("Indexing already in progress", "warning")
        return None
    except Exception as e:
        logger.error("Indexing failed: %s", e)
        notifier.set_status(STATUS_KEY, None)
        notifier.notify(f"Indexing failed: {e}", "error")
        return None

    notifier.set_status(STATUS_KEY, None)
    notifier.notify(summary.message(), "info")
    return summary


async def index_status_command(session: CodebaseIndex, notifier: Notifier) -> None:
    try:
        stats = await session.status()
    except Exception as e:
        notifier.notify(f"Index status failed: {e}", "error")
        return
    notifier.notify(
        f"Index: {stats.files} files, {stats.chunks} chunks, "
        f"{round(stats.total_bytes / 1024)}KB",
        "info",
    )


async def index_clear_command(session: CodebaseIndex, notifier: Notifier) -> None:
    try:
        await session.clear()
    except Exception as e:
        notifier.notify(f"Index clear failed: {e}", "error")
        return
    notifier.notify("Index cleared. Run /index to rebuild.", "info")


CommandHandler = Callable[[CodebaseIndex, Notifier], Awaitable[Any]]

COMMANDS: dict[str, tuple[str, CommandHandler]] = {
    "index": ("Index the codebase for semantic search", index_command),
    "index-status": ("Show codebase index status", index_status_command),
    "index-clear": ("Clear the codebase index", index_clear_command),
}
