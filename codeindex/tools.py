"""LLM-facing tools bound to a codebase index session."""

from langchain_core.tools import BaseTool, tool

from codeindex.commands import LogNotifier, Notifier, index_command
from codeindex.search import SearchResult
from codeindex.session import CodebaseIndex

NO_INDEX_MESSAGE = "No indexed content found. Run /index first to index the codebase."


def _excerpt(content: str, max_chars: int) -> str:
    if len(content) > max_chars:
        return content[:max_chars] + "\n..."
    return content


def format_search_results(results: list[SearchResult]) -> str:
    return "\n\n".join(
        f"### {i}. {r.path}:{r.start_line}-{r.end_line} (score: {r.score:.3f})\n"
        f"```\n{_excerpt(r.content, 1000)}\n```"
        for i, r in enumerate(results, 1)
    )


def format_similar_results(results: list[SearchResult]) -> str:
    return "\n\n".join(
        f"### {i}. {r.path}:{r.start_line}-{r.end_line} "
        f"(similarity: {r.score * 100:.1f}%)\n"
        f"```\n{_excerpt(r.content, 500)}\n```"
        for i, r in enumerate(results, 1)
    )


def build_tools(session: CodebaseIndex, notifier: Notifier | None = None) -> list[BaseTool]:
    """Return the ``semantic_search``, ``find_similar`` and ``index_codebase`` tools."""
    notifier = notifier or LogNotifier()

    @tool
    async def semantic_search(query: str, limit: int = 10) -> str:
        """Search the codebase semantically using natural language.

        Returns relevant code snippets ranked by similarity. Use this when you
        need to find code related to a concept, not just literal text matches.

        Args:
            query: Natural language search query.
            limit: Max results (default 10).
        """
        try:
            results = await session.search(query, limit or 10)
        except Exception as e:
            return f"Search error: {e}"
        if results is None:
            return NO_INDEX_MESSAGE
        return format_search_results(results) or "No results found."

    @tool
    async def find_similar(
        file: str | None = None, code: str | None = None, limit: int = 5
    ) -> str:
        """Find files similar to a given file or code snippet.

        Useful for finding related code, duplicate patterns, or similar
        implementations. Give exactly one of ``file`` or ``code``.

        Args:
            file: Path to file to find similar files to.
            code: Code snippet to find similar code to.
            limit: Max results (default 5).
        """
        try:
            results = await session.find_similar(file=file, code=code, limit=limit or 5)
        except ValueError as e:
            return f"Error: {e}"
        except Exception as e:
            return f"Error: {type(e).__name__}: {e}"
        if results is None:
            return "No indexed content found. Run /index first."
        return format_similar_results(results) or "No similar files found."

    @tool
    async def index_codebase() -> str:
        """Index the codebase for semantic search.

        Run this before using semantic_search or find_similar. Only needed
        once or when files change significantly.
        """
        session.schedule(lambda: index_command(session, notifier))
        return "Indexing queued. This may take a few minutes for large codebases."

    return [semantic_search, find_similar, index_codebase]
