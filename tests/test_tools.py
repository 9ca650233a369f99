"""Tests for the LLM-facing tools in codeindex.tools."""

from unittest import mock

import pytest
import pytest_asyncio

from codeindex import config
from codeindex.embeddings import EmbeddingClient
from codeindex.search import SearchResult
from codeindex.session import CodebaseIndex
from codeindex.tools import (
    NO_INDEX_MESSAGE,
    build_tools,
    format_search_results,
    format_similar_results,
)


@pytest_asyncio.fixture
async def session(project, embedder):
    s = CodebaseIndex(project, embedder=embedder)
    yield s
    await s.close()


@pytest.fixture
def tools(session):
    return {t.name: t for t in build_tools(session)}


class TestFormatting:
    def test_search_result_header(self):
        result = SearchResult("src/a.py", "x = 1", 0.91234, 3, 7)
        assert format_search_results([result]) == (
            "### 1. src/a.py:3-7 (score: 0.912)\n```\nx = 1\n```"
        )

    def test_search_content_cut(self):
        result = SearchResult("a.py", "x" * 1500, 0.5, 1, 1)
        text = format_search_results([result])
        assert "x" * 1000 + "\n...\n```" in text
        assert "x" * 1001 not in text

    def test_similar_percentage(self):
        results = [
            SearchResult("a.py", "a", 0.934, 1, 2),
            SearchResult("b.py", "b" * 600, 0.5, 1, 9),
        ]
        text = format_similar_results(results)
        assert "### 1. a.py:1-2 (similarity: 93.4%)" in text
        assert "### 2. b.py:1-9 (similarity: 50.0%)" in text
        assert "b" * 500 + "\n..." in text
        assert "b" * 501 not in text

    def test_empty(self):
        assert format_search_results([]) == ""


class TestSemanticSearchTool:
    def test_tool_names(self, tools):
        assert set(tools) == {"semantic_search", "find_similar", "index_codebase"}

    @pytest.mark.asyncio
    async def test_not_indexed(self, tools):
        result = await tools["semantic_search"].ainvoke({"query": "hello"})
        assert result == NO_INDEX_MESSAGE

    @pytest.mark.asyncio
    async def test_results(self, session, tools):
        await session.index()
        result = await tools["semantic_search"].ainvoke({"query": "hello\nworld", "limit": 1})
        assert result.startswith("### 1. a.txt:1-2 (score: 1.000)")
        assert "### 2." not in result

    @pytest.mark.asyncio
    async def test_error_is_returned_as_text(self, project):
        s = CodebaseIndex(project, embedder=EmbeddingClient())
        try:
            tools = {t.name: t for t in build_tools(s)}
            with mock.patch.object(config, "get_api_key", return_value=""):
                result = await tools["semantic_search"].ainvoke({"query": "x"})
        finally:
            await s.close()
        assert result == "Search error: MISTRAL_API_KEY environment variable is required"


class TestFindSimilarTool:
    @pytest.mark.asyncio
    async def test_requires_file_or_code(self, tools):
        result = await tools["find_similar"].ainvoke({})
        assert result == "Error: Either 'file' or 'code' parameter is required"

    @pytest.mark.asyncio
    async def test_not_indexed(self, tools):
        result = await tools["find_similar"].ainvoke({"code": "hello"})
        assert result == "No indexed content found. Run /index first."

    @pytest.mark.asyncio
    async def test_similar_file(self, session, tools):
        await session.index()
        result = await tools["find_similar"].ainvoke({"file": "a.txt"})
        assert result.startswith("### 1. b.txt:1-2 (similarity: ")
        assert "a.txt" not in result

    @pytest.mark.asyncio
    async def test_similar_code(self, session, tools):
        await session.index()
        result = await tools["find_similar"].ainvoke({"code": "hello\nworld", "limit": 1})
        assert result.startswith("### 1. a.txt:1-2 (similarity: 100.0%)")

    @pytest.mark.asyncio
    async def test_missing_file_error(self, tools):
        result = await tools["find_similar"].ainvoke({"file": "missing.txt"})
        assert result.startswith("Error: FileNotFoundError: ")

    @pytest.mark.asyncio
    async def test_no_other_files(self, tmp_path, embedder):
        (tmp_path / "only.txt").write_text("alone\n")
        s = CodebaseIndex(tmp_path, embedder=embedder)
        try:
            await s.index()
            tools = {t.name: t for t in build_tools(s)}
            result = await tools["find_similar"].ainvoke({"file": "only.txt"})
        finally:
            await s.close()
        assert result == "No similar files found."


class TestIndexCodebaseTool:
    @pytest.mark.asyncio
    async def test_queues_index_run(self, project, embedder):
        s = CodebaseIndex(project, embedder=embedder)
        tools = {t.name: t for t in build_tools(s)}
        result = await tools["index_codebase"].ainvoke({})
        assert result.startswith("Indexing queued.")

        await s.close()  # waits for the queued run
        await s.get_store()
        try:
            assert (await s.status()).chunks == 2
        finally:
            await s.close()
