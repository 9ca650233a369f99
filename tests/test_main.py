"""Tests for the codeindex command line."""

from unittest import mock

import pytest

from codeindex import config
from codeindex.main import ConsoleNotifier, build_parser, main


@pytest.fixture
def cli(project, embedder):
    """Run the CLI against ``project`` with the fake embedder."""

    def _run(*argv):
        with mock.patch("codeindex.session.EmbeddingClient", return_value=embedder):
            return main(["--root", str(project), *argv])

    return _run


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args(["search", "auth flow"])
        assert args.command == "search"
        assert args.query == "auth flow"
        assert args.limit == 10
        assert args.log is False

    def test_similar_requires_a_source(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["similar"])

    def test_similar_sources_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["similar", "--file", "a.py", "--code", "x"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    def test_index_then_status(self, cli, capsys):
        assert cli("index") == 0
        out = capsys.readouterr().out
        assert "Found 2 files to index" in out
        assert "✓ Indexed 2 files (0 skipped, 2 chunks)" in out

        assert cli("status") == 0
        assert capsys.readouterr().out.strip() == "Index: 2 files, 2 chunks, 0KB"

    def test_search(self, cli, capsys):
        cli("index")
        capsys.readouterr()
        assert cli("search", "hello\nworld", "--limit", "1") == 0
        out = capsys.readouterr().out
        assert out.startswith("### 1. a.txt:1-2 (score: 1.000)")

    def test_search_before_index(self, cli, capsys):
        assert cli("search", "hello") == 0
        assert "Run `codeindex index` first" in capsys.readouterr().out

    def test_similar_file(self, cli, capsys):
        cli("index")
        capsys.readouterr()
        assert cli("similar", "--file", "a.txt") == 0
        out = capsys.readouterr().out
        assert out.startswith("### 1. b.txt:1-2 (similarity: ")

    def test_clear(self, cli, capsys, project):
        cli("index")
        capsys.readouterr()
        assert cli("clear") == 0
        assert capsys.readouterr().out.strip() == "Index cleared. Run /index to rebuild."
        assert not config.get_index_db_path(project).exists()

    def test_missing_api_key(self, project, capsys):
        with mock.patch.object(config, "get_api_key", return_value=""):
            assert main(["--root", str(project), "index"]) == 1
        err = capsys.readouterr().err
        assert "Indexing failed: MISTRAL_API_KEY environment variable is required" in err

    def test_search_error_exit_status(self, project, capsys):
        with mock.patch.object(config, "get_api_key", return_value=""):
            assert main(["--root", str(project), "search", "x"]) == 1
        assert capsys.readouterr().err.startswith("Error: ")


class TestConsoleNotifier:
    def test_levels(self, capsys):
        n = ConsoleNotifier()
        n.notify("fine")
        n.notify("hmm", "warning")
        n.notify("bad", "error")
        captured = capsys.readouterr()
        assert captured.out == "fine\n"
        assert captured.err == "Warning: hmm\nbad\n"
        assert n.errors == 1
