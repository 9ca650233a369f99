"""Collect the files of a project that are worth indexing.

Files are selected by name (source, config, markup and build-file patterns)
and filtered through the project's ``.gitignore``. When the project has no
``.gitignore`` a minimal fallback ignore set is used instead, so that
``node_modules`` and friends are still left out.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path

import pathspec

logger = logging.getLogger(__name__)

# ── Patterns ─────────────────────────────────────────────────────────────

_SOURCE_EXTENSIONS = {
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".py",
    ".go",
    ".rs",
    ".java",
    ".c",
    ".cpp",
    ".h",
    ".hpp",
    ".rb",
    ".php",
    ".swift",
    ".kt",
    ".scala",
    ".vue",
    ".svelte",
}

_CONFIG_EXTENSIONS = {
    ".yaml",
    ".yml",
    ".json",
    ".toml",
    ".md",
    ".sql",
    ".txt",
}

INDEXED_EXTENSIONS = _SOURCE_EXTENSIONS | _CONFIG_EXTENSIONS

# Extension-less build files, matched against the file name
INDEXED_NAME_PATTERNS = (
    "Dockerfile*",
    "Containerfile*",
    "Makefile",
)

# Minimal fallback ignores (only used if no .gitignore exists)
FALLBACK_IGNORE = [
    ".git/",
    "node_modules/",
    "vendor/",
    "dist/",
    "build/",
    "out/",
]


def load_ignore_spec(folder: str | os.PathLike) -> pathspec.GitIgnoreSpec:
    """Return the ignore rules of a project.

    Uses the root ``.gitignore`` when present and readable, the fallback
    ignore set otherwise.
    """
    gitignore_path = Path(folder) / ".gitignore"
    if gitignore_path.is_file():
        try:
            lines = gitignore_path.read_text(encoding="utf-8").splitlines()
            return pathspec.GitIgnoreSpec.from_lines(lines)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s, using fallback ignores: %s", gitignore_path, e)
    return pathspec.GitIgnoreSpec.from_lines(FALLBACK_IGNORE)


def is_indexable_name(filename: str) -> bool:
    """Check whether a file name matches the indexed patterns."""
    if filename.startswith("."):
        return False
    if Path(filename).suffix.lower() in INDEXED_EXTENSIONS:
        return True
    return any(fnmatch.fnmatchcase(filename, pat) for pat in INDEXED_NAME_PATTERNS)


def collect_files(folder: str | os.PathLike) -> list[str]:
    """Collect indexable files under ``folder``.

    Returns sorted, project-relative paths using ``/`` separators. Hidden
    files and directories are skipped and symlinked directories are not
    followed. File contents are never opened.
    """
    root_path = Path(folder).resolve()
    ignore = load_ignore_spec(root_path)
    files: set[str] = set()

    for root, dirs, filenames in os.walk(root_path, followlinks=False):
        rel_root = Path(root).relative_to(root_path)

        # Prune hidden and ignored directories in-place
        dirs[:] = [
            d
            for d in dirs
            if not d.startswith(".")
            and not ignore.match_file((rel_root / d).as_posix() + "/")
        ]

        for filename in filenames:
            if not is_indexable_name(filename):
                continue
            rel_path = (rel_root / filename).as_posix()
            if ignore.match_file(rel_path):
                continue
            files.add(rel_path)

    return sorted(files)
