"""Split file content into bounded, line-addressed chunks."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from codeindex import config

# Prefix inspected by the binary/minified heuristic
_BINARY_SNIFF_CHARS = 1000
_MAX_CONTROL_CHARS = 10


@dataclass
class Chunk:
    """A contiguous slice of one file's text."""

    path: str
    content: str
    content_hash: str  # Hash of the whole file, shared by all its chunks
    chunk_index: int
    start_line: int  # 1-based, inclusive
    end_line: int


def content_hash(content: str) -> str:
    """Return a short SHA-256 digest of the file content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


def is_likely_binary(content: str) -> bool:
    """Check if content looks binary or minified.

    Counts control characters other than tab, LF and CR in the first
    1000 characters.
    """
    control = sum(
        1
        for c in content[:_BINARY_SNIFF_CHARS]
        if ord(c) < 32 and c not in "\t\n\r"
    )
    return control > _MAX_CONTROL_CHARS


def _split_lines(content: str) -> list[str]:
    lines = content.split("\n")
    # A trailing newline terminates the last line, it does not start a new one
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def chunk_file(path: str, content: str, chunk_size: int | None = None) -> list[Chunk]:
    """Split a file into chunks of at most ``chunk_size`` characters.

    Whole lines are accumulated until the next one would overflow the chunk.
    Lines longer than ``chunk_size`` are truncated first. An empty file
    produces no chunks; whitespace is content like any other.
    """
    size = chunk_size or config.CHUNK_SIZE
    if not content:
        return []

    file_hash = content_hash(content)
    lines = _split_lines(content)
    chunks: list[Chunk] = []

    current: list[str] = []
    current_len = 0
    start_line = 1

    def emit(end_line: int) -> None:
        chunks.append(
            Chunk(
                path=path,
                content="\n".join(current),
                content_hash=file_hash,
                chunk_index=len(chunks),
                start_line=start_line,
                end_line=end_line,
            )
        )

    for i, line in enumerate(lines):
        if len(line) > size:
            line = line[:size]

        new_len = current_len + (1 if current else 0) + len(line)
        if current and new_len > size:
            emit(end_line=i)
            current = [line]
            current_len = len(line)
            start_line = i + 1
        else:
            current.append(line)
            current_len = new_len

    if current:
        emit(end_line=len(lines))

    return chunks
