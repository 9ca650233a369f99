"""Shared fixtures: a deterministic fake of the embeddings provider."""

import asyncio
from types import SimpleNamespace

import numpy as np
import pytest
from openai import OpenAIError

from codeindex.embeddings import EmbeddingClient

DIM = 32


def fake_vector(text: str) -> list[float]:
    """Character histogram of ``text``, ignoring the ``File: ...`` header."""
    if text.startswith("File: ") and "\n\n" in text:
        text = text.split("\n\n", 1)[1]
    vec = np.zeros(DIM, dtype=np.float32)
    for ch in text:
        vec[ord(ch) % DIM] += 1.0
    return vec.tolist()


class FakeEmbeddings:
    """Stands in for ``AsyncOpenAI().embeddings``."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.fail_calls: set[int] = set()  # 1-based call numbers that fail
        self.gate: asyncio.Event | None = None

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.gate is not None:
            await self.gate.wait()
        if len(self.calls) in self.fail_calls:
            raise OpenAIError("service unavailable")
        return SimpleNamespace(
            data=[
                SimpleNamespace(index=i, embedding=fake_vector(text))
                for i, text in enumerate(kwargs["input"])
            ]
        )

    @property
    def inputs(self) -> list[str]:
        return [text for call in self.calls for text in call["input"]]


@pytest.fixture
def fake_openai():
    return SimpleNamespace(embeddings=FakeEmbeddings())


@pytest.fixture
def embedder(fake_openai):
    return EmbeddingClient(api_key="test-key", client=fake_openai)


@pytest.fixture
def project(tmp_path):
    """A small project with two identical text files."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "a.txt").write_text("hello\nworld\n")
    (root / "b.txt").write_text("hello\nworld\n")
    return root
