"""Embedding client for an OpenAI-compatible embeddings endpoint.

Texts are truncated to ``MAX_EMBED_CHARS`` before sending and the reply is
parsed into one explicit result per input. A batch either yields a vector
for every input or fails as a whole with ``EmbeddingError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
from openai import AsyncOpenAI, OpenAIError

from codeindex import config

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when the embedding provider is not configured."""

    pass


class EmbeddingError(RuntimeError):
    """Raised when a batch of texts could not be embedded."""

    pass


@dataclass
class EmbeddingResult:
    """Outcome of embedding a single input text."""

    vector: np.ndarray | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.vector is not None


def truncate_text(text: str, limit: int | None = None) -> str:
    """Cut ``text`` to at most ``limit`` characters."""
    limit = limit or config.MAX_EMBED_CHARS
    return text if len(text) <= limit else text[:limit]


def parse_embedding_response(response: Any, count: int) -> list[EmbeddingResult]:
    """Turn a provider reply into exactly ``count`` per-input results.

    Items are matched to inputs by their ``index`` field; an input without a
    usable vector gets an explicit failure.
    """
    results = [EmbeddingResult(error="missing from response") for _ in range(count)]
    for position, item in enumerate(getattr(response, "data", None) or []):
        index = getattr(item, "index", None)
        if index is None:
            index = position
        if not 0 <= index < count:
            continue
        embedding = getattr(item, "embedding", None)
        if embedding is None or len(embedding) == 0:
            results[index] = EmbeddingResult(error="empty embedding")
            continue
        results[index] = EmbeddingResult(vector=np.asarray(embedding, dtype=np.float32))
    return results


class EmbeddingClient:
    """Stateless embedding client; one remote call per ``embed`` invocation."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: Any = None,
    ) -> None:
        self._api_key = api_key
        self.model = model or config.EMBEDDING_MODEL
        self.base_url = base_url or config.EMBEDDING_BASE_URL
        self.timeout = timeout if timeout is not None else config.EMBEDDING_TIMEOUT
        self._client = client

    def _get_client(self) -> Any:
        """Create the provider client on first use."""
        if self._client is None:
            if not self._api_key:
                self._api_key = config.get_api_key()
            if not self._api_key:
                raise ConfigurationError(
                    f"{config.API_KEY_ENV} environment variable is required"
                )
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    def ensure_configured(self) -> None:
        """Raise ``ConfigurationError`` now if the credential is missing."""
        self._get_client()

    async def embed(
        self, texts: list[str], *, timeout: float | None = None
    ) -> list[np.ndarray]:
        """Embed ``texts``, returning one float32 vector per text in order.

        Raises:
            ConfigurationError: If no API key is available.
            EmbeddingError: If the request fails or any input is left
                without a vector.
        """
        if not texts:
            return []
        client = self._get_client()
        safe_texts = [truncate_text(t) for t in texts]
        logger.debug("Embedding %d texts with %s", len(safe_texts), self.model)

        try:
            response = await client.embeddings.create(
                model=self.model,
                input=safe_texts,
                encoding_format="float",
                timeout=timeout if timeout is not None else self.timeout,
            )
        except OpenAIError as e:
            raise EmbeddingError(f"{type(e).__name__}: {e}") from e

        results = parse_embedding_response(response, len(safe_texts))
        failed = [i for i, r in enumerate(results) if not r.ok]
        if failed:
            raise EmbeddingError(
                f"{len(failed)} of {len(results)} inputs not embedded "
                f"(first: #{failed[0]}, {results[failed[0]].error})"
            )
        return [r.vector for r in results]  # type: ignore[misc]
