"""
Embedding Pipeline  —  Sequential Batches with Retry
════════════════════════════════════════════════════

Design goals:
  • Order preservation: embed([t1..tn]) returns [v1..vn], 1:1, for any n
  • Batch limits: at most EMBEDDING_BATCH_SIZE texts per API call (default 50)
  • All-or-nothing: any batch that cannot be embedded fails the whole call
    with EmbeddingError — chunk/vector pairing must stay 1:1, so partial
    results are discarded rather than committed
  • Token accounting: logs token usage per batch for cost monitoring

Batches are sent one after another, not concurrently. One document's
embedding load stays within the provider's rate limit and a failure is
attributable to a single batch.

Input normalisation:
  Newlines are replaced with spaces before embedding; embedding models score
  raw newlines as noise.

Retry policy:
  RateLimitError / APIConnectionError / APITimeoutError / 5xx
      → wait RETRY_BASE_DELAY × 2^attempt, up to settings.embedding_max_retries
  anything else (auth, 4xx, missing key, bugs)
      → fail immediately
  The shared client is built with max_retries=0, so these are the only retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Sequence

import openai

from knowledge_factory.core.clients import get_openai_client
from knowledge_factory.core.config import settings
from knowledge_factory.core.exceptions import EmbeddingError

logger = logging.getLogger(__name__)

RETRY_MAX_DELAY = 30.0   # seconds, cap on a single back-off sleep

_RETRYABLE: tuple[type[BaseException], ...] = (
    openai.RateLimitError,
    openai.APIConnectionError,   # includes APITimeoutError
    openai.InternalServerError,
)


def normalize_for_embedding(text: str) -> str:
    return text.replace("\n", " ")


class EmbeddingPipeline:
    """
    Stateless embedding pipeline.

    Usage:
        pipeline = EmbeddingPipeline()
        vectors  = await pipeline.embed([chunk.content for chunk in chunks])
        query_v  = await pipeline.embed_query("What is the refund policy?")
    """

    def __init__(
        self,
        client=None,
        model:            str | None   = None,
        batch_size:       int | None   = None,
        max_retries:      int | None   = None,
        retry_base_delay: float | None = None,
    ) -> None:
        self._client           = client
        self._model            = model or settings.embedding_model
        self._batch_size       = batch_size or settings.embedding_batch_size
        self._max_retries      = max_retries if max_retries is not None else settings.embedding_max_retries
        self._retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else settings.embedding_retry_base_delay
        )

        if self._batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self._batch_size}")

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed ``texts`` in order.

        Raises:
            EmbeddingError: a batch failed after retries, or returned the
                            wrong number of vectors
        """
        if not texts:
            return []

        t0 = time.monotonic()
        inputs  = [normalize_for_embedding(t) for t in texts]
        batches = [
            inputs[i : i + self._batch_size]
            for i in range(0, len(inputs), self._batch_size)
        ]

        logger.info(
            "EmbeddingPipeline | texts=%d batches=%d batch_size=%d model=%s",
            len(inputs), len(batches), self._batch_size, self._model,
        )

        vectors: list[list[float]] = []
        total_tokens = 0

        for batch_idx, batch in enumerate(batches):
            batch_vectors, tokens = await self._embed_batch_with_retry(batch, batch_idx)
            if len(batch_vectors) != len(batch):
                raise EmbeddingError(
                    f"AI Embedding failed: batch {batch_idx} returned "
                    f"{len(batch_vectors)} vectors for {len(batch)} inputs"
                )
            vectors.extend(batch_vectors)
            total_tokens += tokens

        logger.info(
            "EmbeddingPipeline done | vectors=%d tokens=%d elapsed_ms=%.0f",
            len(vectors), total_tokens, (time.monotonic() - t0) * 1000,
        )
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single query string with the same model used at ingestion."""
        vectors = await self.embed([text])
        return vectors[0]

    # ------------------------------------------------------------------
    # Batch processing with retry
    # ------------------------------------------------------------------

    async def _embed_batch_with_retry(
        self,
        batch:     list[str],
        batch_idx: int,
    ) -> tuple[list[list[float]], int]:
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            if attempt > 0:
                delay = min(self._retry_base_delay * (2 ** (attempt - 1)), RETRY_MAX_DELAY)
                logger.warning(
                    "Embedding retry | batch=%d attempt=%d delay=%.1fs error=%s",
                    batch_idx, attempt, delay, last_error,
                )
                await asyncio.sleep(delay)

            try:
                return await self._call_openai(batch, batch_idx)
            except _RETRYABLE as exc:
                last_error = exc
                logger.warning(
                    "Retryable embedding error | batch=%d attempt=%d error=%s: %s",
                    batch_idx, attempt, type(exc).__name__, exc,
                )
            except Exception as exc:
                logger.error(
                    "Non-retryable embedding error | batch=%d error=%s: %s",
                    batch_idx, type(exc).__name__, exc,
                )
                raise EmbeddingError(f"AI Embedding failed: {exc}", cause=exc) from exc

        raise EmbeddingError(
            f"AI Embedding failed: {last_error}", cause=last_error,
        ) from last_error

    async def _call_openai(
        self,
        batch:     list[str],
        batch_idx: int,
    ) -> tuple[list[list[float]], int]:
        client = self._client or get_openai_client()
        t_api  = time.monotonic()

        response = await client.embeddings.create(model=self._model, input=batch)

        usage  = getattr(response, "usage", None)
        tokens = getattr(usage, "total_tokens", 0) or 0

        # Items carry their input index
        data = sorted(response.data, key=lambda item: getattr(item, "index", 0))

        logger.debug(
            "OpenAI embeddings | batch=%d size=%d tokens=%d api_ms=%.0f",
            batch_idx, len(batch), tokens, (time.monotonic() - t_api) * 1000,
        )
        return [list(item.embedding) for item in data], tokens
