"""
Lazy OpenAI client factory.

The client is only constructed when a pipeline stage first needs it, so the
app (and the test-suite) can import every module without an API key set.
A missing key surfaces at call time, inside the stage that needed it, where
the stage's own error policy applies (fallback for classification,
EmbeddingError for embeddings, ...).
"""

from __future__ import annotations

import logging

from openai import AsyncOpenAI

from knowledge_factory.core.config import settings

logger = logging.getLogger(__name__)

_client: AsyncOpenAI | None = None


class MissingAPIKeyError(RuntimeError):
    pass


def get_openai_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        if not settings.openai_api_key:
            raise MissingAPIKeyError("Missing OPENAI_API_KEY environment variable")
        # SDK retries off: each stage owns its retry or fallback policy
        _client = AsyncOpenAI(api_key=settings.openai_api_key, max_retries=0)
        logger.info("OpenAI client initialised")
    return _client


def is_openai_configured() -> bool:
    return bool(settings.openai_api_key)
