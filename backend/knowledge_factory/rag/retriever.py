"""
Retrieval Composer

Turns a free-text question into a citation-annotated context string:

  query ─► EmbeddingPipeline.embed_query ─► store.similarity_search
        ─► "[Source: <file>]\\n<content>" blocks joined by CONTEXT_SEPARATOR

An empty result is NOT an empty string: the context becomes the
NO_DOCUMENTS_FOUND sentinel so the answering step knows retrieval came back
empty and can say so instead of answering from nothing.

Failures (embedding, store) raise RetrievalError. They never degrade into an
empty context that would look like "nothing relevant".
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from knowledge_factory.core.config import settings
from knowledge_factory.core.exceptions import KnowledgeFactoryError, RetrievalError
from knowledge_factory.processing.embeddings import EmbeddingPipeline
from knowledge_factory.vectorstore.base import RetrievalMatch, VectorStoreBase

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR  = "\n\n---\n\n"
NO_DOCUMENTS_FOUND = "No relevant documents were found in the knowledge base."


@dataclass
class RetrievalContext:
    context: str
    sources: list[str]            = field(default_factory=list)
    matches: list[RetrievalMatch] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.matches

    def unique_sources(self) -> list[str]:
        """Sources de-duplicated, first occurrence order kept."""
        return list(dict.fromkeys(self.sources))


def format_match(match: RetrievalMatch) -> str:
    return f"[Source: {match.source}]\n{match.content}"


def build_context(matches: list[RetrievalMatch]) -> str:
    if not matches:
        return NO_DOCUMENTS_FOUND
    return CONTEXT_SEPARATOR.join(format_match(m) for m in matches)


class RetrievalComposer:
    """
    Usage:
        composer = RetrievalComposer(store)
        ctx = await composer.retrieve("How do we handle chain of custody?")
        ctx.context   # prompt-ready string
        ctx.sources   # ["sop.md", "sop.md", "faq.txt"]
    """

    def __init__(
        self,
        store:    VectorStoreBase,
        embedder: Optional[EmbeddingPipeline] = None,
    ) -> None:
        self._store    = store
        self._embedder = embedder or EmbeddingPipeline()

    async def retrieve(
        self,
        query:     str,
        k:         Optional[int]   = None,
        threshold: Optional[float] = None,
    ) -> RetrievalContext:
        k         = k if k is not None else settings.match_count
        threshold = threshold if threshold is not None else settings.match_threshold

        if not query or not query.strip():
            raise RetrievalError("Query must not be empty")

        t0 = time.monotonic()
        try:
            query_embedding = await self._embedder.embed_query(query)
            matches = await self._store.similarity_search(query_embedding, threshold, k)
        except KnowledgeFactoryError as exc:
            logger.error("Retrieval failed | code=%s error=%s", exc.error_code, exc.message)
            raise RetrievalError(f"Failed to retrieve context: {exc.message}", cause=exc) from exc
        except Exception as exc:
            logger.exception("Unexpected retrieval error")
            raise RetrievalError(f"Failed to retrieve context: {exc}", cause=exc) from exc

        logger.info(
            "Retrieval | k=%d threshold=%.2f matches=%d top_score=%s elapsed_ms=%.0f",
            k, threshold, len(matches),
            f"{matches[0].similarity:.3f}" if matches else "-",
            (time.monotonic() - t0) * 1000,
        )

        return RetrievalContext(
            context=build_context(matches),
            sources=[m.source for m in matches],
            matches=matches,
        )
