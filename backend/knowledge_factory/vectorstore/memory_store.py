"""
In-Memory Vector Store
══════════════════════

Process-local backend for development, demos and the test-suite. Rows live
in a Python list; similarity is brute-force cosine similarity over a numpy
matrix built per query.

All-or-nothing inserts:
  Every record in a batch is validated (content present, embedding the right
  dimension, finite values) BEFORE any of them is appended. One bad record
  rejects the whole batch with DbError and the store is left unchanged.

An asyncio.Lock serialises inserts against searches, so a search never
observes half of a batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import numpy as np

from knowledge_factory.core.exceptions import DbError
from knowledge_factory.vectorstore.base import RetrievalMatch, VectorRecord, VectorStoreBase

logger = logging.getLogger(__name__)


class InMemoryVectorStore(VectorStoreBase):
    """
    Usage:
        store = InMemoryVectorStore(dimensions=1536)
        await store.insert_many(records)
        matches = await store.similarity_search(query_vector, threshold=0.5, limit=5)
    """

    def __init__(self, dimensions: Optional[int] = None) -> None:
        # None → dimension fixed by the first inserted record
        self._dimensions = dimensions
        self._rows: list[VectorRecord] = []
        self._lock = asyncio.Lock()

    @property
    def dimensions(self) -> Optional[int]:
        return self._dimensions

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_many(self, records: list[VectorRecord]) -> int:
        if not records:
            return 0

        async with self._lock:
            dimensions = self._dimensions or len(records[0].embedding)
            for position, record in enumerate(records):
                self._validate(record, position, dimensions)

            self._dimensions = dimensions
            self._rows.extend(
                VectorRecord(
                    content=r.content,
                    embedding=[float(x) for x in r.embedding],
                    metadata=dict(r.metadata),
                )
                for r in records
            )

        logger.info("InMemoryVectorStore insert | rows=%d total=%d", len(records), len(self._rows))
        return len(records)

    @staticmethod
    def _validate(record: VectorRecord, position: int, dimensions: int) -> None:
        if not record.content:
            raise DbError(f"Database insertion failed: record {position} has no content")
        if len(record.embedding) != dimensions:
            raise DbError(
                f"Database insertion failed: record {position} has embedding dimension "
                f"{len(record.embedding)}, expected {dimensions}"
            )
        if not np.all(np.isfinite(np.asarray(record.embedding, dtype=float))):
            raise DbError(f"Database insertion failed: record {position} has non-finite embedding values")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def similarity_search(
        self,
        query_embedding: list[float],
        threshold: float,
        limit: int,
    ) -> list[RetrievalMatch]:
        async with self._lock:
            rows = list(self._rows)

        if not rows or limit <= 0:
            return []

        query = np.asarray(query_embedding, dtype=float)
        if query.shape[0] != len(rows[0].embedding):
            raise DbError(
                f"Query embedding dimension {query.shape[0]} does not match "
                f"stored dimension {len(rows[0].embedding)}"
            )

        matrix = np.asarray([r.embedding for r in rows], dtype=float)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(norms > 0, (matrix @ query) / norms, 0.0)

        # Stable sort keeps insertion order between equal scores
        order = np.argsort(-scores, kind="stable")

        matches: list[RetrievalMatch] = []
        for idx in order:
            score = float(scores[idx])
            if score < threshold:
                break
            row = rows[idx]
            matches.append(RetrievalMatch(
                content=row.content,
                metadata=dict(row.metadata),
                similarity=score,
            ))
            if len(matches) >= limit:
                break
        return matches

    async def count(self, source: Optional[str] = None) -> int:
        async with self._lock:
            if source is None:
                return len(self._rows)
            return sum(1 for r in self._rows if r.metadata.get("source") == source)

    async def health(self) -> dict:
        return {"status": "ok", "backend": "memory", "rows": len(self._rows)}

    async def clear(self) -> None:
        async with self._lock:
            self._rows.clear()
