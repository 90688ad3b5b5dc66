"""
PostgreSQL + pgvector Vector Store
══════════════════════════════════

Production backend. Chunks are rows of the ``documents`` table
(models/documents.py); search uses pgvector's cosine distance operator.

  similarity = 1 - (embedding <=> query)

Inserts:
  All rows of one ingestion go into a single transaction. A constraint
  violation, a dimension mismatch or a dropped connection rolls the whole
  batch back and surfaces as DbError, so a document is either fully
  searchable or not present at all.

Search:
  WHERE similarity >= threshold ORDER BY distance ASC LIMIT k
  The ordering column is the raw distance so an HNSW/IVFFlat index on
  ``embedding vector_cosine_ops`` can serve the query.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_factory.core.exceptions import DbError
from knowledge_factory.db.session import check_db_health, get_session_factory
from knowledge_factory.models.documents import DocumentChunk
from knowledge_factory.vectorstore.base import RetrievalMatch, VectorRecord, VectorStoreBase

logger = logging.getLogger(__name__)


class PgVectorStore(VectorStoreBase):

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._session_factory = session_factory

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert_many(self, records: list[VectorRecord]) -> int:
        if not records:
            return 0

        t0 = time.monotonic()
        try:
            async with self._sessions()() as session:
                async with session.begin():
                    session.add_all([
                        DocumentChunk(
                            content=r.content,
                            chunk_metadata=r.metadata,
                            embedding=r.embedding,
                        )
                        for r in records
                    ])
                # Transaction commits on exiting begin(); rolls back on error
        except SQLAlchemyError as exc:
            logger.error("pgvector insert failed | rows=%d error=%s", len(records), exc)
            raise DbError(f"Database insertion failed: {exc}", cause=exc) from exc

        logger.info(
            "pgvector insert | rows=%d elapsed_ms=%.0f",
            len(records), (time.monotonic() - t0) * 1000,
        )
        return len(records)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def similarity_search(
        self,
        query_embedding: list[float],
        threshold: float,
        limit: int,
    ) -> list[RetrievalMatch]:
        distance = DocumentChunk.embedding.cosine_distance(query_embedding)
        similarity = (1 - distance).label("similarity")

        stmt = (
            select(DocumentChunk.content, DocumentChunk.chunk_metadata, similarity)
            .where(1 - distance >= threshold)
            .order_by(distance)
            .limit(limit)
        )

        try:
            async with self._sessions()() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            logger.error("pgvector search failed | error=%s", exc)
            raise DbError(f"Similarity search failed: {exc}", cause=exc) from exc

        return [
            RetrievalMatch(
                content=row.content,
                metadata=dict(row.chunk_metadata or {}),
                similarity=float(row.similarity),
            )
            for row in rows
        ]

    async def count(self, source: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(DocumentChunk)
        if source is not None:
            stmt = stmt.where(DocumentChunk.chunk_metadata["source"].astext == source)

        try:
            async with self._sessions()() as session:
                return int((await session.execute(stmt)).scalar_one())
        except SQLAlchemyError as exc:
            raise DbError(f"Count failed: {exc}", cause=exc) from exc

    async def health(self) -> dict:
        status = await check_db_health()
        return {**status, "backend": "pgvector"}
