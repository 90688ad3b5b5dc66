"""
SQLAlchemy ORM Model — Document Chunks

One row per embedded chunk. The table keeps the shape the retrieval side
reads: ``content``, a JSONB ``metadata`` payload and the ``embedding``
vector, plus a surrogate id and insertion timestamp.

metadata payload (written once at ingestion, never updated):
    type, tags, summary, priority   — document-level classification
    source                          — original file name
    chunkIndex                      — 0-based position within the document

The Python attribute is ``chunk_metadata`` because ``metadata`` is reserved
on declarative classes; the column itself is still named ``metadata``.
"""

from __future__ import annotations

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import BigInteger, DateTime, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from knowledge_factory.core.config import settings


class Base(DeclarativeBase):
    pass


class DocumentChunk(Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    chunk_metadata: Mapped[dict] = mapped_column(
        "metadata", JSONB, nullable=False, server_default="{}",
    )

    embedding: Mapped[list[float]] = mapped_column(
        Vector(settings.embedding_dimensions), nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentChunk id={self.id} "
            f"source={self.chunk_metadata.get('source') if self.chunk_metadata else None!r}>"
        )
