"""
Vector Store — Abstract Base

Every concrete backend (pgvector, in-memory) implements this interface.
Ingestion and retrieval only speak this protocol, so backends are swappable
without touching the pipeline or the API.

Contract (enforced by ALL implementations):
  - insert_many() is all-or-nothing: either every record becomes visible
    to similarity_search(), or none does and DbError is raised.
  - similarity_search() returns only matches with similarity >= threshold,
    sorted by similarity, highest first, at most ``limit`` of them.
  - Similarity is cosine similarity in [-1, 1]; higher = more similar.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass
class VectorRecord:
    """A single chunk row to insert into the store."""
    content:   str
    embedding: list[float]
    metadata:  dict = field(default_factory=dict)
    # Keys inside metadata written by ingestion:
    # - type, tags, summary, priority   (classification)
    # - source: str                     (original file name)
    # - chunkIndex: int


@dataclass
class RetrievalMatch:
    """One result returned from a similarity search."""
    content:    str
    metadata:   dict
    similarity: float

    @property
    def source(self) -> str:
        return str(self.metadata.get("source") or "unknown")


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class VectorStoreBase(ABC):

    @abstractmethod
    async def insert_many(self, records: list[VectorRecord]) -> int:
        """
        Insert every record in one atomic operation.
        Returns the number of rows written.

        Raises:
            DbError: nothing was written
        """

    @abstractmethod
    async def similarity_search(
        self,
        query_embedding: list[float],
        threshold: float,
        limit: int,
    ) -> list[RetrievalMatch]:
        """Nearest neighbours at or above ``threshold``, best first."""

    @abstractmethod
    async def count(self, source: Optional[str] = None) -> int:
        """Total rows, or rows whose metadata.source equals ``source``."""

    @abstractmethod
    async def health(self) -> dict:
        """{"status": "ok"} or {"status": "error", "detail": ...}"""

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
