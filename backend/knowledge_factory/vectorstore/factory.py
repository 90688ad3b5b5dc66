"""
Vector Store Factory

Selects the backend (pgvector | memory) based on settings.vector_store_backend.
The rest of the app only imports get_vector_store() and never touches the
concrete classes directly.

One store instance per process: ingestion and chat must see the same rows,
which for the in-memory backend means the same object.

Usage in a FastAPI route (via dependency):
    store: VectorStoreBase = Depends(get_vector_store)
"""

from __future__ import annotations

from typing import Optional

from knowledge_factory.core.config import settings
from knowledge_factory.vectorstore.base import VectorStoreBase

VALID_BACKENDS = ("pgvector", "memory")

_store: Optional[VectorStoreBase] = None


def create_vector_store(backend: Optional[str] = None) -> VectorStoreBase:
    """Build a new store for ``backend`` (defaults to the configured one)."""
    backend = (backend or settings.vector_store_backend).lower()

    if backend == "pgvector":
        from knowledge_factory.vectorstore.pgvector_store import PgVectorStore
        return PgVectorStore()

    if backend == "memory":
        from knowledge_factory.vectorstore.memory_store import InMemoryVectorStore
        return InMemoryVectorStore(dimensions=settings.embedding_dimensions)

    raise ValueError(
        f"Unknown vector store backend: '{backend}'. "
        f"Valid options: {', '.join(repr(b) for b in VALID_BACKENDS)}"
    )


def get_vector_store() -> VectorStoreBase:
    global _store
    if _store is None:
        _store = create_vector_store()
    return _store


def reset_vector_store() -> None:
    global _store
    _store = None
