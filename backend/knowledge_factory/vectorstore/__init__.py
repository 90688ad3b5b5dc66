from knowledge_factory.vectorstore.base import RetrievalMatch, VectorRecord, VectorStoreBase
from knowledge_factory.vectorstore.factory import create_vector_store, get_vector_store

__all__ = [
    "VectorStoreBase",
    "VectorRecord",
    "RetrievalMatch",
    "create_vector_store",
    "get_vector_store",
]
