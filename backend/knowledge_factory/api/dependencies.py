"""
FastAPI dependency providers.

Routes never construct services themselves; they declare these with
``Depends`` so tests can swap any layer through ``app.dependency_overrides``:

    app.dependency_overrides[get_store] = lambda: InMemoryVectorStore()
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from knowledge_factory.rag.chat import ChatService
from knowledge_factory.rag.retriever import RetrievalComposer
from knowledge_factory.services.ingestion import IngestionService
from knowledge_factory.vectorstore.base import VectorStoreBase
from knowledge_factory.vectorstore.factory import get_vector_store


def get_store() -> VectorStoreBase:
    return get_vector_store()


def get_ingestion_service(store: VectorStoreBase = Depends(get_store)) -> IngestionService:
    return IngestionService(store=store)


def get_retriever(store: VectorStoreBase = Depends(get_store)) -> RetrievalComposer:
    return RetrievalComposer(store)


def get_chat_service(retriever: RetrievalComposer = Depends(get_retriever)) -> ChatService:
    return ChatService(retriever)


Store      = Annotated[VectorStoreBase, Depends(get_store)]
Ingestion  = Annotated[IngestionService, Depends(get_ingestion_service)]
Chat       = Annotated[ChatService, Depends(get_chat_service)]
