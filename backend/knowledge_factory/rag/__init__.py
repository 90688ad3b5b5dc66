"""
RAG package — retrieval and grounded answering.

LangChain is only imported by rag.chat, so ingestion-only code paths and
the retriever tests don't load it.
"""

from knowledge_factory.rag.retriever import NO_DOCUMENTS_FOUND, RetrievalComposer, RetrievalContext

__all__ = [
    "NO_DOCUMENTS_FOUND",
    "RetrievalComposer",
    "RetrievalContext",
    # ChatService, ChatAnswer: import directly from knowledge_factory.rag.chat
]
