"""
Pipeline error taxonomy.

Every stage of the ingestion / retrieval pipeline raises a subclass of
KnowledgeFactoryError carrying a human-readable message and, where one
exists, the underlying library exception as ``cause`` (also chained via
``raise ... from exc``).

Fatal for the current document (converted to a failed IngestionResult):
  ExtractionError, EmptyDocumentError, NoContentError, EmbeddingError, DbError

Surfaced to the caller (never converted into an empty context):
  RetrievalError, AnswerGenerationError

Classification failures have no exception type: the classifier recovers
locally by returning default values.
"""

from __future__ import annotations


class KnowledgeFactoryError(Exception):
    """Base class for all pipeline errors."""

    error_code: str = "PIPELINE_ERROR"

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause   = cause

    def __str__(self) -> str:
        return self.message


class ExtractionError(KnowledgeFactoryError):
    """The file could not be converted to plain text."""
    error_code = "EXTRACTION_ERROR"


class EmptyDocumentError(KnowledgeFactoryError):
    """Extraction succeeded but produced only whitespace."""
    error_code = "EMPTY_DOCUMENT"


class NoContentError(KnowledgeFactoryError):
    """Chunking produced zero chunks."""
    error_code = "NO_CONTENT"


class EmbeddingError(KnowledgeFactoryError):
    """An embedding batch failed; no partial vectors are returned."""
    error_code = "EMBEDDING_ERROR"


class DbError(KnowledgeFactoryError):
    """The vector store rejected a write or query."""
    error_code = "DB_ERROR"


class RetrievalError(KnowledgeFactoryError):
    """Query embedding or similarity search failed."""
    error_code = "RETRIEVAL_ERROR"


class AnswerGenerationError(KnowledgeFactoryError):
    """The answering model call failed or timed out."""
    error_code = "ANSWER_GENERATION_ERROR"
