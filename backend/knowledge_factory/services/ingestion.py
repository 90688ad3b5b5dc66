"""
Document Ingestion Service

Orchestrates the ingestion pipeline for one document:
  1. Extract plain text (skipped when the caller already supplies text)
  2. Classify the whole document once (best effort, never aborts)
  3. Chunk the text into overlapping windows
  4. Embed every chunk (sequential batches, one logical call)
  5. Build one record per chunk and insert them all in a single store call

Result contract:
  ingest_document() never raises. Every pipeline error, timeout or
  unexpected exception comes back as IngestionResult(success=False, error=...).

Atomicity:
  The only side effect is the final insert_many(). Extraction, chunking and
  embedding failures happen before anything is written, and the store insert
  is all-or-nothing, so a failed ingestion leaves no rows behind.

Batches:
  ingest_batch() runs files one at a time. A failing file is recorded and the
  batch moves on; results keep the input order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from knowledge_factory.core.config import settings
from knowledge_factory.core.exceptions import (
    EmptyDocumentError,
    KnowledgeFactoryError,
    NoContentError,
)
from knowledge_factory.processing.chunking import Chunk, TextChunker
from knowledge_factory.processing.classifier import Classification, DocumentClassifier
from knowledge_factory.processing.embeddings import EmbeddingPipeline
from knowledge_factory.processing.extractor import EMPTY_DOCUMENT_MESSAGE, TextExtractor
from knowledge_factory.vectorstore.base import VectorRecord, VectorStoreBase

logger = logging.getLogger(__name__)

NO_CHUNKS_MESSAGE = "No content chunks generated from document."

DocumentInput = Union[bytes, str]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class IngestionResult:
    success:        bool
    file_name:      str
    classification: Optional[Classification] = None
    chunks_count:   Optional[int]            = None
    error:          Optional[str]            = None
    elapsed_ms:     float                    = 0.0

    @classmethod
    def failed(cls, file_name: str, error: str, elapsed_ms: float = 0.0) -> "IngestionResult":
        return cls(success=False, file_name=file_name, error=error, elapsed_ms=elapsed_ms)


@dataclass
class BatchIngestionReport:
    results: list[IngestionResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def total_chunks(self) -> int:
        return sum(r.chunks_count or 0 for r in self.results if r.success)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class IngestionService:
    """
    All collaborators are injected; anything omitted is built from settings.

    Usage:
        service = IngestionService(store=get_vector_store())
        result  = await service.ingest_document(file_bytes, "handbook.pdf")
    """

    def __init__(
        self,
        store:      VectorStoreBase,
        extractor:  Optional[TextExtractor]       = None,
        chunker:    Optional[TextChunker]         = None,
        classifier: Optional[DocumentClassifier]  = None,
        embedder:   Optional[EmbeddingPipeline]   = None,
        timeout_seconds: Optional[float]          = None,
    ) -> None:
        self._store      = store
        self._extractor  = extractor or TextExtractor()
        self._chunker    = chunker or TextChunker()
        self._classifier = classifier or DocumentClassifier()
        self._embedder   = embedder or EmbeddingPipeline()
        self._timeout    = timeout_seconds if timeout_seconds is not None else settings.ingest_timeout_seconds

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def ingest_document(self, data: DocumentInput, file_name: str) -> IngestionResult:
        t0 = time.monotonic()
        logger.info("Ingestion started | file=%s", file_name)

        try:
            result = await asyncio.wait_for(self._run_pipeline(data, file_name), timeout=self._timeout)
        except asyncio.TimeoutError:
            elapsed_ms = (time.monotonic() - t0) * 1000
            logger.error("Ingestion timed out | file=%s timeout=%gs", file_name, self._timeout)
            return IngestionResult.failed(
                file_name, f"Ingestion timed out after {self._timeout:g} seconds", elapsed_ms,
            )
        except KnowledgeFactoryError as exc:
            elapsed_ms = (time.monotonic() - t0) * 1000
            logger.error(
                "Ingestion failed | file=%s code=%s error=%s",
                file_name, exc.error_code, exc.message,
            )
            return IngestionResult.failed(file_name, exc.message, elapsed_ms)
        except Exception as exc:
            elapsed_ms = (time.monotonic() - t0) * 1000
            logger.exception("Unexpected ingestion error | file=%s", file_name)
            return IngestionResult.failed(file_name, str(exc) or type(exc).__name__, elapsed_ms)

        result.elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "Ingestion complete | file=%s chunks=%d type=%s elapsed_ms=%.0f",
            file_name, result.chunks_count, result.classification.type, result.elapsed_ms,
        )
        return result

    async def ingest_batch(self, files: Sequence[tuple[str, DocumentInput]]) -> BatchIngestionReport:
        """Ingest ``(file_name, data)`` pairs one after another."""
        report = BatchIngestionReport()

        for file_name, data in files:
            report.results.append(await self.ingest_document(data, file_name))

        logger.info(
            "Batch ingestion | files=%d succeeded=%d failed=%d chunks=%d",
            len(report.results), report.succeeded, report.failed, report.total_chunks,
        )
        return report

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    async def _run_pipeline(self, data: DocumentInput, file_name: str) -> IngestionResult:
        # ---- Step 1: Extract ----------------------------------------------
        if isinstance(data, str):
            text = data
            if not text.strip():
                raise EmptyDocumentError(EMPTY_DOCUMENT_MESSAGE)
        else:
            text = await self._extractor.extract(data, file_name)

        # ---- Step 2: Classify (never raises) --------------------------------
        classification = await self._classifier.classify(text, file_name)

        # ---- Step 3: Chunk --------------------------------------------------
        chunks = self._chunker.chunk(text, source=file_name)
        if not chunks:
            raise NoContentError(NO_CHUNKS_MESSAGE)

        # ---- Step 4: Embed --------------------------------------------------
        embeddings = await self._embedder.embed([c.content for c in chunks])

        # ---- Step 5: Store --------------------------------------------------
        records = build_records(chunks, embeddings, classification, file_name)
        written = await self._store.insert_many(records)

        return IngestionResult(
            success=True,
            file_name=file_name,
            classification=classification,
            chunks_count=written,
        )


def build_records(
    chunks:         list[Chunk],
    embeddings:     list[list[float]],
    classification: Classification,
    file_name:      str,
) -> list[VectorRecord]:
    """One record per chunk, each with its own metadata dict."""
    return [
        VectorRecord(
            content=chunk.content,
            embedding=embedding,
            metadata={
                **classification.as_metadata(),
                "source":     file_name,
                "chunkIndex": chunk.index,
            },
        )
        for chunk, embedding in zip(chunks, embeddings)
    ]
