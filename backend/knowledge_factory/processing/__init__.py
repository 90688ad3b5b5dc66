"""
Document Processing Package
════════════════════════════

The per-document stages of the ingestion pipeline:

  Text Extraction → Classification → Chunking → Embedding

Modules
───────
  extractor.py   Bytes → plain text (python-docx, PyMuPDF, UTF-8)
  classifier.py  Best-effort document classification (type, tags, summary, priority)
  chunking.py    Overlapping character chunker with newline/space break points
  embeddings.py  Sequential batch embedding pipeline with retry logic

Every component is stateless and dependency-injected; the orchestration
lives in services/ingestion.py.
"""

from knowledge_factory.processing.chunking import Chunk, TextChunker, chunk_text
from knowledge_factory.processing.classifier import Classification, DocumentClassifier
from knowledge_factory.processing.embeddings import EmbeddingPipeline
from knowledge_factory.processing.extractor import ExtractionResult, TextExtractor

__all__ = [
    "Chunk",
    "TextChunker",
    "chunk_text",
    "Classification",
    "DocumentClassifier",
    "EmbeddingPipeline",
    "ExtractionResult",
    "TextExtractor",
]
