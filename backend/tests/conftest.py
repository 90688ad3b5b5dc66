"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : memory_store, fake_openai, make_service, sample_* files

Environment strategy:
  - The in-memory vector store backs every test; no PostgreSQL needed.
  - OpenAI is never called: fake_openai is a MagicMock whose embeddings and
    chat-completion methods are AsyncMocks with deterministic outputs.
  - Sample DOCX / PDF files are generated with python-docx and PyMuPDF.

How to run:
  pytest                                  # all tests
  pytest -m unit                          # unit tests only (fast, no I/O)
  pytest -m integration                   # HTTP-level tests through the ASGI app
  pytest backend/tests/unit/test_chunking.py
"""

from __future__ import annotations

import io
import json
import math
import os
import re
import zlib
from types import SimpleNamespace
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient

# ─────────────────────────────────────────────────────────────────────────────
# Patch settings BEFORE any app imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("VECTOR_STORE_BACKEND",       "memory")
os.environ.setdefault("OPENAI_API_KEY",             "sk-test-key")
os.environ.setdefault("APP_ENV",                    "development")
os.environ.setdefault("DEBUG",                      "false")
os.environ.setdefault("EMBEDDING_RETRY_BASE_DELAY", "0")


TEST_DIMENSIONS = 16

DEFAULT_CLASSIFICATION = {
    "type":     "SOP",
    "tags":     ["Evidence", "Chain of Custody"],
    "summary":  "How evidence is checked in and out.",
    "priority": 4,
}


# ─────────────────────────────────────────────────────────────────────────────
# Deterministic embeddings
# ─────────────────────────────────────────────────────────────────────────────

def bag_of_words_embedding(text: str, dims: int = TEST_DIMENSIONS) -> list[float]:
    """
    Stable, normalised bag-of-words vector. Texts sharing words score a high
    cosine similarity; texts with no words in common score ~0.
    """
    vector = [0.0] * dims
    for word in re.findall(r"[a-z0-9]+", text.lower()):
        vector[zlib.crc32(word.encode()) % dims] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        vector[0] = 1.0
        return vector
    return [v / norm for v in vector]


def embedding_response(texts: list[str], dims: int = TEST_DIMENSIONS) -> SimpleNamespace:
    return SimpleNamespace(
        data=[
            SimpleNamespace(index=i, embedding=bag_of_words_embedding(t, dims))
            for i, t in enumerate(texts)
        ],
        usage=SimpleNamespace(total_tokens=sum(len(t.split()) for t in texts)),
    )


def completion_response(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
    )


@pytest.fixture
def default_classification() -> dict:
    """What the fake classifier returns for every document."""
    return dict(DEFAULT_CLASSIFICATION)


@pytest.fixture
def embed_text():
    """The embedding function the fake OpenAI client uses."""
    return bag_of_words_embedding


@pytest.fixture
def make_completion():
    return completion_response


# ─────────────────────────────────────────────────────────────────────────────
# Fake OpenAI client
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_openai():
    """
    MagicMock standing in for AsyncOpenAI.

      client.embeddings.create(model=..., input=[...])  → one vector per input
      client.chat.completions.create(...)                → DEFAULT_CLASSIFICATION JSON

    Override per test, e.g.:
      fake_openai.embeddings.create.side_effect = RuntimeError("boom")
    """
    client = MagicMock()

    async def _embed(model, input, **kwargs):
        return embedding_response(list(input))

    client.embeddings.create = AsyncMock(side_effect=_embed)
    client.chat.completions.create = AsyncMock(
        return_value=completion_response(json.dumps(DEFAULT_CLASSIFICATION)),
    )
    return client


# ─────────────────────────────────────────────────────────────────────────────
# Store + service factories
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def memory_store():
    from knowledge_factory.vectorstore.memory_store import InMemoryVectorStore
    return InMemoryVectorStore(dimensions=TEST_DIMENSIONS)


@pytest.fixture
def make_service(memory_store, fake_openai):
    """Factory: build an IngestionService wired to the fake client and memory store."""
    def _build(
        store=None, client=None, max_chars=2000, overlap=200,
        timeout_seconds=None, classifier_timeout=None,
    ):
        from knowledge_factory.processing.chunking import TextChunker
        from knowledge_factory.processing.classifier import DocumentClassifier
        from knowledge_factory.processing.embeddings import EmbeddingPipeline
        from knowledge_factory.services.ingestion import IngestionService

        client = client or fake_openai
        return IngestionService(
            store=store or memory_store,
            chunker=TextChunker(max_chars=max_chars, overlap=overlap),
            classifier=DocumentClassifier(client=client, timeout_seconds=classifier_timeout),
            embedder=EmbeddingPipeline(client=client, retry_base_delay=0),
            timeout_seconds=timeout_seconds,
        )
    return _build


@pytest.fixture
def make_retriever(memory_store, fake_openai):
    def _build(store=None, client=None):
        from knowledge_factory.processing.embeddings import EmbeddingPipeline
        from knowledge_factory.rag.retriever import RetrievalComposer

        return RetrievalComposer(
            store or memory_store,
            embedder=EmbeddingPipeline(client=client or fake_openai, retry_base_delay=0),
        )
    return _build


# ─────────────────────────────────────────────────────────────────────────────
# Sample file bytes
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_txt_bytes() -> bytes:
    return (
        "Chain of custody procedure.\n"
        "Every evidence item is scanned on intake and on every transfer.\n"
    ).encode("utf-8")


@pytest.fixture
def sample_docx_bytes() -> bytes:
    """Real DOCX with three paragraphs, built with python-docx."""
    import docx

    document = docx.Document()
    document.add_paragraph("Evidence Room Handbook")
    document.add_paragraph("Barcode every item at intake.")
    document.add_paragraph("Audit the room quarterly.")
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def sample_pdf_bytes() -> bytes:
    """Real two-page PDF with a text layer, built with PyMuPDF."""
    import fitz

    doc = fitz.open()
    for text in ("Product manual page one.", "Warranty terms on page two."):
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


# ─────────────────────────────────────────────────────────────────────────────
# FastAPI test client with service dependency overrides
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def app_with_overrides(memory_store, make_service, make_retriever):
    """
    FastAPI app with every external dependency overridden:
      - get_store             → memory_store
      - get_ingestion_service → IngestionService on the fake OpenAI client
      - get_retriever         → RetrievalComposer on the fake OpenAI client

    The chat model is not overridden here; chat tests override
    get_chat_service with a fake LangChain model.
    """
    from knowledge_factory.api.dependencies import get_ingestion_service, get_retriever, get_store
    from knowledge_factory.main import create_app

    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_store]             = lambda: memory_store
    app.dependency_overrides[get_ingestion_service] = lambda: make_service()
    app.dependency_overrides[get_retriever]         = lambda: make_retriever()

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app_with_overrides) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client using the overridden app."""
    from httpx import ASGITransport
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
