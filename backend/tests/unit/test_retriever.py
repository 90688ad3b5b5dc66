"""
Unit Tests — RetrievalComposer
══════════════════════════════
Coverage targets:
  ✅ Matches rendered as "[Source: x]\\n<content>" joined by the separator
  ✅ Sources ordered by rank, duplicates kept
  ✅ No match above threshold → NO_DOCUMENTS_FOUND sentinel (never "")
  ✅ Embedding / store failures → RetrievalError
  ✅ Blank query → RetrievalError
  ✅ k and threshold default to settings
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from knowledge_factory.core.exceptions import DbError, RetrievalError
from knowledge_factory.rag.retriever import (
    CONTEXT_SEPARATOR,
    NO_DOCUMENTS_FOUND,
    RetrievalContext,
    build_context,
)
from knowledge_factory.vectorstore.base import RetrievalMatch, VectorRecord


async def _seed(store, embed_text, docs: list[tuple[str, str]]) -> None:
    await store.insert_many([
        VectorRecord(content=content, embedding=embed_text(content), metadata={"source": source, "chunkIndex": i})
        for i, (source, content) in enumerate(docs)
    ])


@pytest.mark.unit
@pytest.mark.retrieval
class TestRetrievalComposer:

    async def test_context_formatted_with_citations(self, make_retriever, memory_store, embed_text):
        await _seed(memory_store, embed_text, [
            ("refunds.md", "refund policy thirty days"),
            ("shipping.md", "shipping takes five days"),
        ])

        ctx = await make_retriever().retrieve("refund policy thirty days", threshold=0.9)

        assert ctx.context == "[Source: refunds.md]\nrefund policy thirty days"
        assert ctx.sources == ["refunds.md"]
        assert ctx.matches[0].similarity == pytest.approx(1.0)

    async def test_multiple_matches_joined_in_rank_order(self, make_retriever, memory_store, embed_text):
        await _seed(memory_store, embed_text, [
            ("a.md", "evidence barcode intake"),
            ("b.md", "evidence barcode intake audit"),
            ("a.md", "evidence barcode"),
        ])

        ctx = await make_retriever().retrieve("evidence barcode intake", k=5, threshold=-1.0)

        blocks = ctx.context.split(CONTEXT_SEPARATOR)
        assert len(blocks) == 3
        assert blocks[0] == "[Source: a.md]\nevidence barcode intake"
        assert ctx.sources[0] == "a.md"
        assert sorted(ctx.sources) == ["a.md", "a.md", "b.md"]
        assert ctx.unique_sources() == list(dict.fromkeys(ctx.sources))

    async def test_no_match_above_threshold_yields_sentinel(self, make_retriever):
        store = MagicMock()
        store.similarity_search = AsyncMock(return_value=[])

        ctx = await make_retriever(store=store).retrieve("anything", k=5, threshold=0.99)

        assert ctx.context == NO_DOCUMENTS_FOUND
        assert ctx.context != ""
        assert ctx.sources == []
        assert ctx.is_empty

    async def test_sentinel_when_best_match_is_below_threshold(self, make_retriever):
        # Vectors chosen so the only stored row scores exactly 0.4 against the query
        from knowledge_factory.vectorstore.memory_store import InMemoryVectorStore

        store = InMemoryVectorStore(dimensions=2)
        await store.insert_many([
            VectorRecord(content="weak", embedding=[0.4, 0.916515138991168], metadata={"source": "w.md"}),
        ])
        embedder = MagicMock()
        embedder.embed_query = AsyncMock(return_value=[1.0, 0.0])

        from knowledge_factory.rag.retriever import RetrievalComposer
        composer = RetrievalComposer(store, embedder=embedder)

        best = await store.similarity_search([1.0, 0.0], threshold=-1.0, limit=1)
        assert best[0].similarity == pytest.approx(0.4)

        ctx = await composer.retrieve("query", k=5, threshold=0.99)

        assert ctx.context == NO_DOCUMENTS_FOUND

    async def test_store_called_with_k_and_threshold(self, make_retriever, embed_text):
        store = MagicMock()
        store.similarity_search = AsyncMock(return_value=[])

        await make_retriever(store=store).retrieve("question", k=3, threshold=0.7)

        store.similarity_search.assert_awaited_once_with(embed_text("question"), 0.7, 3)

    async def test_defaults_from_settings(self, make_retriever):
        store = MagicMock()
        store.similarity_search = AsyncMock(return_value=[])

        await make_retriever(store=store).retrieve("question")

        _, threshold, limit = store.similarity_search.call_args.args
        assert threshold == 0.5
        assert limit == 5

    async def test_embedding_failure_raises_retrieval_error(self, make_retriever, fake_openai):
        fake_openai.embeddings.create.side_effect = ConnectionError("down")

        with pytest.raises(RetrievalError, match="Failed to retrieve context"):
            await make_retriever().retrieve("question")

    async def test_store_failure_raises_retrieval_error(self, make_retriever):
        store = MagicMock()
        store.similarity_search = AsyncMock(side_effect=DbError("Similarity search failed: timeout"))

        with pytest.raises(RetrievalError) as exc_info:
            await make_retriever(store=store).retrieve("question")

        assert isinstance(exc_info.value.cause, DbError)

    @pytest.mark.parametrize("query", ["", "   ", "\n"])
    async def test_blank_query_rejected(self, make_retriever, query):
        with pytest.raises(RetrievalError):
            await make_retriever().retrieve(query)


@pytest.mark.unit
@pytest.mark.retrieval
class TestBuildContext:

    def test_empty_matches_give_sentinel(self):
        assert build_context([]) == NO_DOCUMENTS_FOUND

    def test_missing_source_rendered_as_unknown(self):
        match = RetrievalMatch(content="body", metadata={}, similarity=0.8)

        assert build_context([match]) == "[Source: unknown]\nbody"

    def test_context_dataclass_defaults(self):
        ctx = RetrievalContext(context=NO_DOCUMENTS_FOUND)

        assert ctx.sources == []
        assert ctx.is_empty
