"""
Unit Tests — ChatService
════════════════════════
The chat model is replaced by LangChain's FakeListChatModel or a recording
RunnableLambda; retrieval runs against the in-memory store.
"""

from __future__ import annotations

import asyncio

import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_core.runnables import RunnableLambda

from knowledge_factory.core.exceptions import AnswerGenerationError, RetrievalError
from knowledge_factory.rag.chat import ChatMessage, ChatService
from knowledge_factory.rag.retriever import NO_DOCUMENTS_FOUND
from knowledge_factory.vectorstore.base import VectorRecord


class _RecordingModel:
    """Captures the prompt messages the chain sends and answers with a fixed text."""

    def __init__(self, answer: str = "Recorded answer [Source: refunds.md]") -> None:
        self.answer = answer
        self.calls: list = []

    def runnable(self) -> RunnableLambda:
        def _respond(prompt_value):
            self.calls.append(prompt_value.to_messages())
            return self.answer
        return RunnableLambda(_respond)


async def _seed_refunds(store, embed_text) -> None:
    content = "refund policy thirty days"
    await store.insert_many([
        VectorRecord(content=content, embedding=embed_text(content), metadata={"source": "refunds.md", "chunkIndex": 0}),
    ])


@pytest.mark.unit
@pytest.mark.retrieval
class TestChatService:

    async def test_answer_with_sources(self, make_retriever, memory_store, embed_text):
        await _seed_refunds(memory_store, embed_text)
        llm = FakeListChatModel(responses=["Refunds are accepted for 30 days [Source: refunds.md]."])
        service = ChatService(make_retriever(), llm=llm)

        answer = await service.answer([ChatMessage("user", "refund policy thirty days")])

        assert answer.content == "Refunds are accepted for 30 days [Source: refunds.md]."
        assert answer.sources == ["refunds.md"]

    async def test_prompt_contains_context_and_full_conversation(
        self, make_retriever, memory_store, embed_text,
    ):
        await _seed_refunds(memory_store, embed_text)
        recorder = _RecordingModel()
        service = ChatService(make_retriever(), llm=recorder.runnable())

        await service.answer([
            ChatMessage("user", "hi"),
            ChatMessage("assistant", "Hello! How can I help?"),
            ChatMessage("user", "refund policy thirty days"),
        ])

        [messages] = recorder.calls
        assert messages[0].type == "system"
        assert "[Source: refunds.md]\nrefund policy thirty days" in messages[0].content
        assert "[Source: filename]" in messages[0].content
        assert [m.type for m in messages[1:]] == ["human", "ai", "human"]
        assert messages[-1].content == "refund policy thirty days"

    async def test_empty_retrieval_passes_sentinel_to_model(self, make_retriever):
        recorder = _RecordingModel("I don't know.")
        service = ChatService(make_retriever(), llm=recorder.runnable())

        answer = await service.answer([ChatMessage("user", "something never ingested")])

        assert NO_DOCUMENTS_FOUND in recorder.calls[0][0].content
        assert answer.sources == []

    async def test_model_failure_raises_answer_generation_error(self, make_retriever):
        def _boom(_):
            raise RuntimeError("model overloaded")

        service = ChatService(make_retriever(), llm=RunnableLambda(_boom))

        with pytest.raises(AnswerGenerationError, match="model overloaded"):
            await service.answer([ChatMessage("user", "question")])

    async def test_empty_model_output_is_an_error(self, make_retriever):
        service = ChatService(make_retriever(), llm=FakeListChatModel(responses=[""]))

        with pytest.raises(AnswerGenerationError):
            await service.answer([ChatMessage("user", "question")])

    async def test_retrieval_failure_propagates(self, make_retriever, fake_openai):
        fake_openai.embeddings.create.side_effect = ConnectionError("down")
        service = ChatService(make_retriever(), llm=FakeListChatModel(responses=["unused"]))

        with pytest.raises(RetrievalError):
            await service.answer([ChatMessage("user", "question")])

    async def test_timeout_raises_answer_generation_error(self, make_retriever):
        async def _slow(_):
            await asyncio.sleep(5)
            return "late"

        service = ChatService(make_retriever(), llm=RunnableLambda(_slow), timeout_seconds=0.05)

        with pytest.raises(AnswerGenerationError, match="timed out after 0.05 seconds"):
            await service.answer([ChatMessage("user", "question")])

    async def test_no_messages_rejected(self, make_retriever):
        with pytest.raises(RetrievalError):
            await ChatService(make_retriever(), llm=FakeListChatModel(responses=["x"])).answer([])
