"""
Grounded Chat — LangChain LCEL answering step

  messages[-1].content
    │
    ▼
  RetrievalComposer        ← embed query, similarity search, context string
    │
    ▼
  ChatPromptTemplate       ← grounding system prompt + full conversation
    │
    ▼
  ChatOpenAI (gpt-4o)      ← temperature 0.7
    │
    ▼
  ChatAnswer(content, sources)

The system prompt instructs the model to answer from the retrieved context
only and to cite as [Source: filename]. When retrieval found nothing, the
context is the NO_DOCUMENTS_FOUND sentinel and the model is told it may say
it does not know.

Errors:
  RetrievalError         propagates unchanged (the caller reports it)
  AnswerGenerationError  completion failed, timed out, or returned nothing
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from knowledge_factory.core.clients import MissingAPIKeyError
from knowledge_factory.core.config import settings
from knowledge_factory.core.exceptions import AnswerGenerationError, RetrievalError
from knowledge_factory.rag.retriever import RetrievalComposer

logger = logging.getLogger(__name__)

SYSTEM_TEMPLATE = """You are "Knowledge Factory AI", a highly efficient assistant for the sales and operations team.
Use the following pieces of retrieved context to answer the user's question.
If you don't know the answer based on the context, say that you don't know, but try to be as helpful as possible using the specialized internal knowledge provided.
Always cite your sources using the [Source: filename] format.

Context:
{context}"""

VALID_ROLES = ("system", "user", "assistant")


@dataclass
class ChatMessage:
    role:    str
    content: str


@dataclass
class ChatAnswer:
    content: str
    sources: list[str] = field(default_factory=list)


def get_chat_model() -> BaseChatModel:
    """Return the configured answering model."""
    from langchain_openai import ChatOpenAI

    if not settings.openai_api_key:
        raise MissingAPIKeyError("Missing OPENAI_API_KEY environment variable")
    return ChatOpenAI(
        model=settings.chat_model,
        api_key=settings.openai_api_key,
        temperature=settings.chat_temperature,
    )


def build_prompt() -> ChatPromptTemplate:
    return ChatPromptTemplate.from_messages([
        ("system", SYSTEM_TEMPLATE),
        MessagesPlaceholder("messages"),
    ])


class ChatService:
    """
    Usage:
        service = ChatService(RetrievalComposer(store))
        answer  = await service.answer([ChatMessage("user", "What is our SLA?")])
    """

    def __init__(
        self,
        retriever: RetrievalComposer,
        llm:       Optional[BaseChatModel] = None,
        timeout_seconds: Optional[float]   = None,
    ) -> None:
        self._retriever = retriever
        self._llm       = llm
        self._timeout   = timeout_seconds if timeout_seconds is not None else settings.chat_timeout_seconds

    async def answer(self, messages: list[ChatMessage]) -> ChatAnswer:
        if not messages:
            raise RetrievalError("At least one message is required")

        t0 = time.monotonic()
        try:
            answer = await asyncio.wait_for(self._answer(messages), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Chat timed out | timeout=%gs", self._timeout)
            raise AnswerGenerationError(
                f"Answer generation timed out after {self._timeout:g} seconds", cause=exc,
            ) from exc

        logger.info(
            "Chat answered | sources=%d answer_chars=%d elapsed_ms=%.0f",
            len(answer.sources), len(answer.content), (time.monotonic() - t0) * 1000,
        )
        return answer

    async def _answer(self, messages: list[ChatMessage]) -> ChatAnswer:
        retrieval = await self._retriever.retrieve(messages[-1].content)

        try:
            llm   = self._llm or get_chat_model()
            chain = build_prompt() | llm | StrOutputParser()
            content = await chain.ainvoke({
                "context":  retrieval.context,
                "messages": [(m.role, m.content) for m in messages],
            })
        except Exception as exc:
            logger.error("Answer generation failed | error=%s: %s", type(exc).__name__, exc)
            raise AnswerGenerationError(f"Failed to generate answer: {exc}", cause=exc) from exc

        if not content:
            raise AnswerGenerationError("Failed to generate answer: model returned no content")

        return ChatAnswer(content=content, sources=retrieval.sources)
