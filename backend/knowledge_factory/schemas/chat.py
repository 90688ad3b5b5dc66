"""Chat request/response schemas for POST /api/v1/chat."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from knowledge_factory.rag.chat import ChatAnswer, ChatMessage


class ChatMessageIn(BaseModel):
    role:    Literal["system", "user", "assistant"]
    content: str = Field(..., min_length=1)

    @field_validator("content")
    @classmethod
    def _strip_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content must not be blank")
        return v

    def to_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn] = Field(..., min_length=1, description="Conversation so far; the last message is the question")


class ChatResponse(BaseModel):
    content: str
    sources: list[str] = Field(default_factory=list, description="Source file per retrieved chunk, in rank order")

    @classmethod
    def from_answer(cls, answer: ChatAnswer) -> "ChatResponse":
        return cls(content=answer.content, sources=list(answer.sources))
