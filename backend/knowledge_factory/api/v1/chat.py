"""
Chat API — grounded Q&A over the knowledge base

POST /api/v1/chat   {"messages": [{"role": "user", "content": "..."}]}
                 → {"content": "...", "sources": ["faq.md", ...]}

The last message is the question. Retrieval or answer-generation failures
are reported as 502 with an ErrorResponse; the route never answers without
having looked at the knowledge base.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from knowledge_factory.api.dependencies import Chat
from knowledge_factory.core.exceptions import KnowledgeFactoryError
from knowledge_factory.schemas.chat import ChatRequest, ChatResponse
from knowledge_factory.schemas.documents import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["Chat"])


@router.post(
    "",
    response_model=ChatResponse,
    summary="Answer a question from the knowledge base",
    responses={
        200: {"model": ChatResponse, "description": "Grounded answer with sources"},
        422: {"model": ErrorResponse, "description": "Malformed message list"},
        502: {"model": ErrorResponse, "description": "Retrieval or completion failed"},
    },
)
async def chat(body: ChatRequest, request: Request, service: Chat) -> ChatResponse | JSONResponse:
    try:
        answer = await service.answer([m.to_message() for m in body.messages])
    except KnowledgeFactoryError as exc:
        logger.error("Chat failed | code=%s error=%s", exc.error_code, exc.message)
        error = ErrorResponse(
            error_code=exc.error_code,
            message=exc.message,
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content=error.model_dump(mode="json"),
        )

    return ChatResponse.from_answer(answer)
