"""Chat context endpoint - POST /chat/context.

Returns the document chunks that the chat orchestration layer places into
the LLM prompt. Guarded against duplicate client submissions and bounded by
an overall retrieval deadline.
"""

import asyncio
import logging
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, ConfigDict, Field

from backend.docctx.api.auth import RequestContext, get_current_context
from backend.docctx.api.dependencies import get_conversational_retriever, get_idempotency_guard
from backend.docctx.config import Settings, get_settings
from backend.docctx.middleware.idempotency import IdempotencyGuard
from backend.docctx.models.retrieval import ChatMessage, RetrievedChunk
from backend.docctx.rag.conversational import ConversationalRetriever

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatContextRequest(BaseModel):
    """Request body for POST /chat/context."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(..., min_length=1, alias="documentId")
    messages: list[ChatMessage] = Field(..., min_length=1)


def generate_request_id(prefix: str = "chat") -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


async def retrieve_within_deadline(
    retriever: ConversationalRetriever,
    request: ChatContextRequest,
    user_id: str,
    deadline_seconds: float,
) -> list[RetrievedChunk]:
    """Run conversational retrieval, cancelling it when the deadline passes.

    Returns:
        Retrieved chunks, or [] if the deadline expired
    """
    try:
        async with asyncio.timeout(deadline_seconds):
            return await retriever.get_relevant_chunks(
                request.document_id, request.messages, user_id=user_id
            )
    except TimeoutError:
        logger.warning(
            f"Chat retrieval deadline exceeded for {request.document_id}",
            extra={
                "structured": {
                    "document_id": request.document_id,
                    "user_id": user_id,
                    "deadline_seconds": deadline_seconds,
                }
            },
        )
        return []


@router.post("/context")
async def chat_context(
    request: ChatContextRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    guard: Annotated[IdempotencyGuard, Depends(get_idempotency_guard)],
    retriever: Annotated[ConversationalRetriever, Depends(get_conversational_retriever)],
    settings: Annotated[Settings, Depends(get_settings)],
    x_request_id: Annotated[str | None, Header()] = None,
) -> dict[str, Any]:
    """Retrieve prompt context for the latest user message.

    Raises:
        DuplicateRequestError: Same X-Request-Id from this user inside the idempotency window
        ContextCorruptedError: The stored document context is incomplete
    """
    request_id = x_request_id or generate_request_id()

    await guard.check(request_id, ctx.user_id)

    chunks = await retrieve_within_deadline(
        retriever, request, ctx.user_id, settings.chat_deadline_seconds
    )

    return {
        "documentId": request.document_id,
        "chunks": [chunk.model_dump() for chunk in chunks],
        "request_id": request_id,
    }
