"""Models package - re-exports for convenience."""

from backend.docctx.models.context import (
    Chunk,
    ContextIndex,
    ContextMeta,
    ContextPart,
    DocumentContext,
    DocumentStatus,
    StatusRecord,
)
from backend.docctx.models.retrieval import ChatMessage, IdempotencyRecord, RetrievedChunk

__all__ = [
    "ChatMessage",
    "Chunk",
    "ContextIndex",
    "ContextMeta",
    "ContextPart",
    "DocumentContext",
    "DocumentStatus",
    "IdempotencyRecord",
    "RetrievedChunk",
    "StatusRecord",
]
