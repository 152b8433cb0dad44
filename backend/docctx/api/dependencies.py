"""FastAPI dependency wiring for the store, retriever and guard."""

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.docctx.config import get_settings
from backend.docctx.db.engine import get_async_engine
from backend.docctx.db.repositories import ChunkSearch
from backend.docctx.db.sql_repositories import SqlChunkSearch
from backend.docctx.docs.retriever import RetrievalEngine
from backend.docctx.kv.factory import get_kv_store
from backend.docctx.middleware.idempotency import IdempotencyGuard
from backend.docctx.rag.conversational import ConversationalRetriever
from backend.docctx.retry import RetryPolicy
from backend.docctx.store.context_store import ContextStore


@lru_cache
def get_context_store() -> ContextStore:
    """Process-scoped context store built from settings."""
    settings = get_settings()
    return ContextStore(
        get_kv_store(),
        ttl_seconds=settings.context_ttl_seconds,
        max_part_size=settings.max_part_size_bytes,
        retry_policy=RetryPolicy(
            max_attempts=settings.kv_retry_attempts,
            base_delay_ms=settings.kv_retry_delay_ms,
        ),
    )


async def get_chunk_search() -> AsyncGenerator[ChunkSearch | None, None]:
    """Persisted chunk search, or None when no database is configured."""
    if not get_settings().database_url:
        yield None
        return

    async with AsyncSession(get_async_engine()) as session:
        yield SqlChunkSearch(session)


def get_retrieval_engine(
    store: Annotated[ContextStore, Depends(get_context_store)],
    chunk_search: Annotated[ChunkSearch | None, Depends(get_chunk_search)],
) -> RetrievalEngine:
    settings = get_settings()
    return RetrievalEngine(
        store,
        chunk_search,
        ephemeral_prefix=settings.ephemeral_doc_prefix,
        default_max_chunks=settings.context_max_chunks,
    )


def get_conversational_retriever(
    engine: Annotated[RetrievalEngine, Depends(get_retrieval_engine)],
) -> ConversationalRetriever:
    settings = get_settings()
    return ConversationalRetriever(
        engine,
        k=settings.context_max_chunks,
        max_results=settings.context_max_chunks,
        max_chars_per_chunk=settings.max_chars_per_chunk,
    )


def get_idempotency_guard(
    store: Annotated[ContextStore, Depends(get_context_store)],
) -> IdempotencyGuard:
    return IdempotencyGuard(store, ttl_seconds=get_settings().idempotency_ttl_seconds)
