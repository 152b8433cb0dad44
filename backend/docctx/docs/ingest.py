"""Document ingestion - normalize parsed chunks and persist them.

Chunks arrive from the PDF parser with inconsistent field names. They are
normalized here, once, into the canonical Chunk model; nothing downstream
looks at the raw shape.
"""

import hashlib
import logging
import time
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from backend.docctx.db.models import Document, DocumentChunk
from backend.docctx.models.context import Chunk, ContextMeta, DocumentContext, DocumentStatus
from backend.docctx.store.context_store import ContextStore

logger = logging.getLogger(__name__)

PAGE_FIELDS = ("page", "page_number", "pageNumber", "pageNum", "pageIndex")
INDEX_FIELDS = ("chunk_index", "chunkIndex", "index")


def _first_present(raw: Mapping[str, Any], fields: tuple[str, ...]) -> Any:
    for name in fields:
        value = raw.get(name)
        if value is not None:
            return value
    return None


def _parse_page(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        page = int(value)
    except (TypeError, ValueError):
        return None
    return page if page >= 0 else None


def normalize_chunk(raw: Mapping[str, Any], position: int) -> Chunk:
    """Convert a parser chunk into the canonical Chunk.

    Args:
        raw: Chunk as produced by the parser
        position: Ordinal position in the upload, used when no index is given

    Returns:
        Canonical chunk
    """
    index = _first_present(raw, INDEX_FIELDS)
    try:
        chunk_index = int(index) if index is not None else position
    except (TypeError, ValueError):
        chunk_index = position

    return Chunk(
        id=str(raw.get("id") or raw.get("chunk_id") or f"chunk-{position}"),
        text=str(raw.get("text") or raw.get("content") or ""),
        page=_parse_page(_first_present(raw, PAGE_FIELDS)),
        chunk_index=chunk_index,
        metadata=dict(raw.get("metadata") or {}),
    )


def normalize_chunks(raw_chunks: Iterable[Mapping[str, Any]]) -> list[Chunk]:
    """Normalize a parser chunk list, preserving order."""
    return [normalize_chunk(raw, position) for position, raw in enumerate(raw_chunks)]


def content_hash(chunks: list[Chunk]) -> str:
    """SHA-256 over chunk texts in order."""
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(chunk.text.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


def new_ephemeral_document_id(prefix: str = "mem-") -> str:
    """Generate an id recognized by the retriever as ephemeral."""
    return f"{prefix}{uuid.uuid4()}"


async def ingest_ephemeral_document(
    store: ContextStore,
    *,
    document_id: str,
    user_id: str,
    raw_chunks: Iterable[Mapping[str, Any]],
    original_filename: str | None = None,
) -> bool:
    """Store a parsed upload in the context store.

    Status moves processing -> ready (written by set_context) or error.

    Returns:
        True if the context was stored
    """
    start = time.monotonic()
    await store.set_status(document_id, DocumentStatus.processing)

    chunks = normalize_chunks(raw_chunks)
    pages = {chunk.page for chunk in chunks if chunk.page is not None}

    context = DocumentContext(
        chunks=chunks,
        user_id=user_id,
        meta=ContextMeta(
            pages_indexed=len(pages),
            processing_time=round((time.monotonic() - start) * 1000, 2),
            content_hash=content_hash(chunks),
            original_filename=original_filename,
        ),
    )

    stored = await store.set_context(document_id, user_id, context)

    if not stored:
        logger.error(
            f"Failed to store context for {document_id}",
            extra={"structured": {"document_id": document_id, "user_id": user_id, "chunks": len(chunks)}},
        )
        await store.set_status(document_id, DocumentStatus.error, "Failed to store document context")

    return stored


async def ingest_persisted_document(
    *,
    user_id: str,
    raw_chunks: Iterable[Mapping[str, Any]],
    session: AsyncSession,
    filename: str | None = None,
    document_id: str | None = None,
) -> str:
    """Persist a parsed document and its chunks in a single transaction.

    Returns:
        Document id
    """
    document_id = document_id or str(uuid.uuid4())
    chunks = normalize_chunks(raw_chunks)

    session.add(Document(document_id=document_id, user_id=user_id, filename=filename, status="ready"))

    for chunk in chunks:
        session.add(
            DocumentChunk(
                id=str(uuid.uuid4()),
                document_id=document_id,
                user_id=user_id,
                chunk_id=chunk.id,
                content=chunk.text,
                page_number=chunk.page if chunk.page is not None else 1,
                chunk_type=str(chunk.metadata.get("chunk_type", "paragraph")),
                chunk_index=chunk.chunk_index,
                metadata_=chunk.metadata or None,
            )
        )

    await session.commit()

    return document_id
