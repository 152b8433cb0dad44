"""Ephemeral document context endpoints - upload and readiness status."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from backend.docctx.api.auth import RequestContext, get_current_context
from backend.docctx.api.dependencies import get_context_store
from backend.docctx.config import get_settings
from backend.docctx.docs.ingest import ingest_ephemeral_document, new_ephemeral_document_id
from backend.docctx.models.context import StatusRecord
from backend.docctx.store.context_store import ContextStore

router = APIRouter(prefix="/context", tags=["context"])


class CreateContextRequest(BaseModel):
    """Request body for POST /context - chunk list from the PDF parser."""

    chunks: list[dict[str, Any]] = Field(..., min_length=1)
    filename: str | None = None


class CreateContextResponse(BaseModel):
    """Response for POST /context."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(serialization_alias="documentId")
    status: StatusRecord


@router.post("", response_model=CreateContextResponse, response_model_by_alias=True)
async def create_context(
    request: CreateContextRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    store: Annotated[ContextStore, Depends(get_context_store)],
) -> CreateContextResponse | JSONResponse:
    """Store a parsed upload as an ephemeral document."""
    document_id = new_ephemeral_document_id(get_settings().ephemeral_doc_prefix)

    stored = await ingest_ephemeral_document(
        store,
        document_id=document_id,
        user_id=ctx.user_id,
        raw_chunks=request.chunks,
        original_filename=request.filename,
    )

    if not stored:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "error": "Context storage unavailable",
                "code": "CONTEXT_STORE_UNAVAILABLE",
                "documentId": document_id,
            },
        )

    return CreateContextResponse(
        document_id=document_id,
        status=await store.get_status(document_id, ctx.user_id),
    )


@router.get("/{document_id}/status")
async def get_context_status(
    document_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    store: Annotated[ContextStore, Depends(get_context_store)],
) -> dict[str, Any]:
    """Readiness check for an ephemeral document.

    Documents owned by another user report "missing".
    """
    record = await store.get_status(document_id, ctx.user_id)
    return {
        "documentId": document_id,
        "adapter": store.adapter,
        **record.model_dump(mode="json", by_alias=True, exclude_none=True),
    }
