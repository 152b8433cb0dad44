"""Document context domain models.

Payloads are stored as JSON with camelCase keys so that entries written by
other services sharing the same key-value store stay readable.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Chunk(BaseModel):
    """Canonical unit of extracted document text."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    page: int | None = None
    chunk_index: int
    metadata: dict[str, Any] = Field(default_factory=dict)


class ContextMeta(BaseModel):
    """Processing metadata attached to an uploaded document."""

    model_config = ConfigDict(populate_by_name=True)

    pages_indexed: int | None = Field(default=None, alias="pagesIndexed")
    processing_time: float | None = Field(default=None, alias="processingTime")
    content_hash: str | None = Field(default=None, alias="contentHash")
    original_filename: str | None = Field(default=None, alias="originalFilename")


class DocumentContext(BaseModel):
    """Chunk set for one document version, owned by the uploading user."""

    model_config = ConfigDict(populate_by_name=True)

    chunks: list[Chunk]
    user_id: str = Field(alias="userId")
    meta: ContextMeta | None = None


class ContextIndex(BaseModel):
    """Partition directory written when a context is split into parts."""

    model_config = ConfigDict(populate_by_name=True)

    parts: int
    user_id: str = Field(alias="userId")
    meta: ContextMeta | None = None


class ContextPart(BaseModel):
    """One shard of a partitioned context."""

    model_config = ConfigDict(populate_by_name=True)

    chunks: list[Chunk]
    user_id: str = Field(alias="userId")
    meta: ContextMeta | None = None
    part_index: int = Field(alias="partIndex")


class DocumentStatus(str, Enum):
    """Processing status of an ephemeral document."""

    processing = "processing"
    ready = "ready"
    error = "error"
    missing = "missing"


class StatusRecord(BaseModel):
    """Status entry, optionally enriched with partition info."""

    model_config = ConfigDict(populate_by_name=True)

    status: DocumentStatus
    error: str | None = None
    parts: int | None = None
    pages_indexed: int | None = Field(default=None, alias="pagesIndexed")
