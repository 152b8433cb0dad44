"""Retrieval and conversation models."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RetrievedChunk(BaseModel):
    """Chunk returned to the prompt-assembly caller."""

    content: str
    page_number: int
    chunk_type: str | None = "text"


class ChatMessage(BaseModel):
    """Single conversation turn."""

    role: Literal["system", "user", "assistant"]
    content: str


class IdempotencyRecord(BaseModel):
    """Marker written for a processed request id."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: float
    user_id: str = Field(alias="userId")
    request_id: str = Field(alias="requestId")
