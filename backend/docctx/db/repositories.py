"""Repository protocol interfaces for persisted chunk access."""

from typing import Protocol

from backend.docctx.models.retrieval import RetrievedChunk


class ChunkSearch(Protocol):
    """Search capability over persisted document chunks.

    Every method is scoped to the given document ids and, when supplied, to
    the owning user.
    """

    async def search(
        self,
        document_ids: list[str],
        query: str,
        limit: int,
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        """Ranked search of chunks by query.

        Args:
            document_ids: Documents to search
            query: Free-text query
            limit: Maximum rows
            user_id: Owning user filter

        Returns:
            Chunks ordered by relevance
        """
        ...

    async def scan_contains(
        self,
        document_id: str,
        query: str,
        limit: int,
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        """Chunks whose content contains the query (case-insensitive)."""
        ...

    async def first_chunks(
        self,
        document_id: str,
        limit: int,
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        """First chunks of a document by ordinal index."""
        ...
