"""SQLAlchemy implementation of ChunkSearch."""

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.docctx.db.models import DocumentChunk
from backend.docctx.models.retrieval import RetrievedChunk


def _to_retrieved(row: DocumentChunk) -> RetrievedChunk:
    return RetrievedChunk(
        content=row.content or "",
        page_number=row.page_number,
        chunk_type=row.chunk_type,
    )


class SqlChunkSearch:
    """Chunk search over the document_chunks table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _scoped(self, document_ids: list[str], user_id: str | None) -> Select[tuple[DocumentChunk]]:
        stmt = select(DocumentChunk).where(DocumentChunk.document_id.in_(document_ids))
        if user_id is not None:
            stmt = stmt.where(DocumentChunk.user_id == user_id)
        return stmt

    async def search(
        self,
        document_ids: list[str],
        query: str,
        limit: int,
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        """Search chunks with simple token matching.

        Scoring strategy:
        - Tokenize query on whitespace (lowercase)
        - Score = number of query tokens contained in the chunk text
        - Drop chunks with score 0
        - Sort by score descending, then by chunk_index for determinism
        """
        query_tokens = [token for token in query.lower().split() if token]

        if not query_tokens or not document_ids:
            return []

        result = await self._session.execute(self._scoped(document_ids, user_id))
        rows = list(result.scalars().all())

        scored: list[tuple[DocumentChunk, int]] = []
        for row in rows:
            text_lower = row.content.lower()
            match_count = sum(1 for token in query_tokens if token in text_lower)
            if match_count > 0:
                scored.append((row, match_count))

        scored.sort(key=lambda x: (-x[1], x[0].chunk_index))

        return [_to_retrieved(row) for row, _ in scored[:limit]]

    async def scan_contains(
        self,
        document_id: str,
        query: str,
        limit: int,
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        if not query:
            return []

        stmt = (
            self._scoped([document_id], user_id)
            .where(DocumentChunk.content.icontains(query, autoescape=True))
            .order_by(DocumentChunk.chunk_index)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_to_retrieved(row) for row in result.scalars().all()]

    async def first_chunks(
        self,
        document_id: str,
        limit: int,
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        stmt = self._scoped([document_id], user_id).order_by(DocumentChunk.chunk_index).limit(limit)
        result = await self._session.execute(stmt)
        return [_to_retrieved(row) for row in result.scalars().all()]
