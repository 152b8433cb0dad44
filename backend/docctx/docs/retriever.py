"""Document retriever - top-k chunk retrieval through an ordered strategy chain.

Ephemeral documents (ids with the ephemeral prefix) are served from the
context store. Persisted documents go through the relational chunk search:

1. full_text_search - ranked search scoped to the document
2. substring_scan   - case-insensitive containment scan
3. first_chunks     - first k chunks by ordinal index

The first strategy returning a non-empty list wins. A failing strategy is
logged and the next one is tried; only ContextCorruptedError propagates.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from backend.docctx.db.repositories import ChunkSearch
from backend.docctx.errors import ContextCorruptedError
from backend.docctx.models.retrieval import RetrievedChunk
from backend.docctx.store.context_store import ContextStore
from backend.docctx.utils.metrics import retrieval_strategy_total

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS_PER_CHUNK = 1000


@dataclass(frozen=True)
class RetrievalRequest:
    """Input shared by every retrieval strategy."""

    document_id: str
    query: str
    k: int
    max_chars_per_chunk: int
    user_id: str | None = None


Strategy = Callable[[RetrievalRequest], Awaitable[list[RetrievedChunk]]]


class RetrievalEngine:
    """Retrieve the most relevant chunks for a document and query."""

    def __init__(
        self,
        context_store: ContextStore,
        chunk_search: ChunkSearch | None = None,
        *,
        ephemeral_prefix: str = "mem-",
        default_max_chunks: int = 4,
    ) -> None:
        """Initialize retrieval engine.

        Args:
            context_store: Store holding ephemeral document contexts
            chunk_search: Persisted chunk search (None disables persisted retrieval)
            ephemeral_prefix: Id prefix marking ephemeral documents
            default_max_chunks: Default cap for get_chunks_for_doc_ids
        """
        self._store = context_store
        self._chunk_search = chunk_search
        self._ephemeral_prefix = ephemeral_prefix
        self._default_max_chunks = default_max_chunks

        self._ephemeral_chain: list[tuple[str, Strategy]] = [
            ("ephemeral_context", self._ephemeral_context),
        ]
        self._persisted_chain: list[tuple[str, Strategy]] = [
            ("full_text_search", self._full_text_search),
            ("substring_scan", self._substring_scan),
            ("first_chunks", self._first_chunks),
        ]

    def is_ephemeral(self, document_id: str) -> bool:
        return document_id.startswith(self._ephemeral_prefix)

    def strategies_for(self, document_id: str) -> list[tuple[str, Strategy]]:
        """Ordered strategy chain for a document id."""
        if self.is_ephemeral(document_id):
            return self._ephemeral_chain
        return self._persisted_chain

    async def retrieve_top_k(
        self,
        document_id: str,
        query: str,
        k: int,
        max_chars_per_chunk: int = DEFAULT_MAX_CHARS_PER_CHUNK,
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        """Retrieve up to k chunks, truncated to max_chars_per_chunk.

        Returns:
            Chunks from the first strategy with results, or [] when every
            strategy is empty or failed

        Raises:
            ContextCorruptedError: An ephemeral context is missing a part
        """
        request = RetrievalRequest(
            document_id=document_id,
            query=query,
            k=k,
            max_chars_per_chunk=max_chars_per_chunk,
            user_id=user_id,
        )

        for name, strategy in self.strategies_for(document_id):
            try:
                chunks = await strategy(request)
            except ContextCorruptedError:
                retrieval_strategy_total.labels(strategy=name, outcome="corrupted").inc()
                raise
            except Exception as e:
                retrieval_strategy_total.labels(strategy=name, outcome="error").inc()
                logger.warning(
                    f"Retrieval strategy {name} failed for {document_id}",
                    extra={
                        "structured": {
                            "document_id": document_id,
                            "strategy": name,
                            "error_reason": type(e).__name__,
                        }
                    },
                )
                continue

            if chunks:
                retrieval_strategy_total.labels(strategy=name, outcome="hit").inc()
                logger.info(f"Retrieved {len(chunks[:k])} chunks for {document_id} via {name}")
                return [
                    chunk.model_copy(update={"content": chunk.content[:max_chars_per_chunk]})
                    for chunk in chunks[:k]
                ]

            retrieval_strategy_total.labels(strategy=name, outcome="empty").inc()

        logger.info(f"No chunks retrieved for {document_id}")
        return []

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _ephemeral_context(self, request: RetrievalRequest) -> list[RetrievedChunk]:
        """Substring filter over the stored context, falling back to the first k chunks."""
        if not request.user_id:
            logger.warning(f"No user id for ephemeral document {request.document_id}; skipping")
            return []

        context = await self._store.get_context(request.document_id, request.user_id)
        if context is None or not context.chunks:
            logger.info(f"No chunks in context store for {request.document_id}")
            return []

        query_lower = request.query.lower()
        selected = [chunk for chunk in context.chunks if query_lower in chunk.text.lower()][: request.k]

        if not selected:
            # Single-use uploads favor some context over none
            selected = context.chunks[: request.k]

        return [
            RetrievedChunk(content=chunk.text, page_number=chunk.page or 1, chunk_type="text")
            for chunk in selected
        ]

    async def _full_text_search(self, request: RetrievalRequest) -> list[RetrievedChunk]:
        if self._chunk_search is None:
            return []
        return await self._chunk_search.search(
            [request.document_id], request.query, request.k, user_id=request.user_id
        )

    async def _substring_scan(self, request: RetrievalRequest) -> list[RetrievedChunk]:
        if self._chunk_search is None:
            return []
        return await self._chunk_search.scan_contains(
            request.document_id, request.query, request.k, user_id=request.user_id
        )

    async def _first_chunks(self, request: RetrievalRequest) -> list[RetrievedChunk]:
        if self._chunk_search is None:
            return []
        return await self._chunk_search.first_chunks(
            request.document_id, request.k, user_id=request.user_id
        )

    # ------------------------------------------------------------------
    # Multi-document aggregation
    # ------------------------------------------------------------------

    async def get_chunks_for_doc_ids(
        self,
        doc_ids: list[str],
        max_chunks: int | None = None,
        user_id: str | None = None,
    ) -> list[RetrievedChunk]:
        """Collect chunks across documents, ephemeral documents first.

        Unsupported document kinds are skipped with a log entry.
        """
        limit = max_chunks or self._default_max_chunks
        ordered = sorted(doc_ids, key=lambda doc_id: not self.is_ephemeral(doc_id))
        collected: list[RetrievedChunk] = []

        for doc_id in ordered:
            if len(collected) >= limit:
                break

            if not self.is_ephemeral(doc_id):
                logger.info(f"Skipping unsupported document kind for aggregation: {doc_id}")
                continue

            if not user_id:
                logger.warning(f"No user id for ephemeral document {doc_id}; skipping")
                continue

            context = await self._store.get_context(doc_id, user_id)
            if context is None or not context.chunks:
                continue

            remaining = limit - len(collected)
            collected.extend(
                RetrievedChunk(content=chunk.text, page_number=chunk.page or 1, chunk_type="text")
                for chunk in context.chunks[:remaining]
            )

        logger.info(f"Loaded {len(collected)} chunks from {len(doc_ids)} documents")
        return collected
