"""Unit tests for the retrieval strategy chain."""

import pytest

from backend.docctx.docs.retriever import RetrievalEngine
from backend.docctx.errors import ContextCorruptedError
from backend.docctx.models.context import Chunk, DocumentContext
from backend.docctx.models.retrieval import RetrievedChunk
from backend.docctx.store.context_store import ContextStore, part_key

OWNER = "user-1"


class FakeChunkSearch:
    """ChunkSearch double with per-method canned results or errors."""

    def __init__(
        self,
        *,
        search: list[RetrievedChunk] | Exception | None = None,
        scan: list[RetrievedChunk] | Exception | None = None,
        first: list[RetrievedChunk] | Exception | None = None,
    ) -> None:
        self._results = {"search": search, "scan": scan, "first": first}
        self.calls: list[str] = []

    def _answer(self, name: str) -> list[RetrievedChunk]:
        self.calls.append(name)
        result = self._results[name]
        if isinstance(result, Exception):
            raise result
        return list(result or [])

    async def search(self, document_ids, query, limit, user_id=None):
        return self._answer("search")

    async def scan_contains(self, document_id, query, limit, user_id=None):
        return self._answer("scan")

    async def first_chunks(self, document_id, limit, user_id=None):
        return self._answer("first")


def rc(content: str, page: int = 1) -> RetrievedChunk:
    return RetrievedChunk(content=content, page_number=page, chunk_type="paragraph")


async def put_context(store: ContextStore, document_id: str, texts: list[str]) -> None:
    context = DocumentContext(
        chunks=[Chunk(id=f"c{i}", text=t, page=i + 1, chunk_index=i) for i, t in enumerate(texts)],
        user_id=OWNER,
    )
    assert await store.set_context(document_id, OWNER, context)


# ----------------------------------------------------------------------
# Ephemeral documents
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_ephemeral_filters_by_case_insensitive_substring(store: ContextStore) -> None:
    """Test that matching chunks are returned for an ephemeral document."""
    await put_context(store, "mem-1", ["Intro", "The RENT ROLL shows", "Debt", "rent growth"])
    engine = RetrievalEngine(store)

    chunks = await engine.retrieve_top_k("mem-1", "rent", 5, user_id=OWNER)

    assert [c.content for c in chunks] == ["The RENT ROLL shows", "rent growth"]
    assert [c.page_number for c in chunks] == [2, 4]
    assert all(c.chunk_type == "text" for c in chunks)


@pytest.mark.asyncio
async def test_ephemeral_falls_back_to_first_k(store: ContextStore) -> None:
    """Test that an ephemeral document with no matches still returns context."""
    await put_context(store, "mem-1", ["a", "b", "c", "d"])
    engine = RetrievalEngine(store)

    chunks = await engine.retrieve_top_k("mem-1", "no such words anywhere", 2, user_id=OWNER)

    assert [c.content for c in chunks] == ["a", "b"]


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["", "zzz", "a b c d e f", "!!!"])
async def test_ephemeral_always_non_empty(store: ContextStore, query: str) -> None:
    """Test that any query returns at least one chunk when the context has one."""
    await put_context(store, "mem-1", ["only chunk"])
    engine = RetrievalEngine(store)

    chunks = await engine.retrieve_top_k("mem-1", query, 3, user_id=OWNER)

    assert len(chunks) >= 1


@pytest.mark.asyncio
async def test_ephemeral_truncates_content(store: ContextStore) -> None:
    """Test truncation to max_chars_per_chunk."""
    await put_context(store, "mem-1", ["x" * 50])
    engine = RetrievalEngine(store)

    chunks = await engine.retrieve_top_k("mem-1", "x", 1, max_chars_per_chunk=10, user_id=OWNER)

    assert chunks[0].content == "x" * 10


@pytest.mark.asyncio
async def test_ephemeral_requires_owner(store: ContextStore) -> None:
    """Test that another user or no user gets nothing."""
    await put_context(store, "mem-1", ["secret"])
    search = FakeChunkSearch(first=[rc("persisted")])
    engine = RetrievalEngine(store, search)

    assert await engine.retrieve_top_k("mem-1", "secret", 3, user_id="intruder") == []
    assert await engine.retrieve_top_k("mem-1", "secret", 3) == []
    # Ephemeral ids never fall through to persisted search
    assert search.calls == []


@pytest.mark.asyncio
async def test_ephemeral_corruption_propagates(kv, sleep) -> None:
    """Test that a missing part is raised, not swallowed as an empty result."""
    store = ContextStore(kv, max_part_size=200, sleep_fn=sleep)
    await put_context(store, "mem-1", [f"chunk text {i}" for i in range(20)])
    await kv.delete(part_key("mem-1", 1))
    engine = RetrievalEngine(store)

    with pytest.raises(ContextCorruptedError):
        await engine.retrieve_top_k("mem-1", "chunk", 3, user_id=OWNER)


# ----------------------------------------------------------------------
# Persisted documents
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_persisted_uses_search_first(store: ContextStore) -> None:
    """Test that full-text search results short-circuit the chain."""
    search = FakeChunkSearch(search=[rc("hit")], scan=[rc("scan")], first=[rc("first")])
    engine = RetrievalEngine(store, search)

    chunks = await engine.retrieve_top_k("doc-1", "q", 3)

    assert [c.content for c in chunks] == ["hit"]
    assert search.calls == ["search"]


@pytest.mark.asyncio
async def test_persisted_search_error_falls_back_to_scan(store: ContextStore) -> None:
    """Test that a failing strategy does not block the next one."""
    search = FakeChunkSearch(search=RuntimeError("rpc down"), scan=[rc("scan")])
    engine = RetrievalEngine(store, search)

    chunks = await engine.retrieve_top_k("doc-1", "q", 3)

    assert [c.content for c in chunks] == ["scan"]
    assert search.calls == ["search", "scan"]


@pytest.mark.asyncio
async def test_persisted_falls_back_to_first_chunks(store: ContextStore) -> None:
    """Test the final ordinal fallback."""
    search = FakeChunkSearch(search=[], scan=[], first=[rc("first", 1), rc("second", 2)])
    engine = RetrievalEngine(store, search)

    chunks = await engine.retrieve_top_k("doc-1", "q", 3)

    assert [c.content for c in chunks] == ["first", "second"]
    assert search.calls == ["search", "scan", "first"]


@pytest.mark.asyncio
async def test_persisted_exhaustion_returns_empty(store: ContextStore) -> None:
    """Test that a document with no chunks yields [] without raising."""
    search = FakeChunkSearch(search=[], scan=RuntimeError("scan failed"), first=[])
    engine = RetrievalEngine(store, search)

    assert await engine.retrieve_top_k("doc-empty", "q", 3) == []


@pytest.mark.asyncio
async def test_persisted_results_are_capped_and_truncated(store: ContextStore) -> None:
    """Test k cap and truncation on persisted results."""
    search = FakeChunkSearch(search=[rc("a" * 30), rc("b" * 30), rc("c" * 30)])
    engine = RetrievalEngine(store, search)

    chunks = await engine.retrieve_top_k("doc-1", "q", 2, max_chars_per_chunk=5)

    assert [c.content for c in chunks] == ["aaaaa", "bbbbb"]


@pytest.mark.asyncio
async def test_persisted_without_search_backend_returns_empty(store: ContextStore) -> None:
    """Test that no configured database means no persisted results."""
    engine = RetrievalEngine(store, None)

    assert await engine.retrieve_top_k("doc-1", "q", 3) == []


# ----------------------------------------------------------------------
# Multi-document aggregation
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_chunks_for_doc_ids_prioritizes_ephemeral(store: ContextStore) -> None:
    """Test ephemeral-first ordering, the chunk cap and skipping of other kinds."""
    await put_context(store, "mem-a", ["a1", "a2"])
    await put_context(store, "mem-b", ["b1", "b2", "b3"])
    engine = RetrievalEngine(store, FakeChunkSearch())

    chunks = await engine.get_chunks_for_doc_ids(
        ["doc-persisted", "mem-a", "mem-b"], max_chunks=4, user_id=OWNER
    )

    assert [c.content for c in chunks] == ["a1", "a2", "b1", "b2"]


@pytest.mark.asyncio
async def test_get_chunks_for_doc_ids_uses_default_cap(store: ContextStore) -> None:
    """Test the default cap when max_chunks is not given."""
    await put_context(store, "mem-a", [f"t{i}" for i in range(10)])
    engine = RetrievalEngine(store, default_max_chunks=4)

    chunks = await engine.get_chunks_for_doc_ids(["mem-a"], user_id=OWNER)

    assert len(chunks) == 4
