"""Tests for duplicate request suppression over the context store."""

import pytest

from backend.docctx.errors import DuplicateRequestError
from backend.docctx.middleware.idempotency import IdempotencyGuard
from backend.docctx.store.context_store import ContextStore


def test_keys_are_scoped_by_user() -> None:
    """Test the key layout."""
    guard = IdempotencyGuard(ContextStore(None))

    assert guard.make_key("req-1", "user-1") == "idem:user-1:req-1"
    assert guard.make_key("req-1", "user-1") != guard.make_key("req-1", "user-2")


@pytest.mark.asyncio
async def test_first_request_is_accepted_and_marked(store: ContextStore) -> None:
    """Test that an unseen id passes and leaves a record behind."""
    guard = IdempotencyGuard(store)

    await guard.check("req-1", "user-1")

    record = await store.get_item("idem:user-1:req-1")
    assert record is not None
    assert record["userId"] == "user-1"
    assert record["requestId"] == "req-1"
    assert "timestamp" in record


@pytest.mark.asyncio
async def test_duplicate_inside_window_is_rejected(store: ContextStore) -> None:
    """Test that the same id is rejected within the TTL."""
    guard = IdempotencyGuard(store)
    await guard.check("req-1", "user-1")

    with pytest.raises(DuplicateRequestError) as exc_info:
        await guard.check("req-1", "user-1")

    assert exc_info.value.request_id == "req-1"


@pytest.mark.asyncio
async def test_same_request_id_from_another_user_is_accepted(store: ContextStore) -> None:
    """Test that one user's request id does not block a different user."""
    guard = IdempotencyGuard(store)
    await guard.check("req-1", "alice")

    await guard.check("req-1", "bob")

    with pytest.raises(DuplicateRequestError):
        await guard.check("req-1", "bob")


@pytest.mark.asyncio
async def test_id_is_accepted_again_after_ttl(store: ContextStore, clock) -> None:
    """Test that the window closes after the TTL."""
    guard = IdempotencyGuard(store, ttl_seconds=120)
    await guard.check("req-1", "user-1")

    clock.advance(121)

    await guard.check("req-1", "user-1")


@pytest.mark.asyncio
async def test_distinct_ids_do_not_collide(store: ContextStore) -> None:
    """Test that different request ids are independent."""
    guard = IdempotencyGuard(store)

    await guard.check("req-1", "user-1")
    await guard.check("req-2", "user-1")


@pytest.mark.asyncio
async def test_unavailable_store_allows_requests() -> None:
    """Test that duplicate suppression degrades to allowing everything."""
    guard = IdempotencyGuard(ContextStore(None))

    await guard.check("req-1", "user-1")
    await guard.check("req-1", "user-1")

    assert await guard.is_duplicate(guard.make_key("req-1", "user-1")) is False


@pytest.mark.asyncio
async def test_mark_processed_honours_ttl_override(store: ContextStore, clock) -> None:
    """Test a per-call TTL."""
    guard = IdempotencyGuard(store, ttl_seconds=120)
    key = guard.make_key("req-1", "user-1")

    assert await guard.mark_processed(key, user_id="user-1", request_id="req-1", ttl_seconds=10)

    clock.advance(11)
    assert await guard.is_duplicate(key) is False
