"""Unit tests for the auth dependency."""

import pytest
from fastapi import HTTPException

from backend.docctx.api.auth import get_current_context


@pytest.mark.asyncio
async def test_valid_bearer_token_yields_user_id() -> None:
    """Test that the bearer token is used as the user id."""
    ctx = await get_current_context(authorization="Bearer user-42")

    assert ctx.user_id == "user-42"


@pytest.mark.asyncio
async def test_missing_header_raises_401() -> None:
    """Test that a missing header is rejected."""
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(authorization=None)

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_invalid_bearer_format() -> None:
    """Test invalid bearer format raises 401."""
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(authorization="NotBearer token")

    assert exc_info.value.status_code == 401
    assert "Invalid authorization header format" in exc_info.value.detail


@pytest.mark.asyncio
async def test_empty_bearer_token() -> None:
    """Test that a blank token is rejected."""
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(authorization="Bearer   ")

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Empty bearer token"
