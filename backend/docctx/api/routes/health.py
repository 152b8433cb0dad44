"""Health check endpoints.

- /health always answers while the process runs
- /healthz runs a context store self-test and a database ping
"""

import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text

from backend.docctx.api.dependencies import get_context_store
from backend.docctx.config import Settings, get_settings
from backend.docctx.db.engine import get_async_engine
from backend.docctx.store.context_store import ContextStore

router = APIRouter()


async def check_db(settings: Settings) -> tuple[bool, str]:
    """Check database connectivity.

    Returns:
        (is_ok, status_message)
    """
    if not settings.database_url:
        return (True, "not_configured")

    try:
        async with get_async_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return (True, "ok")
    except Exception as e:
        return (False, f"error: {type(e).__name__}")


async def check_context_store(store: ContextStore) -> tuple[bool, str]:
    """Check the key-value backend with a write/read/delete probe.

    Unavailable mode is reported but not treated as a failure.
    """
    if not store.available:
        return (True, "unavailable")

    if await store.self_test():
        return (True, "ok")
    return (False, "error: self_test_failed")


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check for Docker/k8s."""
    return {"status": "ok"}


@router.get("/healthz", response_model=None)
async def healthz(
    store: Annotated[ContextStore, Depends(get_context_store)],
) -> dict[str, Any] | Response:
    """Component health check.

    Returns:
        200 with component status if core systems ok
        503 if a configured component fails
    """
    settings = get_settings()

    db_ok, db_status = await check_db(settings)
    kv_ok, kv_status = await check_context_store(store)

    core_ok = db_ok and kv_ok

    response_body = {
        "status": "ok" if core_ok else "degraded",
        "components": {
            "db": db_status,
            "kv": kv_status,
            "kv_adapter": store.adapter,
        },
    }

    if not core_ok:
        return Response(
            content=json.dumps(response_body),
            status_code=503,
            media_type="application/json",
        )

    return response_body
