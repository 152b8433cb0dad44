"""Request idempotency guard.

Best-effort duplicate suppression backed by the context store:
- A request id is checked before side-effecting work runs
- Unseen ids are marked with a short TTL, then the work proceeds
- Seen ids are rejected with 409 by the caller
- If the store cannot be reached the request is allowed through

Keys are scoped by user, so one user's request id never blocks another's.
Check and mark are two separate store calls, so two near-simultaneous
requests with the same id can both proceed.
"""

import logging
import time

from backend.docctx.errors import DuplicateRequestError
from backend.docctx.models.retrieval import IdempotencyRecord
from backend.docctx.store.context_store import ContextStore
from backend.docctx.utils.metrics import idempotency_checks_total

logger = logging.getLogger(__name__)

DEFAULT_IDEMPOTENCY_TTL_SECONDS = 120


class IdempotencyGuard:
    """Suppress duplicate execution of side-effecting requests."""

    def __init__(
        self,
        store: ContextStore,
        *,
        ttl_seconds: int = DEFAULT_IDEMPOTENCY_TTL_SECONDS,
        namespace: str = "idem",
    ) -> None:
        """Initialize idempotency guard.

        Args:
            store: Context store used as coordination substrate
            ttl_seconds: TTL for idempotency records (default 2 minutes)
            namespace: Key prefix
        """
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._namespace = namespace

    def make_key(self, request_id: str, user_id: str) -> str:
        return f"{self._namespace}:{user_id}:{request_id}"

    async def is_duplicate(self, key: str) -> bool:
        """Check whether a key was already processed.

        Returns False when the store is unavailable.
        """
        if not self._store.available:
            idempotency_checks_total.labels(outcome="degraded").inc()
            logger.warning(f"Idempotency store unavailable; allowing {key}")
            return False

        existing = await self._store.get_item(key)
        if existing is None:
            return False

        logger.warning(
            f"Duplicate request blocked: {key}",
            extra={"structured": {"key": key, "existing": existing}},
        )
        return True

    async def mark_processed(
        self,
        key: str,
        *,
        user_id: str,
        request_id: str,
        ttl_seconds: int | None = None,
    ) -> bool:
        """Record a key as processed for the TTL window."""
        record = IdempotencyRecord(timestamp=time.time(), user_id=user_id, request_id=request_id)
        stored = await self._store.set_item(
            key, record.model_dump(by_alias=True), ttl_seconds=ttl_seconds or self._ttl_seconds
        )

        if not stored:
            idempotency_checks_total.labels(outcome="degraded").inc()
            logger.warning(f"Failed to mark request processed; continuing: {key}")

        return stored

    async def check(self, request_id: str, user_id: str) -> None:
        """Reject a duplicate request id, otherwise mark it processed.

        Raises:
            DuplicateRequestError: The user sent this id inside the TTL window
        """
        key = self.make_key(request_id, user_id)

        if await self.is_duplicate(key):
            idempotency_checks_total.labels(outcome="duplicate").inc()
            raise DuplicateRequestError(request_id)

        await self.mark_processed(key, user_id=user_id, request_id=request_id)
        idempotency_checks_total.labels(outcome="accepted").inc()
