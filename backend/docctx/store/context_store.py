"""Cross-instance document context store.

Persists a document's chunk set in a key-value backend so that any instance
handling a later request can read it back. Large contexts are split into
parts under a partition index.

Key scheme (all entries share one TTL from write time):
- ctx:<document_id>:status   - StatusRecord
- ctx:<document_id>          - single-part DocumentContext
- ctx:<document_id>:index    - ContextIndex (multi-part only)
- ctx:<document_id>:part:<n> - ContextPart, 0-indexed

Failure policy:
- Backend never configured (kv=None): every call returns its unavailable
  value without touching the network, for the lifetime of the instance.
- Transient failures: retried per RetryPolicy, then mapped to a safe default
  (False / None / error status).
- Owner mismatch: reported exactly like "not found".
- A declared part that cannot be read: ContextCorruptedError is raised.
"""

import json
import math
import time
from typing import Any

from pydantic import ValidationError

from backend.docctx.errors import ContextCorruptedError, RetryExhaustedError
from backend.docctx.kv.base import KeyValueStore
from backend.docctx.models.context import (
    ContextIndex,
    ContextPart,
    DocumentContext,
    DocumentStatus,
    StatusRecord,
)
from backend.docctx.retry import RetryPolicy, SleepFn, with_retry
from backend.docctx.utils.logging import StructuredStoreLogger
from backend.docctx.utils.metrics import kv_operations_total

DEFAULT_TTL_SECONDS = 1800
MAX_PART_SIZE = 900 * 1024


def status_key(document_id: str) -> str:
    return f"ctx:{document_id}:status"


def context_key(document_id: str) -> str:
    return f"ctx:{document_id}"


def index_key(document_id: str) -> str:
    return f"ctx:{document_id}:index"


def part_key(document_id: str, part: int) -> str:
    return f"ctx:{document_id}:part:{part}"


class ContextStore:
    """Durable adapter for ephemeral document contexts."""

    def __init__(
        self,
        kv: KeyValueStore | None,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_part_size: int = MAX_PART_SIZE,
        retry_policy: RetryPolicy | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        """Initialize context store.

        Args:
            kv: Key-value backend, or None for unavailable mode
            ttl_seconds: TTL applied to every entry
            max_part_size: Serialized size (bytes) above which contexts are partitioned
            retry_policy: Retry policy for backend calls
            sleep_fn: Injectable sleep function for retry backoff
        """
        self._kv = kv
        self._ttl_seconds = ttl_seconds
        self._max_part_size = max_part_size
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep_fn = sleep_fn
        self._logger = StructuredStoreLogger(self.adapter)

    @property
    def available(self) -> bool:
        return self._kv is not None

    @property
    def adapter(self) -> str:
        return self._kv.name if self._kv is not None else "unavailable"

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    # ------------------------------------------------------------------
    # Backend access
    # ------------------------------------------------------------------

    async def _read(self, key: str, operation: str) -> str | None:
        assert self._kv is not None
        kv = self._kv
        return await with_retry(
            lambda: kv.get(key),
            self._retry_policy,
            operation=operation,
            sleep_fn=self._sleep_fn,
        )

    async def _write(self, key: str, value: str, operation: str, ttl_seconds: int | None = None) -> None:
        assert self._kv is not None
        kv = self._kv
        ex = ttl_seconds or self._ttl_seconds
        await with_retry(
            lambda: kv.set(key, value, ex=ex),
            self._retry_policy,
            operation=operation,
            sleep_fn=self._sleep_fn,
        )

    async def _delete(self, keys: list[str], operation: str) -> None:
        assert self._kv is not None
        kv = self._kv
        await with_retry(
            lambda: kv.delete(*keys),
            self._retry_policy,
            operation=operation,
            sleep_fn=self._sleep_fn,
        )

    def _record(
        self,
        operation: str,
        outcome: str,
        *,
        document_id: str,
        user_id: str | None = None,
        parts: int | None = None,
        error_reason: str | None = None,
    ) -> None:
        kv_operations_total.labels(operation=operation, outcome=outcome).inc()
        self._logger.log_operation(
            operation,
            outcome,
            document_id=document_id,
            user_id=user_id,
            parts=parts,
            error_reason=error_reason,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def set_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error: str | None = None,
        *,
        parts: int | None = None,
        pages_indexed: int | None = None,
    ) -> bool:
        """Write the status record for a document.

        Returns:
            True if written, False if the backend is unavailable or failing
        """
        if not self.available:
            self._record("set_status", "unavailable", document_id=document_id)
            return False

        record = StatusRecord(status=status, error=error, parts=parts, pages_indexed=pages_indexed)

        try:
            await self._write(
                status_key(document_id),
                record.model_dump_json(by_alias=True, exclude_none=True),
                "set_status",
            )
        except RetryExhaustedError as e:
            self._record("set_status", "error", document_id=document_id, error_reason=str(e))
            return False

        self._record("set_status", "success", document_id=document_id)
        return True

    async def get_status(self, document_id: str, user_id: str | None = None) -> StatusRecord:
        """Get the status of a document.

        When `user_id` is given, a document owned by someone else is reported
        as missing.
        """
        missing = StatusRecord(status=DocumentStatus.missing)

        if not self.available:
            return missing

        try:
            raw_status = await self._read(status_key(document_id), "get_status")
            if raw_status is None:
                return missing

            record = StatusRecord.model_validate_json(raw_status)

            raw_index = await self._read(index_key(document_id), "get_status")
            if raw_index is not None:
                index = ContextIndex.model_validate_json(raw_index)
                if user_id and index.user_id != user_id:
                    self._record("get_status", "forbidden", document_id=document_id, user_id=user_id)
                    return missing
                return record.model_copy(
                    update={
                        "parts": index.parts,
                        "pages_indexed": index.meta.pages_indexed if index.meta else None,
                    }
                )

            if user_id:
                raw_context = await self._read(context_key(document_id), "get_status")
                if raw_context is not None:
                    context = DocumentContext.model_validate_json(raw_context)
                    if context.user_id != user_id:
                        self._record(
                            "get_status", "forbidden", document_id=document_id, user_id=user_id
                        )
                        return missing

            return record

        except (RetryExhaustedError, ValidationError) as e:
            self._record(
                "get_status",
                "error",
                document_id=document_id,
                user_id=user_id,
                error_reason=type(e).__name__,
            )
            return StatusRecord(status=DocumentStatus.error, error="Failed to retrieve status")

    # ------------------------------------------------------------------
    # Context payload
    # ------------------------------------------------------------------

    def _partition(self, context: DocumentContext, size: int) -> list[ContextPart]:
        """Split chunks evenly by count into ceil(size / max_part_size) groups.

        A single oversized chunk can still produce a part above the threshold.
        """
        part_count = math.ceil(size / self._max_part_size)
        per_part = max(1, math.ceil(len(context.chunks) / part_count))

        groups = [
            context.chunks[i : i + per_part] for i in range(0, len(context.chunks), per_part)
        ] or [[]]

        return [
            ContextPart(chunks=group, user_id=context.user_id, meta=context.meta, part_index=n)
            for n, group in enumerate(groups)
        ]

    async def set_context(self, document_id: str, user_id: str, context: DocumentContext) -> bool:
        """Store a document context, partitioning it when it is too large.

        Parts are written before the index so a reader that finds the index
        can always find every part. On success the status becomes ready with
        the part count.

        Returns:
            True if every entry was written
        """
        if not self.available:
            self._record("set_context", "unavailable", document_id=document_id, user_id=user_id)
            return False

        if context.user_id != user_id:
            context = context.model_copy(update={"user_id": user_id})

        payload = context.model_dump_json(by_alias=True)
        size = len(payload.encode("utf-8"))
        pages_indexed = context.meta.pages_indexed if context.meta else None

        try:
            if size <= self._max_part_size:
                await self._write(context_key(document_id), payload, "set_context")
                # Drop a stale partition index so readers see this payload
                await self._delete([index_key(document_id)], "set_context")
                part_count = 1
            else:
                parts = self._partition(context, size)
                for part in parts:
                    await self._write(
                        part_key(document_id, part.part_index),
                        part.model_dump_json(by_alias=True),
                        "set_context",
                    )

                index = ContextIndex(parts=len(parts), user_id=user_id, meta=context.meta)
                await self._write(index_key(document_id), index.model_dump_json(by_alias=True), "set_context")
                part_count = len(parts)

        except RetryExhaustedError as e:
            self._record(
                "set_context", "error", document_id=document_id, user_id=user_id, error_reason=str(e)
            )
            return False

        self._record("set_context", "success", document_id=document_id, user_id=user_id, parts=part_count)

        return await self.set_status(
            document_id, DocumentStatus.ready, parts=part_count, pages_indexed=pages_indexed
        )

    async def get_context(self, document_id: str, user_id: str) -> DocumentContext | None:
        """Read a document context, reassembling parts in order.

        Returns:
            The context, or None when absent, owned by another user,
            unavailable, or unreadable

        Raises:
            ContextCorruptedError: The index declares a part that cannot be read
        """
        if not self.available:
            self._record("get_context", "unavailable", document_id=document_id, user_id=user_id)
            return None

        try:
            raw_index = await self._read(index_key(document_id), "get_context")

            if raw_index is not None:
                index = ContextIndex.model_validate_json(raw_index)

                if index.user_id != user_id:
                    self._record("get_context", "forbidden", document_id=document_id, user_id=user_id)
                    return None

                chunks = []
                for n in range(index.parts):
                    try:
                        raw_part = await self._read(part_key(document_id, n), "get_context")
                    except RetryExhaustedError as e:
                        raise ContextCorruptedError(document_id, n) from e

                    if raw_part is None:
                        self._record(
                            "get_context",
                            "corrupted",
                            document_id=document_id,
                            user_id=user_id,
                            parts=index.parts,
                            error_reason=f"missing part {n}",
                        )
                        raise ContextCorruptedError(document_id, n)

                    try:
                        part = ContextPart.model_validate_json(raw_part)
                    except ValidationError as e:
                        raise ContextCorruptedError(document_id, n) from e

                    chunks.extend(part.chunks)

                self._record(
                    "get_context", "success", document_id=document_id, user_id=user_id, parts=index.parts
                )
                return DocumentContext(chunks=chunks, user_id=index.user_id, meta=index.meta)

            raw_context = await self._read(context_key(document_id), "get_context")

        except (RetryExhaustedError, ValidationError) as e:
            self._record(
                "get_context",
                "error",
                document_id=document_id,
                user_id=user_id,
                error_reason=type(e).__name__,
            )
            return None

        if raw_context is None:
            self._record("get_context", "not_found", document_id=document_id, user_id=user_id)
            return None

        try:
            context = DocumentContext.model_validate_json(raw_context)
        except ValidationError as e:
            self._record(
                "get_context", "error", document_id=document_id, user_id=user_id, error_reason=type(e).__name__
            )
            return None

        if context.user_id != user_id:
            self._record("get_context", "forbidden", document_id=document_id, user_id=user_id)
            return None

        self._record("get_context", "success", document_id=document_id, user_id=user_id, parts=1)
        return context

    async def delete_context(self, document_id: str) -> bool:
        """Remove every entry of a document (status, payload, index, parts)."""
        if not self.available:
            return False

        keys = [status_key(document_id), context_key(document_id), index_key(document_id)]

        try:
            raw_index = await self._read(index_key(document_id), "delete_context")
            if raw_index is not None:
                index = ContextIndex.model_validate_json(raw_index)
                keys.extend(part_key(document_id, n) for n in range(index.parts))

            await self._delete(keys, "delete_context")
        except (RetryExhaustedError, ValidationError) as e:
            self._record("delete_context", "error", document_id=document_id, error_reason=type(e).__name__)
            return False

        self._record("delete_context", "success", document_id=document_id)
        return True

    # ------------------------------------------------------------------
    # Generic items
    # ------------------------------------------------------------------

    async def set_item(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """Store a JSON-serializable value under an arbitrary key."""
        if not self.available:
            self._record("set_item", "unavailable", document_id=key)
            return False

        try:
            await self._write(key, json.dumps(value), "set_item", ttl_seconds=ttl_seconds)
        except RetryExhaustedError as e:
            self._record("set_item", "error", document_id=key, error_reason=str(e))
            return False

        return True

    async def get_item(self, key: str) -> Any | None:
        """Read a value stored with set_item, or None."""
        if not self.available:
            return None

        try:
            raw = await self._read(key, "get_item")
        except RetryExhaustedError as e:
            self._record("get_item", "error", document_id=key, error_reason=str(e))
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except ValueError as e:
            self._record("get_item", "error", document_id=key, error_reason=type(e).__name__)
            return None

    async def self_test(self) -> bool:
        """Write, read back and delete a probe entry."""
        if not self.available:
            return False

        probe_key = f"selftest:{time.time_ns()}"
        probe = {"test": True, "timestamp": time.time()}

        if not await self.set_item(probe_key, probe, ttl_seconds=5):
            return False
        if await self.get_item(probe_key) != probe:
            return False

        try:
            await self._delete([probe_key], "self_test")
        except RetryExhaustedError as e:
            self._record("self_test", "error", document_id=probe_key, error_reason=type(e).__name__)
            return False

        return True
