"""Structured logging for context store operations."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class StructuredStoreLogger:
    """Structured logger for context store operations."""

    def __init__(self, adapter: str) -> None:
        self._adapter = adapter

    def log_operation(
        self,
        operation: str,
        outcome: str,
        *,
        document_id: str,
        user_id: str | None = None,
        parts: int | None = None,
        error_reason: str | None = None,
    ) -> None:
        """Log a store operation with structured data."""
        log_data: dict[str, Any] = {
            "document_id": document_id,
            "user_id": user_id or "system",
            "operation": operation,
            "adapter": self._adapter,
            "outcome": outcome,
        }

        if parts is not None:
            log_data["parts"] = parts
        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Context store {operation}: {document_id} - {outcome}"

        if outcome in ("success", "not_found"):
            logger.info(log_msg, extra={"structured": log_data})
        elif outcome in ("unavailable", "forbidden"):
            logger.warning(log_msg, extra={"structured": log_data})
        else:
            logger.error(log_msg, extra={"structured": log_data})
