"""Prometheus metrics for context storage and retrieval."""

from prometheus_client import Counter

# Key-value store metrics
kv_operations_total = Counter(
    "kv_operations_total",
    "Total context store operations",
    ["operation", "outcome"],
)

kv_retries_total = Counter(
    "kv_retries_total",
    "Total retried key-value calls",
    ["operation"],
)

# Retrieval metrics
retrieval_strategy_total = Counter(
    "retrieval_strategy_total",
    "Retrieval strategy invocations",
    ["strategy", "outcome"],
)

idempotency_checks_total = Counter(
    "idempotency_checks_total",
    "Idempotency guard checks",
    ["outcome"],
)
