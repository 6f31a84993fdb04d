"""Prometheus metrics for sync health, idempotency and payment recording"""

from prometheus_client import Counter, Histogram

# Sync metrics
sync_counter = Counter(
    "fintrack_sync_total",
    "Aggregator item syncs",
    ["outcome"],  # success | error | timeout
)

transactions_applied_counter = Counter(
    "fintrack_sync_transactions_applied_total",
    "Aggregator transactions written to the ledger",
)

duplicates_avoided_counter = Counter(
    "fintrack_sync_duplicates_avoided_total",
    "Aggregator transactions skipped because they were already applied",
)

# Aggregator API metrics
aggregator_latency_histogram = Histogram(
    "aggregator_request_latency_seconds",
    "Aggregator API response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

aggregator_failures_counter = Counter(
    "aggregator_request_failures_total",
    "Failed aggregator API calls",
)

# Payment metrics
payments_counter = Counter(
    "fintrack_payments_recorded_total",
    "Payments recorded against bills and installments",
    ["path"],  # bill | installment
)

installments_created_counter = Counter(
    "fintrack_installments_created_total",
    "Credit installments created",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_sync(outcome: str, applied: int = 0, duplicates: int = 0) -> None:
    """Record one item sync and its idempotency counts"""
    sync_counter.labels(outcome=outcome).inc()
    if applied:
        transactions_applied_counter.inc(applied)
    if duplicates:
        duplicates_avoided_counter.inc(duplicates)
