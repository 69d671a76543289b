"""Prometheus metrics for reconciliation outcomes, ledger writes and amount drift"""

from typing import Iterable

from prometheus_client import Counter, Histogram

# Reconciliation metrics
resolution_counter = Counter(
    "installment_resolution_total",
    "Incoming installment rows by resolution",
    ["resolution"],  # already_recorded | projection_fulfilled | orphan_reconciled | group_created | group_backfilled
)

rows_written_counter = Counter(
    "installment_rows_written_total",
    "Ledger rows inserted by group construction",
    ["status"],  # completed | projected
)

discrepancy_counter = Counter(
    "installment_amount_discrepancy_total",
    "Observed payments differing from the expected amount beyond threshold",
    ["source"],  # projection | orphan
)

salted_group_counter = Counter(
    "installment_salted_groups_total",
    "Groups created under a salted identity because of a twin purchase",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_resolution(resolution: str) -> None:
    resolution_counter.labels(resolution=resolution).inc()


def record_rows_written(planned: Iterable) -> None:
    """Count inserted rows per status"""
    for payment in planned:
        rows_written_counter.labels(status=payment.status.value).inc()
