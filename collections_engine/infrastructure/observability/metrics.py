"""Prometheus metrics for monitoring risk bands, category churn, and data quality"""

from typing import Iterable
from prometheus_client import Counter, Histogram

# Forecast metrics
forecast_band_counter = Counter(
    "collections_forecast_total",
    "Payment risk forecasts produced",
    ["band"],  # low | medium | high
)

# Category recalculation metrics
category_recalc_counter = Counter(
    "collections_category_recalc_total",
    "Customers visited by category recalculation",
    ["outcome"],  # reassigned | unchanged | skipped_override | failed
)

category_recalc_incomplete_counter = Counter(
    "collections_category_recalc_incomplete_total",
    "Recalculation runs stopped by a page deadline",
)

# Data quality
skipped_customer_counter = Counter(
    "collections_skipped_customers_total",
    "Customers left out of a report because of unusable ledger data",
    ["report", "field"],
)

report_duration_histogram = Histogram(
    "collections_report_duration_seconds",
    "Time to compute a read-model",
    ["report"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_forecasts(bands: Iterable[str]) -> None:
    for band in bands:
        forecast_band_counter.labels(band=band).inc()


def record_skipped(report: str, skipped: Iterable) -> None:
    for entry in skipped:
        skipped_customer_counter.labels(report=report, field=entry.field).inc()


def record_recalculation(summary) -> None:
    """Record per-outcome counts so churn between tiers is visible over time"""
    category_recalc_counter.labels(outcome="reassigned").inc(summary.reassigned)
    category_recalc_counter.labels(outcome="unchanged").inc(summary.unchanged)
    category_recalc_counter.labels(outcome="skipped_override").inc(summary.skipped_override)
    category_recalc_counter.labels(outcome="failed").inc(summary.failed)
    if not summary.complete:
        category_recalc_incomplete_counter.inc()
