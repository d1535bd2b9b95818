from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


DASHBOARD_REQUESTS_COUNTER = Counter(
    "prs_dashboard_requests_total",
    "Dashboard requests served, per served path",
    ["source"],
)

DASHBOARD_FAILURES_COUNTER = Counter(
    "prs_dashboard_failures_total",
    "Dashboard requests failed, per error kind and stage",
    ["kind", "stage"],
)

DASHBOARD_FALLBACKS_COUNTER = Counter(
    "prs_dashboard_fallbacks_total",
    "Optimized query failures that triggered the legacy query",
    ["outcome"],
)

INTEGRITY_WARNINGS_COUNTER = Counter(
    "prs_dashboard_orphaned_documents_total",
    "Sub-documents dropped because their requisition is missing",
    ["doc_type"],
)

SNAPSHOT_REFRESH_COUNTER = Counter(
    "prs_dashboard_snapshot_refresh_total",
    "Snapshot refresh attempts per outcome",
    ["outcome"],
)

SNAPSHOT_GENERATION_GAUGE = Gauge(
    "prs_dashboard_snapshot_generation",
    "Generation of the currently published snapshot",
)

SNAPSHOT_ROWS_GAUGE = Gauge(
    "prs_dashboard_snapshot_rows",
    "Rows held by the currently published snapshot",
)

QUERY_LATENCY_HISTOGRAM = Histogram(
    "prs_dashboard_query_seconds",
    "Time spent producing one dashboard page, per served path",
    ["source"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


def record_served(source: str, elapsed_seconds: float) -> None:
    DASHBOARD_REQUESTS_COUNTER.labels(source=source).inc()
    QUERY_LATENCY_HISTOGRAM.labels(source=source).observe(max(elapsed_seconds, 0.0))


def record_failure(kind: str, stage: str) -> None:
    DASHBOARD_FAILURES_COUNTER.labels(kind=kind, stage=stage).inc()


def record_fallback(outcome: str) -> None:
    DASHBOARD_FALLBACKS_COUNTER.labels(outcome=outcome).inc()


def record_integrity_warning(doc_type: str) -> None:
    INTEGRITY_WARNINGS_COUNTER.labels(doc_type=doc_type or "unknown").inc()


def record_snapshot_refresh(outcome: str, *, generation: int | None = None, rows: int | None = None) -> None:
    SNAPSHOT_REFRESH_COUNTER.labels(outcome=outcome).inc()
    if generation is not None:
        SNAPSHOT_GENERATION_GAUGE.set(generation)
    if rows is not None:
        SNAPSHOT_ROWS_GAUGE.set(rows)
