"""
Prometheus metrics for the filing feedback loop and bulk ingestion.
"""

from prometheus_client import Counter, Gauge, Histogram


# ── Classification Cache ────────────────────────────────────
cache_lookups_total = Counter(
    "classification_cache_lookups_total",
    "Classification cache lookups",
    ["outcome"],
)

cache_invalidations_total = Counter(
    "classification_cache_invalidations_total",
    "Cache entries marked invalid",
    ["reason"],
)

# ── Corrections ─────────────────────────────────────────────
corrections_captured_total = Counter(
    "filing_corrections_captured_total",
    "Filing corrections captured, per corrected field",
    ["field"],
)

correction_search_failures_total = Counter(
    "filing_correction_search_failures_total",
    "Filename search calls that failed and were skipped",
)

# ── Bulk Processing ─────────────────────────────────────────
bulk_items_processed_total = Counter(
    "bulk_items_processed_total",
    "Bulk upload items processed",
    ["outcome"],
)

bulk_item_duration_seconds = Histogram(
    "bulk_item_duration_seconds",
    "Time to run one item through upload, classify and duplicate check",
    ["mode"],
    buckets=[0.5, 1, 2, 5, 10, 20, 30, 60, 120],
)

bulk_batches_active = Gauge(
    "bulk_batches_active",
    "Batches currently being drained by a processor",
)

# ── Training Exports ────────────────────────────────────────
export_jobs_total = Counter(
    "training_export_jobs_total",
    "Training export jobs by final status",
    ["status"],
)

export_examples_total = Counter(
    "training_export_examples_total",
    "Examples written to training exports",
    ["format"],
)

# ── External Services ───────────────────────────────────────
external_service_latency_seconds = Histogram(
    "external_service_latency_seconds",
    "Latency of external service calls",
    ["service", "operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60, 120],
)

external_service_errors_total = Counter(
    "external_service_errors_total",
    "External service calls that failed",
    ["service", "operation"],
)
