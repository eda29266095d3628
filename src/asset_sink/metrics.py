"""
Prometheus metrics for the sink pipelines and the object store facade.

All metrics are prefixed with ``asset_sink_`` and labeled by declared
type, operation and outcome for per-operation drill-down.

The host process exposes them with ``prometheus_client.generate_latest``.
"""
from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

WRITES_TOTAL = Counter(
    "asset_sink_writes_total",
    "Write pipelines by declared type and terminal outcome",
    ["declared_type", "outcome"],
)

BYTES_STREAMED = Counter(
    "asset_sink_bytes_streamed_total",
    "Bytes relayed through the write and read pipelines",
    ["direction"],
)

READS_TOTAL = Counter(
    "asset_sink_reads_total",
    "Read pipelines by terminal outcome",
    ["outcome"],
)

OPERATIONS_TOTAL = Counter(
    "asset_sink_operations_total",
    "Facade operations by name and outcome",
    ["operation", "outcome"],
)

RETRIES_TOTAL = Counter(
    "asset_sink_retries_total",
    "Retried backend calls by facade operation",
    ["operation"],
)

# ---------------------------------------------------------------------------
# Histograms (operation latency)
# ---------------------------------------------------------------------------

OPERATION_DURATION = Histogram(
    "asset_sink_operation_duration_seconds",
    "Duration of each facade operation or pipeline run in seconds",
    ["operation"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30, 60),
)
