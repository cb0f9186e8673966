"""Monitoring configuration for the scheduler."""
import logging

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from vocabsrs.models.progress_models import SessionStats

logger = logging.getLogger(__name__)

# Review metrics
reviews_total = Counter(
    "vocabsrs_reviews_total",
    "Total number of committed reviews",
    ["grade"],
)

# Session metrics
sessions_started = Counter(
    "vocabsrs_sessions_started_total",
    "Total number of study sessions started",
)

sessions_completed = Counter(
    "vocabsrs_sessions_completed_total",
    "Total number of study sessions ended",
)

session_size = Histogram(
    "vocabsrs_session_size_items",
    "Number of due items snapshotted into a session",
    buckets=[1, 5, 10, 20, 50, 100],
)

session_reviewed = Histogram(
    "vocabsrs_session_reviewed_items",
    "Number of items reviewed per finished session",
    buckets=[1, 5, 10, 20, 50, 100],
)

# Store metrics
store_operations = Counter(
    "vocabsrs_store_operations_total",
    "Total number of progress store operations",
    ["operation_type"],
)

store_usage_bytes = Gauge(
    "vocabsrs_store_usage_bytes",
    "Bytes used by serialized progress records",
)

corrupt_records = Counter(
    "vocabsrs_corrupt_records_total",
    "Stored progress records that failed validation on read",
)

commit_conflicts = Counter(
    "vocabsrs_commit_conflicts_total",
    "Compare-and-swap conflicts on progress writes",
)

# Error metrics
error_count = Counter(
    "vocabsrs_errors_total",
    "Total number of errors surfaced to callers",
    ["error_type"],
)


class PrometheusAnalytics:
    """Analytics collaborator that exports finished session statistics as metrics."""

    def record_session(self, stats: SessionStats) -> None:
        sessions_completed.inc()
        session_reviewed.observe(stats.reviewed)
        logger.info(
            "Session finished: reviewed=%d passed=%d failed=%d",
            stats.reviewed, stats.passed, stats.failed,
        )


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
