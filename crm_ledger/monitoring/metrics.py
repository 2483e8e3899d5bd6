"""
Prometheus metrics for the product-payment ledger.

Tracks:
- Ledger mutations by action and entity kind
- Ledger operation duration
- Approval transitions
- Cache hits, misses and backend errors
- Real-time publishes and failures
"""
from prometheus_client import Counter, Histogram

# Ledger metrics
ledger_mutations_total = Counter(
    "ledger_mutations_total",
    "Total ledger mutations",
    ["action", "entity_kind"],  # action: CREATED, UPDATED, DELETED
)

ledger_errors_total = Counter(
    "ledger_errors_total",
    "Total failed ledger operations",
    ["operation", "error_type"],
)

ledger_operation_duration_seconds = Histogram(
    "ledger_operation_duration_seconds",
    "Ledger operation duration in seconds",
    ["operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# Approval metrics
approval_transitions_total = Counter(
    "approval_transitions_total",
    "Total financing approval transitions",
    ["outcome"],  # approved, rejected, conflict
)

# Cache metrics
cache_requests_total = Counter(
    "cache_requests_total",
    "Total read-through cache lookups",
    ["family", "result"],  # result: hit, miss
)

cache_errors_total = Counter(
    "cache_errors_total",
    "Total cache backend errors",
    ["operation"],  # get, set, delete, delete_by_prefix
)

cache_invalidations_total = Counter(
    "cache_invalidations_total",
    "Total cache invalidation calls",
    ["family"],
)

# Real-time metrics
realtime_publishes_total = Counter(
    "realtime_publishes_total",
    "Total real-time events published",
    ["event", "status"],  # status: success, failed
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_ledger_mutation(action: str, entity_kind: str) -> None:
        """Record a committed ledger mutation."""
        ledger_mutations_total.labels(action=action, entity_kind=entity_kind).inc()

    @staticmethod
    def record_ledger_error(operation: str, error_type: str) -> None:
        """Record a failed ledger operation."""
        ledger_errors_total.labels(operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_operation_duration(operation: str, duration_seconds: float) -> None:
        """Record ledger operation duration."""
        ledger_operation_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_approval_transition(outcome: str) -> None:
        """Record an approval state change or a lost race."""
        approval_transitions_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_cache_lookup(family: str, hit: bool) -> None:
        """Record a read-through lookup."""
        cache_requests_total.labels(family=family, result="hit" if hit else "miss").inc()

    @staticmethod
    def record_cache_error(operation: str) -> None:
        """Record a swallowed cache backend error."""
        cache_errors_total.labels(operation=operation).inc()

    @staticmethod
    def record_cache_invalidation(family: str) -> None:
        """Record an invalidation of a key family."""
        cache_invalidations_total.labels(family=family).inc()

    @staticmethod
    def record_realtime_publish(event: str, success: bool) -> None:
        """Record a real-time publish attempt."""
        realtime_publishes_total.labels(
            event=event, status="success" if success else "failed"
        ).inc()


# Export singleton instance
metrics = MetricsCollector()
