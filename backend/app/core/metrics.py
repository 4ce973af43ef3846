"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Allocation metrics
allocation_attempts = Counter(
    'allocation_attempts_total',
    'Total allocation attempts',
    ['status']  # success, conflict, capacity, error
)

allocation_latency = Histogram(
    'allocation_latency_seconds',
    'Allocate request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

allocations_ended = Counter(
    'allocations_ended_total',
    'Allocations ended'
)

# Lost races on the conditional bed claim
bed_claim_conflicts = Counter(
    'bed_claim_conflicts_total',
    'Conditional bed claims that matched no available bed'
)

# Room lock metrics
room_lock_requests = Counter(
    'room_lock_requests_total',
    'Room lock acquisitions',
    ['result']  # acquired, busy, bypassed
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Database retry attempts due to version conflicts'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )

# Convenience functions for instrumentation
def record_allocation_attempt(status: str):
    """Record allocation attempt. Status: success, conflict, capacity, error"""
    allocation_attempts.labels(status=status).inc()

def record_room_lock(result: str):
    """Record room lock outcome. Result: acquired, busy, bypassed"""
    room_lock_requests.labels(result=result).inc()

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
