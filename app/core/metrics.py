"""Prometheus metrics for monitoring"""
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry
import time
from functools import wraps
from typing import Callable

registry = CollectorRegistry()

request_count = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=registry
)

request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=registry
)

platform_resolutions = Counter(
    'platform_resolutions_total',
    'Platform resolutions by winning signal',
    ['platform', 'signal'],
    registry=registry
)

quotes_total = Counter(
    'quotes_total',
    'Quotes computed by outcome',
    ['platform', 'service_type', 'outcome'],
    registry=registry
)

cache_hits = Counter(
    'cache_hits_total',
    'Total cache hits',
    ['cache'],
    registry=registry
)

cache_misses = Counter(
    'cache_misses_total',
    'Total cache misses',
    ['cache'],
    registry=registry
)

driver_portal_calls = Counter(
    'driver_portal_calls_total',
    'Driver portal calls by operation and result',
    ['operation', 'status'],
    registry=registry
)

driver_portal_duration = Histogram(
    'driver_portal_call_duration_seconds',
    'Driver portal call duration in seconds',
    ['operation'],
    registry=registry
)

redis_connected = Gauge(
    'redis_connected',
    'Redis connection status (1=connected, 0=disconnected)',
    registry=registry
)

rate_table_loaded = Gauge(
    'rate_table_loaded',
    'Rate table load status (1=loaded, 0=failed)',
    registry=registry
)


def track_driver_portal_call(operation: str):
    """Decorator to track driver portal call metrics"""
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            start_time = time.time()
            try:
                result = await func(*args, **kwargs)
                driver_portal_calls.labels(operation=operation, status='success').inc()
                return result
            except Exception:
                driver_portal_calls.labels(operation=operation, status='error').inc()
                raise
            finally:
                driver_portal_duration.labels(operation=operation).observe(time.time() - start_time)
        return wrapper
    return decorator


def get_metrics_text() -> str:
    """Generate Prometheus metrics in text format"""
    from prometheus_client import generate_latest
    return generate_latest(registry).decode('utf-8')
