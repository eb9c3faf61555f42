"""
Observability components.

Request-scoped logging, operation metrics and health checks.
"""

from .health import (HealthChecker, HealthCheckResult, HealthStatus,
                     check_catalog_health, check_driver_pool_health)
from .logging import (RequestLoggerAdapter, bind_log_context,
                      bind_request_id, get_logger, get_logging_context,
                      get_request_id, log_operation, request_scope)
from .metrics import (MetricsCollector, OperationStats,
                      get_metrics_collector, record_operation,
                      timed_operation, track_operation)

__all__ = [
    # Metrics
    "MetricsCollector",
    "OperationStats",
    "get_metrics_collector",
    "record_operation",
    "track_operation",
    "timed_operation",
    # Logging
    "get_request_id",
    "bind_request_id",
    "bind_log_context",
    "get_logging_context",
    "request_scope",
    "RequestLoggerAdapter",
    "get_logger",
    "log_operation",
    # Health
    "HealthStatus",
    "HealthCheckResult",
    "HealthChecker",
    "check_catalog_health",
    "check_driver_pool_health",
]
