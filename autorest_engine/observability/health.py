"""
Health checks served by ``/health``.

The engine registers one check for the catalog store and one for the
connection pools of the databases exposed through auto-REST services.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pymongo.errors import (ConnectionFailure, OperationFailure,
                            ServerSelectionTimeoutError)

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health status enumeration."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Outcome of one check, as served under ``checks`` by ``/health``."""

    name: str
    status: HealthStatus
    message: str
    details: dict[str, Any] | None = None
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
        }
        if self.details is not None:
            data["details"] = self.details
        if self.duration_ms is not None:
            data["duration_ms"] = round(self.duration_ms, 2)
        return data


# Worst first; the overall status is the worst one reported
_SEVERITY = (HealthStatus.UNHEALTHY, HealthStatus.DEGRADED, HealthStatus.UNKNOWN, HealthStatus.HEALTHY)


class HealthChecker:
    """
    Runs the registered async checks concurrently and folds them into one
    status. A check that raises is reported as ``unknown`` under its
    function name.
    """

    def __init__(self):
        self._checks: list[Callable[[], Awaitable[HealthCheckResult]]] = []

    def register_check(self, check_func: Callable[[], Awaitable[HealthCheckResult]]) -> None:
        self._checks.append(check_func)

    async def _run(self, check_func: Callable[[], Awaitable[HealthCheckResult]]) -> HealthCheckResult:
        name = getattr(check_func, "__name__", "check")
        start = time.perf_counter()
        try:
            result = await check_func()
        except (RuntimeError, ValueError, TypeError, AttributeError, OSError) as e:
            logger.error(f"Health check {name} failed: {e}", exc_info=True)
            result = HealthCheckResult(name, HealthStatus.UNKNOWN, f"Check failed: {e}")
        if result.duration_ms is None:
            result.duration_ms = (time.perf_counter() - start) * 1000
        return result

    async def check_all(self) -> dict[str, Any]:
        """
        Run every registered check.

        Returns:
            ``{"status", "timestamp", "checks"}``; checks keep registration order
        """
        results = await asyncio.gather(*(self._run(check) for check in self._checks))
        reported = {r.status for r in results}
        overall = next((s for s in _SEVERITY if s in reported), HealthStatus.HEALTHY)
        return {
            "status": overall.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": [r.to_dict() for r in results],
        }


async def check_catalog_health(store: Any | None, timeout_seconds: float = 5.0) -> HealthCheckResult:
    """
    Check that the catalog store answers.

    Args:
        store: CatalogStore instance
        timeout_seconds: Timeout for the ping

    Returns:
        HealthCheckResult
    """
    if store is None:
        return HealthCheckResult(
            name="catalog",
            status=HealthStatus.UNHEALTHY,
            message="Catalog not initialized",
        )

    try:
        await asyncio.wait_for(store.ping(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        return HealthCheckResult(
            name="catalog",
            status=HealthStatus.UNHEALTHY,
            message=f"Catalog ping timed out after {timeout_seconds}s",
        )
    except (
        ConnectionFailure,
        OperationFailure,
        ServerSelectionTimeoutError,
        RuntimeError,
        OSError,
    ) as e:
        return HealthCheckResult(
            name="catalog",
            status=HealthStatus.UNHEALTHY,
            message=f"Catalog health check failed: {str(e)}",
        )

    return HealthCheckResult(
        name="catalog",
        status=HealthStatus.HEALTHY,
        message="Catalog is healthy",
        details={"backend": store.backend_name},
    )


async def check_driver_pool_health(registry: Any | None) -> HealthCheckResult:
    """
    Report the connection pools opened for exposed databases.

    Pools are created lazily, so an empty registry is healthy.

    Args:
        registry: DriverRegistry instance

    Returns:
        HealthCheckResult
    """
    if registry is None:
        return HealthCheckResult(
            name="driver_pools",
            status=HealthStatus.UNKNOWN,
            message="Driver registry not available",
        )

    pools = registry.pool_status()
    exhausted = [
        key
        for key, info in pools.items()
        if info.get("size") and info.get("checked_out", 0) >= info["size"]
    ]
    if exhausted:
        return HealthCheckResult(
            name="driver_pools",
            status=HealthStatus.DEGRADED,
            message=f"{len(exhausted)} pool(s) fully checked out",
            details=pools,
        )

    return HealthCheckResult(
        name="driver_pools",
        status=HealthStatus.HEALTHY,
        message=f"{len(pools)} driver pool(s) open",
        details=pools,
    )
