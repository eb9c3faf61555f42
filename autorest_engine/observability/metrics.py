"""
Metrics collection for AUTOREST_ENGINE.

Every generated CRUD call, catalog lookup and schema reflection is recorded
under an operation name (``autorest.list``, ``catalog.find_one``,
``driver.reflect``...) plus tags such as service, entity and dialect. The
``/metrics`` endpoint serves :meth:`MetricsCollector.get_summary`.
"""

import functools
import inspect
import threading
import time
from collections import OrderedDict, deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# Recent durations kept per key for the latency percentiles
LATENCY_SAMPLE_SIZE = 256

MetricKey = tuple[str, tuple[tuple[str, str], ...]]


def _percentile(samples: list[float], fraction: float) -> float:
    if not samples:
        return 0.0
    ordered = sorted(samples)
    index = min(len(ordered) - 1, int(round(fraction * (len(ordered) - 1))))
    return ordered[index]


@dataclass
class OperationStats:
    """Counters and latency samples of one operation under one tag set."""

    operation_name: str
    count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float | None = None
    max_duration_ms: float = 0.0
    last_execution: datetime | None = None
    samples: deque = field(default_factory=lambda: deque(maxlen=LATENCY_SAMPLE_SIZE))

    def record(self, duration_ms: float, success: bool) -> None:
        self.count += 1
        if not success:
            self.error_count += 1
        self.total_duration_ms += duration_ms
        if self.min_duration_ms is None or duration_ms < self.min_duration_ms:
            self.min_duration_ms = duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        self.samples.append(duration_ms)
        self.last_execution = datetime.now(timezone.utc)

    def absorb(self, other: "OperationStats") -> None:
        """Add the counts of ``other`` (same operation, other tags)."""
        self.count += other.count
        self.error_count += other.error_count
        self.total_duration_ms += other.total_duration_ms
        if other.min_duration_ms is not None:
            if self.min_duration_ms is None or other.min_duration_ms < self.min_duration_ms:
                self.min_duration_ms = other.min_duration_ms
        self.max_duration_ms = max(self.max_duration_ms, other.max_duration_ms)
        self.samples.extend(other.samples)
        if other.last_execution and (
            self.last_execution is None or other.last_execution > self.last_execution
        ):
            self.last_execution = other.last_execution

    def to_dict(self) -> dict[str, Any]:
        samples = list(self.samples)
        avg = self.total_duration_ms / self.count if self.count else 0.0
        return {
            "operation": self.operation_name,
            "count": self.count,
            "error_count": self.error_count,
            "error_rate_percent": round(self.error_count / self.count * 100, 2) if self.count else 0.0,
            "avg_duration_ms": round(avg, 2),
            "min_duration_ms": round(self.min_duration_ms or 0.0, 2),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "p50_duration_ms": round(_percentile(samples, 0.5), 2),
            "p95_duration_ms": round(_percentile(samples, 0.95), 2),
            "last_execution": self.last_execution.isoformat() if self.last_execution else None,
        }


class MetricsCollector:
    """
    Thread-safe store of :class:`OperationStats`.

    Stats are keyed by operation name and tag set and rendered as
    ``autorest.list[entity=orders_service=sales]``. Once ``max_metrics`` keys
    exist, the one touched least recently is dropped.
    """

    def __init__(self, max_metrics: int = 10000):
        self._stats: OrderedDict[MetricKey, OperationStats] = OrderedDict()
        self._lock = threading.Lock()
        self._max_metrics = max_metrics

    @staticmethod
    def _label(key: MetricKey) -> str:
        operation_name, tags = key
        if not tags:
            return operation_name
        return f"{operation_name}[{'_'.join(f'{k}={v}' for k, v in tags)}]"

    def record_operation(
        self, operation_name: str, duration_ms: float, success: bool = True, **tags: Any
    ) -> None:
        """
        Record one execution of an operation.

        Tags with a ``None`` value are left out of the key.
        """
        key: MetricKey = (
            operation_name,
            tuple(sorted((k, str(v)) for k, v in tags.items() if v is not None)),
        )
        with self._lock:
            stats = self._stats.get(key)
            if stats is None:
                if len(self._stats) >= self._max_metrics:
                    self._stats.popitem(last=False)
                stats = self._stats[key] = OperationStats(operation_name)
            else:
                self._stats.move_to_end(key)
            stats.record(duration_ms, success)

    def get_metrics(self, operation_name: str | None = None) -> dict[str, Any]:
        """Per-key stats, optionally limited to labels starting with ``operation_name``."""
        with self._lock:
            labelled = {self._label(key): stats.to_dict() for key, stats in self._stats.items()}
            total_operations = len(self._stats)
        if operation_name is not None:
            labelled = {k: v for k, v in labelled.items() if k.startswith(operation_name)}
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "metrics": labelled,
            "total_operations": total_operations,
        }

    def get_summary(self) -> dict[str, Any]:
        """
        Stats folded by operation name, plus a per-entity view of the
        ``autorest.*`` operations keyed ``service/entity``.
        """
        summary: dict[str, OperationStats] = {}
        entities: dict[str, dict[str, OperationStats]] = {}
        with self._lock:
            for (operation_name, tags), stats in self._stats.items():
                summary.setdefault(operation_name, OperationStats(operation_name)).absorb(stats)
                tag_map = dict(tags)
                if operation_name.startswith("autorest.") and "entity" in tag_map:
                    name = f"{tag_map.get('service', '-')}/{tag_map['entity']}"
                    per_entity = entities.setdefault(name, {})
                    per_entity.setdefault(operation_name, OperationStats(operation_name)).absorb(stats)
            total_operations = len(self._stats)

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "total_operations": total_operations,
            "summary": {name: stats.to_dict() for name, stats in summary.items()},
            "entities": {
                name: {op: stats.to_dict() for op, stats in ops.items()}
                for name, ops in sorted(entities.items())
            },
        }

    def get_operation_count(self, operation_name: str) -> int:
        """Executions of ``operation_name`` across every tag set."""
        with self._lock:
            return sum(s.count for (name, _), s in self._stats.items() if name == operation_name)

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()


_metrics_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get or create the process-wide collector."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def record_operation(
    operation_name: str, duration_ms: float, success: bool = True, **tags: Any
) -> None:
    """Record an operation in the process-wide collector."""
    get_metrics_collector().record_operation(operation_name, duration_ms, success, **tags)


@contextmanager
def track_operation(operation_name: str, **tags: Any) -> Iterator[None]:
    """
    Time the enclosed block and record it; an exception counts as a failure.

    Usage:
        with track_operation("driver.reflect", db_type="POSTGRESQL"):
            ...
    """
    start = time.perf_counter()
    success = False
    try:
        yield
        success = True
    finally:
        record_operation(operation_name, (time.perf_counter() - start) * 1000, success, **tags)


def timed_operation(operation_name: str, **tags: Any):
    """
    Decorator form of :func:`track_operation` for sync and async callables.

    Usage:
        @timed_operation("engine.initialize")
        async def initialize(self):
            ...
    """

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with track_operation(operation_name, **tags):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with track_operation(operation_name, **tags):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator
