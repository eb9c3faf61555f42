"""
Unit tests for MetricsCollector.

Tests metrics collection functionality including:
- Thread-safety under concurrent access
- Bounded storage with LRU eviction
- Aggregation across tags
- The timed_operation decorator
"""

import threading

import pytest

from autorest_engine.observability.metrics import (MetricsCollector,
                                                   get_metrics_collector,
                                                   record_operation,
                                                   timed_operation,
                                                   track_operation)


@pytest.mark.unit
class TestMetricsCollectorThreadSafety:
    """Test thread-safety of metrics collection."""

    def test_concurrent_record_operation(self):
        """Concurrent record_operation calls lose no executions."""
        collector = MetricsCollector()
        num_threads = 10
        operations_per_thread = 100
        barrier = threading.Barrier(num_threads)

        def record_operations(thread_id: int):
            barrier.wait()
            for i in range(operations_per_thread):
                collector.record_operation(
                    "autorest.list",
                    duration_ms=10.0 + i,
                    success=True,
                    entity=f"entity_{thread_id}",
                )

        threads = [
            threading.Thread(target=record_operations, args=(i,)) for i in range(num_threads)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        total_expected = num_threads * operations_per_thread
        assert collector.get_operation_count("autorest.list") == total_expected


@pytest.mark.unit
class TestMetricsCollectorStorage:
    def test_tags_make_separate_keys(self):
        collector = MetricsCollector()
        collector.record_operation("autorest.list", 5.0, entity="orders", service="sales")
        collector.record_operation("autorest.list", 7.0, entity="items", service="sales")

        metrics = collector.get_metrics("autorest.list")["metrics"]
        assert set(metrics) == {
            "autorest.list[entity=orders_service=sales]",
            "autorest.list[entity=items_service=sales]",
        }

    def test_lru_eviction(self):
        collector = MetricsCollector(max_metrics=2)
        collector.record_operation("a", 1.0)
        collector.record_operation("b", 1.0)
        collector.record_operation("a", 1.0)
        collector.record_operation("c", 1.0)

        metrics = collector.get_metrics()["metrics"]
        assert set(metrics) == {"a", "c"}
        assert metrics["a"]["count"] == 2

    def test_summary_aggregates_tags(self):
        collector = MetricsCollector()
        collector.record_operation("autorest.create", 10.0, entity="orders")
        collector.record_operation("autorest.create", 30.0, success=False, entity="items")

        summary = collector.get_summary()["summary"]["autorest.create"]
        assert summary["count"] == 2
        assert summary["avg_duration_ms"] == 20.0
        assert summary["min_duration_ms"] == 10.0
        assert summary["max_duration_ms"] == 30.0
        assert summary["error_count"] == 1
        assert summary["error_rate_percent"] == 50.0

    def test_empty_metric_dict(self):
        collector = MetricsCollector()
        assert collector.get_metrics()["metrics"] == {}
        assert collector.get_operation_count("nothing") == 0

    def test_reset(self):
        collector = MetricsCollector()
        collector.record_operation("a", 1.0)
        collector.reset()
        assert collector.get_metrics()["total_operations"] == 0


@pytest.mark.unit
class TestGlobalCollector:
    def test_singleton(self):
        assert get_metrics_collector() is get_metrics_collector()

    def test_record_operation_helper(self):
        record_operation("driver.find", 3.0, db_type="SQLITE")
        assert get_metrics_collector().get_operation_count("driver.find") == 1

    @pytest.mark.asyncio
    async def test_timed_async_operation(self):
        @timed_operation("job.async", kind="test")
        async def job(fail: bool):
            if fail:
                raise ValueError("boom")
            return "done"

        assert await job(False) == "done"
        with pytest.raises(ValueError):
            await job(True)

        metric = get_metrics_collector().get_summary()["summary"]["job.async"]
        assert metric["count"] == 2
        assert metric["error_count"] == 1

    def test_timed_sync_operation(self):
        @timed_operation("job.sync")
        def job():
            return 42

        assert job() == 42
        assert get_metrics_collector().get_operation_count("job.sync") == 1


@pytest.mark.unit
class TestMetricsSummary:
    def test_latency_percentiles(self):
        collector = MetricsCollector()
        for duration in range(1, 101):
            collector.record_operation("autorest.list", float(duration))

        stats = collector.get_metrics("autorest.list")["metrics"]["autorest.list"]
        assert stats["p50_duration_ms"] == 51.0
        assert stats["p95_duration_ms"] == 95.0

    def test_none_tags_are_dropped(self):
        collector = MetricsCollector()
        collector.record_operation("autorest.list", 1.0, entity="orders", service=None)
        assert list(collector.get_metrics()["metrics"]) == ["autorest.list[entity=orders]"]

    def test_per_entity_view(self):
        collector = MetricsCollector()
        collector.record_operation("autorest.list", 4.0, service="sales", entity="orders")
        collector.record_operation("autorest.list", 6.0, service="sales", entity="orders", dialect="SQLITE")
        collector.record_operation("autorest.delete", 1.0, success=False, service="sales", entity="orders")
        collector.record_operation("catalog.find_one", 1.0, collection="autorest_services")

        entities = collector.get_summary()["entities"]

        assert list(entities) == ["sales/orders"]
        assert entities["sales/orders"]["autorest.list"]["count"] == 2
        assert entities["sales/orders"]["autorest.list"]["avg_duration_ms"] == 5.0
        assert entities["sales/orders"]["autorest.delete"]["error_count"] == 1


@pytest.mark.unit
class TestTrackOperation:
    def test_block_failure_is_recorded(self):
        with pytest.raises(KeyError):
            with track_operation("driver.reflect", db_type="SQLITE"):
                raise KeyError("missing")

        stats = get_metrics_collector().get_metrics("driver.reflect")["metrics"]
        assert stats["driver.reflect[db_type=SQLITE]"]["error_count"] == 1
