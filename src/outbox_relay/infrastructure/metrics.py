"""Prometheus metrics for outbox processing.

Usage:
    from outbox_relay.infrastructure.metrics import get_metric_collector

    metrics = get_metric_collector()
    metrics.inc_fetched_count("orders", 10)
"""

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

_DURATION_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class OutboxMetricCollector:
    """Counters and histograms of outbox workers, labelled by outbox name."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.process_duration = Histogram(
            "outbox_worker_process_duration_seconds",
            "Duration of worker processing one batch",
            labelnames=["outbox"],
            buckets=_DURATION_BUCKETS,
            registry=registry,
        )
        self.sleep_duration = Histogram(
            "outbox_worker_sleep_duration_seconds",
            "Duration of worker sleep between batches",
            labelnames=["outbox"],
            buckets=_DURATION_BUCKETS,
            registry=registry,
        )
        self.handler_duration = Histogram(
            "outbox_worker_handler_duration_seconds",
            "Duration of processing by outbox item handler",
            labelnames=["outbox", "batched"],
            buckets=_DURATION_BUCKETS,
            registry=registry,
        )
        self.fetched_total = Counter(
            "outbox_items_fetched_total",
            "Outbox items fetched",
            labelnames=["outbox"],
            registry=registry,
        )
        self.processed_total = Counter(
            "outbox_items_processed_total",
            "Outbox items processed",
            labelnames=["outbox"],
            registry=registry,
        )
        self.retried_total = Counter(
            "outbox_items_retried_total",
            "Outbox items scheduled for retry",
            labelnames=["outbox"],
            registry=registry,
        )
        self.full_batches_total = Counter(
            "outbox_full_batches_total",
            "Fetches that returned a full batch",
            labelnames=["outbox"],
            registry=registry,
        )

    def record_process_duration(self, seconds: float, outbox: str) -> None:
        self.process_duration.labels(outbox=outbox).observe(seconds)

    def record_sleep_duration(self, seconds: float, outbox: str) -> None:
        self.sleep_duration.labels(outbox=outbox).observe(seconds)

    def record_handler_duration(self, seconds: float, outbox: str, batched: bool) -> None:
        self.handler_duration.labels(outbox=outbox, batched=str(batched).lower()).observe(seconds)

    def inc_fetched_count(self, outbox: str, count: int) -> None:
        self.fetched_total.labels(outbox=outbox).inc(count)

    def inc_processed_count(self, outbox: str, count: int) -> None:
        if count:
            self.processed_total.labels(outbox=outbox).inc(count)

    def inc_retried_count(self, outbox: str, count: int) -> None:
        if count:
            self.retried_total.labels(outbox=outbox).inc(count)

    def inc_full_batch_count(self, outbox: str) -> None:
        self.full_batches_total.labels(outbox=outbox).inc()


_collector: OutboxMetricCollector | None = None


def get_metric_collector() -> OutboxMetricCollector:
    """Process-wide collector registered in the default Prometheus registry."""
    global _collector
    if _collector is None:
        _collector = OutboxMetricCollector()
    return _collector
