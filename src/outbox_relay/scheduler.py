"""Periodic loops driving outbox workers and partition maintenance."""

import asyncio
import time
from collections.abc import Callable

import structlog

from outbox_relay.infrastructure.metrics import OutboxMetricCollector, get_metric_collector
from outbox_relay.infrastructure.partitioner import Partitioner
from outbox_relay.models import PartitioningNotConfiguredError, ProcessResult
from outbox_relay.options import OutboxOptionsMonitor
from outbox_relay.workers import OutboxWorker

logger = structlog.get_logger(__name__)


class OutboxScheduler:
    """
    Runs worker ticks of one outbox, ``worker_delay`` apart.

    ``worker_delay`` and ``is_worker_enabled`` are read from the monitor on
    every iteration, so reloaded settings apply from the next tick on.
    """

    def __init__(
        self,
        name: str,
        worker: OutboxWorker,
        monitor: OutboxOptionsMonitor,
        metrics: OutboxMetricCollector | None = None,
    ) -> None:
        self.name = name
        self.worker = worker
        self.monitor = monitor
        self.metrics = metrics or get_metric_collector()
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        """Ask the loop to exit; an in-flight tick is finished first."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    async def run(self) -> None:
        """Loop until :meth:`stop` is called or the task is cancelled."""
        logger.info("outbox_scheduler_started", outbox=self.name)

        while not self._stop_event.is_set():
            delay = self.monitor.get(self.name).settings.worker_delay.total_seconds()

            started = time.perf_counter()
            if await self._wait(delay):
                break
            self.metrics.record_sleep_duration(time.perf_counter() - started, self.name)

            await self.tick()

        logger.info("outbox_scheduler_stopped", outbox=self.name)

    async def tick(self) -> ProcessResult | None:
        """
        Run one worker tick with the current options, if the worker is enabled.

        Returns:
            The tick result, or None when the worker is disabled
        """
        options = self.monitor.get(self.name)
        if not options.settings.is_worker_enabled:
            logger.debug("outbox_worker_disabled", outbox=self.name)
            return None

        started = time.perf_counter()
        try:
            result = await self.worker.process(options)
        except Exception as e:
            # Workers contain their own errors; this keeps the loop alive regardless
            logger.error("outbox_tick_failed", outbox=self.name, error=str(e), exc_info=True)
            result = ProcessResult(failed=True)
        finally:
            self.metrics.record_process_duration(time.perf_counter() - started, self.name)

        return result

    async def _wait(self, timeout: float) -> bool:
        """Sleep ``timeout`` seconds; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False


class PartitionScheduler:
    """
    Creates upcoming and retires old partitions of one outbox table.

    Runs right away, then every ``precreate_partition_period``. A table that
    is not partitioned is a setup error: the loop ends by raising
    :class:`PartitioningNotConfiguredError`. Other errors are logged and the
    next period tries again.
    """

    def __init__(
        self,
        name: str,
        partitioner_factory: Callable[[], Partitioner],
        monitor: OutboxOptionsMonitor,
    ) -> None:
        self.name = name
        self.partitioner_factory = partitioner_factory
        self.monitor = monitor
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        logger.info("partition_scheduler_started", outbox=self.name)

        while not self._stop_event.is_set():
            partition_settings = self.monitor.get(self.name).settings.partition
            if partition_settings.enabled:
                await self.maintain()

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=partition_settings.precreate_partition_period.total_seconds(),
                )
            except asyncio.TimeoutError:
                continue

        logger.info("partition_scheduler_stopped", outbox=self.name)

    async def maintain(self) -> None:
        """Create upcoming partitions, then retire old ones."""
        partitioner = self.partitioner_factory()
        try:
            await partitioner.create_partitions()
            await partitioner.delete_old_partitions()
        except PartitioningNotConfiguredError:
            raise
        except Exception as e:
            logger.error(
                "partition_maintenance_failed",
                outbox=self.name,
                error=str(e),
                exc_info=True,
            )
