"""Host process running the schedulers of every registered outbox."""

import asyncio
import signal
import sys
from typing import Any

from outbox_relay.config import settings
from outbox_relay.infrastructure.metrics import OutboxMetricCollector, get_metric_collector
from outbox_relay.logging_config import configure_logging, get_logger
from outbox_relay.registry import OutboxRegistry
from outbox_relay.scheduler import OutboxScheduler, PartitionScheduler

logger = get_logger(__name__)


class OutboxHost:
    """Starts one scheduler task per outbox and one partition task per partitioned outbox."""

    def __init__(
        self,
        registry: OutboxRegistry,
        metrics: OutboxMetricCollector | None = None,
    ) -> None:
        self.registry = registry
        self.metrics = metrics or get_metric_collector()
        self.running = False
        self.logger = get_logger(self.__class__.__name__)
        self._schedulers: list[OutboxScheduler | PartitionScheduler] = []
        self._tasks: list[asyncio.Task] = []

    def start(self) -> None:
        """Create the scheduler tasks; they run until :meth:`stop`."""
        if self.running:
            return
        self.running = True

        for registration in self.registry:
            name = registration.name
            options = self.registry.options(name)

            scheduler = OutboxScheduler(
                name,
                self.registry.create_worker(name, metrics=self.metrics),
                self.registry.monitor,
                metrics=self.metrics,
            )
            self._spawn(scheduler, f"outbox-{name}")

            if options.partitioned:
                partition_scheduler = PartitionScheduler(
                    name,
                    lambda name=name: self.registry.create_partitioner(name),
                    self.registry.monitor,
                )
                self._spawn(partition_scheduler, f"outbox-partitions-{name}")

        self.logger.info(
            "outbox_host_started",
            outboxes=[registration.name for registration in self.registry],
            environment=settings.environment,
        )

    async def wait(self) -> None:
        """Wait until every task has ended; a failed task is logged, not raised."""
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, Exception):
                self.logger.error(
                    "outbox_task_failed",
                    task=task.get_name(),
                    error=str(result),
                    exc_info=result,
                )

    async def stop(self) -> None:
        """Gracefully stop all schedulers and wait for in-flight ticks."""
        if not self.running:
            return
        self.logger.info("outbox_host_stopping")
        self.running = False

        for scheduler in self._schedulers:
            scheduler.stop()
        await self.wait()

        self._schedulers.clear()
        self._tasks.clear()
        self.logger.info("outbox_host_stopped")

    def _spawn(self, scheduler: OutboxScheduler | PartitionScheduler, task_name: str) -> None:
        self._schedulers.append(scheduler)
        self._tasks.append(asyncio.create_task(scheduler.run(), name=task_name))


async def run_host(registry: OutboxRegistry) -> None:
    """
    Run the outboxes of ``registry`` until SIGTERM or SIGINT.

    Example:
        async def main() -> None:
            pool = await get_pool()
            registry = OutboxRegistry()
            registry.add_outbox_item(OrderEvent, pool=pool, handler_factory=...)
            await run_host(registry)

        asyncio.run(main())
    """
    configure_logging(
        log_level="DEBUG" if settings.debug else settings.log_level,
        format_as_json=settings.environment != "development",
        include_outbox_context=True,
    )

    host = OutboxHost(registry)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler(sig: Any) -> None:
        logger.info("received_signal", signal=signal.Signals(sig).name)
        asyncio.create_task(host.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        host.start()
        await host.wait()
    except Exception as e:
        logger.error("fatal_error", error=str(e), exc_info=True)
        sys.exit(1)
    finally:
        await host.stop()
        logger.info("outbox_host_exited")
