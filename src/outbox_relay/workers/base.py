"""Base class for outbox worker strategies."""

import random
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime

import structlog

from outbox_relay.config import RetrySettings
from outbox_relay.infrastructure.metrics import OutboxMetricCollector, get_metric_collector
from outbox_relay.infrastructure.repository import OutboxRepository, RepositoryFactory, utcnow
from outbox_relay.models import (
    HasStatus,
    OutboxItem,
    OutboxItemStatus,
    ProcessResult,
)
from outbox_relay.options import OutboxOptions
from outbox_relay.retry import compute_retry_delay

logger = structlog.get_logger(__name__)


class OutboxWorker(ABC):
    """
    Runs one processing tick of an outbox.

    A tick opens a repository, locks a batch, hands it to the handler and
    saves the outcome in the same transaction. Any error inside the tick is
    logged and reported as a failed :class:`ProcessResult`, so the caller's
    loop keeps going. Cancellation is not an error: the transaction is rolled
    back and ``asyncio.CancelledError`` propagates.
    """

    #: Whether the worker drives a batch handler
    batched: bool = False

    def __init__(
        self,
        repository_factory: RepositoryFactory,
        metrics: OutboxMetricCollector | None = None,
        clock: Callable[[], datetime] = utcnow,
        rng: random.Random | None = None,
    ) -> None:
        """
        Args:
            repository_factory: Builds a fresh repository for each tick
            metrics: Metric collector (process-wide collector by default)
            clock: Current UTC time, used for retry scheduling
            rng: Random source for retry delay jitter
        """
        self.repository_factory = repository_factory
        self.metrics = metrics or get_metric_collector()
        self.clock = clock
        self.rng = rng

    async def process(self, options: OutboxOptions) -> ProcessResult:
        """
        Process one batch of ``options`` outbox.

        Returns:
            Counts of fetched, processed and retried items; ``failed`` is set
            when the tick was aborted and rolled back.
        """
        try:
            async with self.repository_factory(options) as repository:
                return await self._process(repository, options)
        except Exception as e:
            logger.error(
                "outbox_process_failed",
                outbox=options.name,
                error=str(e),
                exc_info=True,
            )
            return ProcessResult(failed=True)

    @abstractmethod
    async def _process(self, repository: OutboxRepository, options: OutboxOptions) -> ProcessResult:
        """Tick body, running inside an open repository."""
        pass

    async def _fetch(self, repository: OutboxRepository, options: OutboxOptions) -> list[OutboxItem]:
        items = await repository.lock_and_fetch(options.settings.outbox_items_limit)

        if not items:
            logger.debug("outbox_items_empty", outbox=options.name)
            return items

        count = len(items)
        logger.debug("outbox_items_fetched", outbox=options.name, count=count)
        self.metrics.inc_fetched_count(options.name, count)
        if count == options.settings.outbox_items_limit:
            self.metrics.inc_full_batch_count(options.name)

        return items

    async def _save(
        self,
        repository: OutboxRepository,
        options: OutboxOptions,
        fetched: int,
        processed: Sequence[OutboxItem],
        retried: Sequence[OutboxItem] = (),
    ) -> ProcessResult:
        self.metrics.inc_processed_count(options.name, len(processed))
        self.metrics.inc_retried_count(options.name, len(retried))

        await repository.save(processed, retried)

        logger.debug(
            "outbox_items_process_result",
            outbox=options.name,
            processed=len(processed),
            retried=len(retried),
        )
        return ProcessResult(fetched=fetched, processed=len(processed), retried=len(retried))

    def _observe_handler(self, started: float, options: OutboxOptions) -> None:
        self.metrics.record_handler_duration(
            time.perf_counter() - started, options.name, self.batched
        )

    @staticmethod
    def _mark_completed(item: OutboxItem, options: OutboxOptions) -> None:
        # Partitioned tables keep completed rows until the partition is dropped
        if options.partitioned and isinstance(item, HasStatus):
            item.status = OutboxItemStatus.COMPLETED

    def _schedule_retry(self, item: HasStatus, options: OutboxOptions) -> bool:
        """
        Reschedule a failed item.

        Returns:
            False when retries are disabled; the item is then left as it was
            and becomes eligible again on the next tick.
        """
        retry_settings: RetrySettings = options.settings.retry
        if not retry_settings.is_enabled:
            return False

        item.status = OutboxItemStatus.RETRY
        item.retry_count = (item.retry_count or 0) + 1
        item.retry_after = self.clock() + compute_retry_delay(
            retry_settings, item.retry_count, self.rng
        )

        if retry_settings.log_on_retry:
            logger.info(
                "outbox_item_scheduled_for_retry",
                outbox=options.name,
                item_id=str(item.id),
                retry_count=item.retry_count,
                retry_after=item.retry_after.isoformat(),
            )
        return True
