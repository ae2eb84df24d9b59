"""Competing worker: many workers drain disjoint batches concurrently."""

import time

import structlog

from outbox_relay.handlers.base import HandlerFactory
from outbox_relay.infrastructure.repository import OutboxRepository
from outbox_relay.models import HasStatus, OutboxItem, OutboxItemHandleResult, ProcessResult
from outbox_relay.options import OutboxOptions
from outbox_relay.workers.base import OutboxWorker

logger = structlog.get_logger(__name__)


class CompetingOutboxWorker(OutboxWorker):
    """
    Each item of the batch is handled independently.

    Failed items are rescheduled for retry and do not hold back the rest of
    the batch. An item without status capability cannot be rescheduled, so
    the first such failure ends the scan; everything decided before it is
    still saved.
    """

    def __init__(self, repository_factory, handler_factory: HandlerFactory, **kwargs) -> None:
        super().__init__(repository_factory, **kwargs)
        self.handler_factory = handler_factory

    async def _process(self, repository: OutboxRepository, options: OutboxOptions) -> ProcessResult:
        items = await self._fetch(repository, options)
        if not items:
            await repository.save([], [])
            return ProcessResult()

        processed: list[OutboxItem] = []
        retried: list[OutboxItem] = []

        for item in items:
            result = await self._handle(item, options)

            if result.is_success():
                self._mark_completed(item, options)
                processed.append(item)
            elif options.features.status and isinstance(item, HasStatus):
                if self._schedule_retry(item, options):
                    retried.append(item)
            else:
                break

        return await self._save(repository, options, len(items), processed, retried)

    async def _handle(self, item: OutboxItem, options: OutboxOptions) -> OutboxItemHandleResult:
        handler = self.handler_factory()
        started = time.perf_counter()
        try:
            return await handler.handle(item, options)
        except Exception as e:
            logger.error(
                "outbox_item_handler_failed",
                outbox=options.name,
                item_id=str(item.id),
                error=str(e),
                exc_info=True,
            )
            return OutboxItemHandleResult.RETRY
        finally:
            self._observe_handler(started, options)
