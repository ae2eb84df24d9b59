"""Batch strict ordering worker."""

import time

import structlog

from outbox_relay.handlers.base import BatchHandlerFactory
from outbox_relay.infrastructure.repository import OutboxRepository
from outbox_relay.models import OutboxItem, ProcessResult
from outbox_relay.options import OutboxOptions
from outbox_relay.workers.base import OutboxWorker

logger = structlog.get_logger(__name__)


class BatchStrictOrderingOutboxWorker(OutboxWorker):
    """
    Strict ordering discipline with a batch handler.

    Results are walked in fetch order and the walk stops at the first item
    that did not succeed. An item missing from the result map also stops the
    walk, since committing later items would reorder the outbox.
    """

    batched = True

    def __init__(
        self, repository_factory, batch_handler_factory: BatchHandlerFactory, **kwargs
    ) -> None:
        super().__init__(repository_factory, **kwargs)
        self.batch_handler_factory = batch_handler_factory

    async def _process(self, repository: OutboxRepository, options: OutboxOptions) -> ProcessResult:
        items = await self._fetch(repository, options)
        if not items:
            await repository.save([], [])
            return ProcessResult()

        handler = self.batch_handler_factory()
        started = time.perf_counter()
        try:
            batch_result = await handler.handle(items, options)
        finally:
            self._observe_handler(started, options)

        processed: list[OutboxItem] = []

        for item in items:
            result = batch_result.result_for(item.id)
            if result is None or not result.is_success():
                logger.info(
                    "outbox_item_not_processed",
                    outbox=options.name,
                    item_id=str(item.id),
                    result=result.name if result is not None else None,
                )
                break
            self._mark_completed(item, options)
            processed.append(item)

        return await self._save(repository, options, len(items), processed)
