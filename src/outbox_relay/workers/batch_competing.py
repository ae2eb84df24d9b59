"""Batch competing worker: the whole locked batch goes to one batch handler."""

import time

import structlog

from outbox_relay.handlers.base import BatchHandlerFactory
from outbox_relay.infrastructure.repository import OutboxRepository
from outbox_relay.models import HasStatus, OutboxItem, ProcessResult
from outbox_relay.options import OutboxOptions
from outbox_relay.workers.base import OutboxWorker

logger = structlog.get_logger(__name__)


class BatchCompetingOutboxWorker(OutboxWorker):
    """
    Competing discipline with a batch handler.

    Every item is resolved from the handler's result on its own: successes
    are removed, failures rescheduled. Items the handler did not report are
    left as they are and come back on a later tick.
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
        retried: list[OutboxItem] = []

        for item in items:
            result = batch_result.result_for(item.id)
            if result is None:
                logger.warning(
                    "outbox_item_result_missing",
                    outbox=options.name,
                    item_id=str(item.id),
                )
                continue

            if result.is_success():
                self._mark_completed(item, options)
                processed.append(item)
            elif options.features.status and isinstance(item, HasStatus):
                if self._schedule_retry(item, options):
                    retried.append(item)
            else:
                break

        return await self._save(repository, options, len(items), processed, retried)
