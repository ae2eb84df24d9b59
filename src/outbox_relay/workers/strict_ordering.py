"""Strict ordering worker: one active worker, items handled in id order."""

import time

import structlog

from outbox_relay.handlers.base import HandlerFactory
from outbox_relay.infrastructure.repository import OutboxRepository
from outbox_relay.models import OutboxItem, ProcessResult
from outbox_relay.options import OutboxOptions
from outbox_relay.workers.base import OutboxWorker

logger = structlog.get_logger(__name__)


class StrictOrderingOutboxWorker(OutboxWorker):
    """
    Handles items one by one and stops at the first failure.

    The processed prefix is committed; the failed item and everything after
    it stay untouched, so the next tick resumes from the same item. Several
    instances may run, but the NOWAIT lock lets only one of them own the
    batch at a time; the others see an empty tick.
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

        for item in items:
            if not await self._handle(item, options):
                break
            self._mark_completed(item, options)
            processed.append(item)

        return await self._save(repository, options, len(items), processed)

    async def _handle(self, item: OutboxItem, options: OutboxOptions) -> bool:
        handler = self.handler_factory()
        started = time.perf_counter()
        try:
            result = await handler.handle(item, options)
        except Exception as e:
            logger.error(
                "outbox_item_handler_failed",
                outbox=options.name,
                item_id=str(item.id),
                error=str(e),
                exc_info=True,
            )
            return False
        finally:
            self._observe_handler(started, options)

        if not result.is_success():
            logger.info(
                "outbox_item_not_processed",
                outbox=options.name,
                item_id=str(item.id),
                result=result.name,
            )
            return False
        return True
