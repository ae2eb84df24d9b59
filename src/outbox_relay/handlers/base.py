"""Base interfaces for outbox item handlers."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Generic, TypeVar

from outbox_relay.models import OutboxBatchResult, OutboxItem, OutboxItemHandleResult
from outbox_relay.options import OutboxOptions

ItemT = TypeVar("ItemT", bound=OutboxItem)


class OutboxItemHandler(ABC, Generic[ItemT]):
    """
    Handles one outbox item at a time.

    A new handler is built for every item, so implementations may keep state
    on ``self`` without leaking it between items.
    """

    @abstractmethod
    async def handle(self, item: ItemT, options: OutboxOptions) -> OutboxItemHandleResult:
        """
        Process an outbox item, e.g. publish it to a message broker.

        The call happens while the item row is locked, so it should be fast.

        Args:
            item: Locked outbox item
            options: Options of the outbox the item belongs to

        Returns:
            OK or SKIP to remove the item, RETRY to reschedule it.

        Raises:
            Exception: Any error is treated like RETRY.
        """
        pass


class OutboxItemBatchHandler(ABC, Generic[ItemT]):
    """Handles all items fetched in one tick at once."""

    @abstractmethod
    async def handle(self, items: Sequence[ItemT], options: OutboxOptions) -> OutboxBatchResult:
        """
        Process a batch of outbox items.

        Args:
            items: Locked outbox items in fetch order
            options: Options of the outbox the items belong to

        Returns:
            ``OutboxBatchResult.fully_processed()`` or a per-item result map.
        """
        pass


HandlerFactory = Callable[[], OutboxItemHandler]
BatchHandlerFactory = Callable[[], OutboxItemBatchHandler]
