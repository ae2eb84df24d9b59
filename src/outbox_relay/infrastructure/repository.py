"""Locking repository contract shared by all storage backends."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from types import TracebackType
from typing import ClassVar

from outbox_relay.models import OutboxItem, RetryNotSupportedError
from outbox_relay.options import OutboxOptions

# SQLSTATE raised by FOR UPDATE NOWAIT when a row is locked by another transaction
LOCK_NOT_AVAILABLE = "55P03"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OutboxRepository(ABC):
    """
    Fetches and locks outbox items inside a transaction, then saves outcomes.

    One repository instance serves one worker tick:

        async with repository:
            items = await repository.lock_and_fetch()
            ...
            await repository.save(completed, retried)

    The transaction opened by ``lock_and_fetch`` holds the row locks until
    ``save`` commits. Leaving the ``async with`` block rolls back whatever is
    still open and releases the connection, including on errors and
    cancellation.
    """

    #: Row lock clause appended to the fetch query
    lock_clause: ClassVar[str]

    #: Whether ``save`` accepts retried items
    supports_retry: ClassVar[bool] = True

    def __init__(
        self,
        options: OutboxOptions,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.options = options
        self.clock = clock

    async def __aenter__(self) -> "OutboxRepository":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @abstractmethod
    async def lock_and_fetch(self, limit: int | None = None) -> list[OutboxItem]:
        """
        Open a transaction, then lock and return up to ``limit`` eligible items.

        Args:
            limit: Batch size, defaults to the outbox items limit

        Returns:
            Locked items in processing order (possibly fewer than ``limit``)
        """
        pass

    @abstractmethod
    async def save(
        self,
        completed: Sequence[OutboxItem],
        retried: Sequence[OutboxItem],
    ) -> None:
        """
        Persist outcomes in the open transaction, commit, release the locks.

        Completed items are deleted, or marked COMPLETED when the table is
        partitioned. Retried items get their status and retry fields updated.

        Raises:
            RetryNotSupportedError: Retried items given to a strict repository
            TransactionNotStartedError: Items given without an open transaction
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Roll back any open transaction and release the connection."""
        pass

    def _check_retried(self, retried: Sequence[OutboxItem]) -> None:
        if retried and not self.supports_retry:
            raise RetryNotSupportedError(
                f"Retry not supported for strict ordering outbox {self.options.name}"
            )

    def _limit(self, limit: int | None) -> int:
        return limit if limit is not None else self.options.settings.outbox_items_limit


RepositoryFactory = Callable[[OutboxOptions], OutboxRepository]
