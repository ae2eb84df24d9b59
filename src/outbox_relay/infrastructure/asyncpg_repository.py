"""Outbox repositories on raw SQL over an asyncpg pool."""

from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

import asyncpg
import structlog
from asyncpg.transaction import Transaction

from outbox_relay.infrastructure.queries import (
    NOWAIT,
    SKIP_LOCKED,
    build_complete_query,
    build_delete_query,
    build_fetch_query,
    build_retry_update_query,
)
from outbox_relay.infrastructure.repository import OutboxRepository, utcnow
from outbox_relay.models import OutboxError, OutboxItem, TransactionNotStartedError
from outbox_relay.options import OutboxOptions

logger = structlog.get_logger(__name__)


class AsyncpgOutboxRepository(OutboxRepository):
    """Holds one pooled connection and one transaction for a worker tick."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        options: OutboxOptions,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(options, clock)
        self.pool = pool
        self._connection: asyncpg.Connection | None = None
        self._transaction: Transaction | None = None

    async def lock_and_fetch(self, limit: int | None = None) -> list[OutboxItem]:
        if self._transaction is not None:
            raise OutboxError("Items are already locked by this repository")

        await self._begin()

        sql = build_fetch_query(self.options, self._limit(limit), self.lock_clause)
        args: list[Any] = [self.clock()] if self.options.features.status else []
        rows = await self._fetch(sql, *args)

        mapping = self.options.mapping
        return [self.options.item_type.from_record(dict(row), mapping.column_names) for row in rows]

    async def save(
        self,
        completed: Sequence[OutboxItem],
        retried: Sequence[OutboxItem],
    ) -> None:
        self._check_retried(retried)

        if self._transaction is None:
            if completed or retried:
                raise TransactionNotStartedError(
                    f"No open transaction to save outbox {self.options.name} items"
                )
            return

        conn = self._connection
        assert conn is not None

        if completed:
            ids = [item.id for item in completed]
            if self.options.partitioned:
                await conn.execute(build_complete_query(self.options), ids)
            else:
                await conn.execute(build_delete_query(self.options), ids)

        if retried:
            await conn.execute(
                build_retry_update_query(self.options),
                [item.id for item in retried],
                [int(item.status) for item in retried],
                [item.retry_count for item in retried],
                [item.retry_after for item in retried],
            )

        transaction = self._transaction
        self._transaction = None
        await transaction.commit()

    async def close(self) -> None:
        try:
            if self._transaction is not None:
                await self._rollback()
        finally:
            if self._connection is not None:
                connection = self._connection
                self._connection = None
                await self.pool.release(connection)

    async def _begin(self) -> None:
        if self._connection is None:
            self._connection = await self.pool.acquire()
        self._transaction = self._connection.transaction()
        await self._transaction.start()

    async def _fetch(self, sql: str, *args: Any) -> list[asyncpg.Record]:
        assert self._connection is not None
        return await self._connection.fetch(sql, *args)

    async def _rollback(self) -> None:
        transaction = self._transaction
        self._transaction = None
        try:
            await transaction.rollback()
        except asyncpg.InterfaceError as e:
            # Transaction already failed on the server; releasing the
            # connection resets it
            logger.warning(
                "outbox_transaction_rollback_failed",
                outbox=self.options.name,
                error=str(e),
            )


class AsyncpgCompetingOutboxRepository(AsyncpgOutboxRepository):
    """Competing discipline: rows locked by other workers are skipped."""

    lock_clause = SKIP_LOCKED


class AsyncpgStrictOrderingOutboxRepository(AsyncpgOutboxRepository):
    """
    Strict ordering discipline: fetch fails fast when any row is locked.

    A lock conflict means another worker owns the current window, so the
    tick sees an empty batch instead of an error.
    """

    lock_clause = NOWAIT
    supports_retry = False

    async def _fetch(self, sql: str, *args: Any) -> list[asyncpg.Record]:
        try:
            return await super()._fetch(sql, *args)
        except asyncpg.exceptions.LockNotAvailableError:
            logger.debug("outbox_lock_not_available", outbox=self.options.name)
            await self._rollback()
            return []
