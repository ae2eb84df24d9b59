"""Operator access to outbox tables: inspect, restart and purge items."""

import uuid
from collections.abc import Sequence

import asyncpg
import structlog

from outbox_relay.models import OutboxConfigurationError, OutboxItem, OutboxItemStatus
from outbox_relay.options import OutboxOptions

logger = structlog.get_logger(__name__)


class OutboxMaintenanceRepository:
    """Maintenance queries on one outbox table, outside of worker ticks."""

    def __init__(self, pool: asyncpg.Pool, options: OutboxOptions) -> None:
        self.pool = pool
        self.options = options

    async def get_chunk(self, skip: int, take: int) -> list[OutboxItem]:
        """Return one page of items ordered by id."""
        m = self.options.mapping
        sql = f"""
            SELECT * FROM {m.qualified_table_name}
            ORDER BY {m.id} ASC
            LIMIT $1
            OFFSET $2
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(sql, take, skip)

        return [self.options.item_type.from_record(dict(row), m.column_names) for row in rows]

    async def clear(self) -> None:
        """Remove every item of the outbox."""
        async with self.pool.acquire() as conn:
            await conn.execute(f"TRUNCATE TABLE {self.options.mapping.qualified_table_name}")

        logger.warning("outbox_cleared", outbox=self.options.name)

    async def delete(self, ids: Sequence[uuid.UUID]) -> None:
        m = self.options.mapping
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"DELETE FROM {m.qualified_table_name} WHERE {m.id} = ANY($1::uuid[])",
                list(ids),
            )

        logger.info("outbox_items_deleted", outbox=self.options.name, count=len(ids))

    async def restart(self, ids: Sequence[uuid.UUID]) -> None:
        """Make items eligible again: READY status, retry fields cleared.

        Raises:
            OutboxConfigurationError: If the item type has no status capability
        """
        if not self.options.features.status:
            raise OutboxConfigurationError(
                f"Outbox {self.options.name} items have no status to restart"
            )

        m = self.options.mapping
        sql = f"""
            UPDATE {m.qualified_table_name}
            SET {m.status} = $1,
                {m.retry_count} = NULL,
                {m.retry_after} = NULL
            WHERE {m.id} = ANY($2::uuid[])
        """
        async with self.pool.acquire() as conn:
            await conn.execute(sql, int(OutboxItemStatus.READY), list(ids))

        logger.info("outbox_items_restarted", outbox=self.options.name, count=len(ids))
