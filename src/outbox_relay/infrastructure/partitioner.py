"""Creation and retirement of outbox table partitions."""

from collections.abc import Callable
from datetime import datetime

import asyncpg
import structlog

from outbox_relay.infrastructure.repository import utcnow
from outbox_relay.models import PartitioningNotConfiguredError
from outbox_relay.options import OutboxOptions
from outbox_relay.partitions import Partition, get_partitions, get_partitions_to_retire

logger = structlog.get_logger(__name__)


def _is_not_partitioned(error: asyncpg.PostgresError) -> bool:
    return "is not partitioned" in str(error)


class Partitioner:
    """
    Maintains the time-range partitions of one outbox table.

    Both operations are idempotent, so several hosts may run them on any
    cadence. The parent table must already be declared
    ``PARTITION BY RANGE (id)``.
    """

    def __init__(
        self,
        pool: asyncpg.Pool,
        options: OutboxOptions,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.pool = pool
        self.options = options
        self.clock = clock

    def create_partition_sql(self, partition: Partition) -> str:
        m = self.options.mapping
        return (
            f"CREATE TABLE IF NOT EXISTS {m.qualified_name(partition.partition_table_name)}\n"
            f"PARTITION OF {m.qualified_table_name}\n"
            f"FOR VALUES FROM ('{partition.id_from}') TO ('{partition.id_to}')\n"
            "WITH (fillfactor = 90)"
        )

    async def create_partitions(self) -> list[Partition]:
        """
        Create the upcoming partitions, starting with the current one.

        Returns:
            Partitions that exist after the call

        Raises:
            PartitioningNotConfiguredError: If the outbox table is not partitioned
        """
        m = self.options.mapping
        partitions = get_partitions(self.options.settings.partition, m.table_name, self.clock())

        try:
            async with self.pool.acquire() as conn:
                for partition in partitions:
                    await conn.execute(self.create_partition_sql(partition))
        except asyncpg.PostgresError as e:
            if _is_not_partitioned(e):
                self._log_not_configured(e)
                raise PartitioningNotConfiguredError(
                    f"Table {m.qualified_table_name} is not partitioned"
                ) from e
            logger.error(
                "partition_create_failed",
                outbox=self.options.name,
                error=str(e),
                exc_info=True,
            )
            raise

        logger.debug(
            "partitions_created",
            outbox=self.options.name,
            count=len(partitions),
            first=partitions[0].partition_table_name if partitions else None,
        )
        return partitions

    async def delete_old_partitions(self) -> list[Partition]:
        """
        Detach and drop past partitions beyond the retention count.

        Partitions already removed by a concurrent run are skipped.

        Returns:
            Partitions that were dropped by this call

        Raises:
            PartitioningNotConfiguredError: If the outbox table is not partitioned
        """
        m = self.options.mapping
        to_retire = get_partitions_to_retire(
            self.options.settings.partition, m.table_name, self.clock()
        )
        dropped: list[Partition] = []

        try:
            # DETACH ... CONCURRENTLY cannot run inside a transaction block
            async with self.pool.acquire() as conn:
                for partition in to_retire:
                    if not await self._retire(conn, partition):
                        continue
                    dropped.append(partition)
                    logger.info(
                        "partition_dropped",
                        outbox=self.options.name,
                        partition=partition.partition_table_name,
                    )
        except asyncpg.PostgresError as e:
            if _is_not_partitioned(e):
                self._log_not_configured(e)
                raise PartitioningNotConfiguredError(
                    f"Table {m.qualified_table_name} is not partitioned"
                ) from e
            logger.error(
                "partition_drop_failed",
                outbox=self.options.name,
                error=str(e),
                exc_info=True,
            )
            raise

        return dropped

    async def _retire(self, conn: asyncpg.Connection, partition: Partition) -> bool:
        """
        Detach and drop one partition.

        Picks up where an interrupted run stopped: a detached but not yet
        dropped table is dropped, a pending concurrent detach is finalized.

        Returns:
            False if the partition no longer exists
        """
        m = self.options.mapping
        partition_name = m.qualified_name(partition.partition_table_name)
        detach = f"ALTER TABLE {m.qualified_table_name} DETACH PARTITION {partition_name}"

        try:
            await conn.execute(f"{detach} CONCURRENTLY")
        except asyncpg.exceptions.UndefinedTableError:
            # Missing, or detached by an earlier run that failed to drop it
            pass
        except asyncpg.exceptions.ObjectNotInPrerequisiteStateError as e:
            if "pending detach" not in str(e):
                raise
            logger.warning(
                "partition_detach_pending",
                outbox=self.options.name,
                partition=partition.partition_table_name,
            )
            await conn.execute(f"{detach} FINALIZE")

        try:
            await conn.execute(f"DROP TABLE {partition_name}")
        except asyncpg.exceptions.UndefinedTableError:
            return False
        return True

    def _log_not_configured(self, error: Exception) -> None:
        logger.error(
            "partitioning_not_configured",
            outbox=self.options.name,
            table=self.options.mapping.qualified_table_name,
            error=str(error),
        )
