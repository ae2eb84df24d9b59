"""Outbox repositories on SQLAlchemy Core over an async engine."""

from collections.abc import Callable, Sequence
from datetime import datetime

import asyncpg
import sqlalchemy as sa
import structlog
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction

from outbox_relay.infrastructure.repository import (
    LOCK_NOT_AVAILABLE,
    OutboxRepository,
    utcnow,
)
from outbox_relay.models import (
    OutboxError,
    OutboxItem,
    OutboxItemStatus,
    TransactionNotStartedError,
)
from outbox_relay.options import OutboxOptions

logger = structlog.get_logger(__name__)


def build_table(options: OutboxOptions) -> sa.Table:
    """Describe the columns of the outbox table the repository touches.

    Payload columns are not declared; rows are read with ``SELECT *``.
    """
    m = options.mapping
    columns = [sa.Column(m.column("id"), UUID(as_uuid=True), primary_key=True)]
    if options.features.status:
        columns += [
            sa.Column(m.column("status"), sa.Integer),
            sa.Column(m.column("retry_count"), sa.Integer),
            sa.Column(m.column("retry_after"), sa.DateTime(timezone=True)),
        ]
    if options.features.priority:
        columns.append(sa.Column(m.column("priority"), sa.Integer))

    return sa.Table(m.table_name, sa.MetaData(), *columns, schema=m.schema_name)


def build_fetch_statement(
    options: OutboxOptions,
    table: sa.Table,
    limit: int,
    now: datetime,
    nowait: bool,
) -> sa.Select:
    m = options.mapping
    id_column = table.c[m.column("id")]
    stmt = sa.select(sa.literal_column("*")).select_from(table)

    order_by = []
    if options.features.priority:
        order_by.append(table.c[m.column("priority")].desc())
    order_by.append(id_column.asc())

    if options.features.status:
        retry_after = table.c[m.column("retry_after")]
        stmt = stmt.where(sa.or_(retry_after.is_(None), retry_after <= now))
        if options.partitioned:
            stmt = stmt.where(table.c[m.column("status")] != int(OutboxItemStatus.COMPLETED))
        order_by.append(retry_after.asc())

    stmt = stmt.order_by(*order_by).limit(limit)
    if nowait:
        return stmt.with_for_update(nowait=True)
    return stmt.with_for_update(skip_locked=True)


def is_lock_not_available(error: DBAPIError) -> bool:
    """Whether ``error`` wraps a NOWAIT lock conflict."""
    orig = error.orig
    if getattr(orig, "sqlstate", None) == LOCK_NOT_AVAILABLE:
        return True
    return isinstance(getattr(orig, "__cause__", None), asyncpg.exceptions.LockNotAvailableError)


class SqlAlchemyOutboxRepository(OutboxRepository):
    """Holds one engine connection and one transaction for a worker tick."""

    nowait = False

    def __init__(
        self,
        engine: AsyncEngine,
        options: OutboxOptions,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(options, clock)
        self.engine = engine
        self.table = build_table(options)
        self._connection: AsyncConnection | None = None
        self._transaction: AsyncTransaction | None = None

    async def lock_and_fetch(self, limit: int | None = None) -> list[OutboxItem]:
        if self._transaction is not None:
            raise OutboxError("Items are already locked by this repository")

        if self._connection is None:
            self._connection = await self.engine.connect()
        self._transaction = await self._connection.begin()

        stmt = build_fetch_statement(
            self.options, self.table, self._limit(limit), self.clock(), self.nowait
        )
        try:
            result = await self._connection.execute(stmt)
        except DBAPIError as e:
            if not (self.nowait and is_lock_not_available(e)):
                raise
            logger.debug("outbox_lock_not_available", outbox=self.options.name)
            await self._rollback()
            return []

        column_names = self.options.mapping.column_names
        return [
            self.options.item_type.from_record(row._mapping, column_names)
            for row in result.all()
        ]

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
        m = self.options.mapping
        id_column = self.table.c[m.column("id")]

        if completed:
            ids = [item.id for item in completed]
            if self.options.partitioned:
                await conn.execute(
                    sa.update(self.table)
                    .where(id_column.in_(ids))
                    .values({m.column("status"): int(OutboxItemStatus.COMPLETED)})
                )
            else:
                await conn.execute(sa.delete(self.table).where(id_column.in_(ids)))

        if retried:
            stmt = (
                sa.update(self.table)
                .where(id_column == sa.bindparam("b_id"))
                .values(
                    {
                        m.column("status"): sa.bindparam("b_status"),
                        m.column("retry_count"): sa.bindparam("b_retry_count"),
                        m.column("retry_after"): sa.bindparam("b_retry_after"),
                    }
                )
            )
            await conn.execute(
                stmt,
                [
                    {
                        "b_id": item.id,
                        "b_status": int(item.status),
                        "b_retry_count": item.retry_count,
                        "b_retry_after": item.retry_after,
                    }
                    for item in retried
                ],
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
                await connection.close()

    async def _rollback(self) -> None:
        transaction = self._transaction
        self._transaction = None
        if transaction.is_active:
            await transaction.rollback()


class SqlAlchemyCompetingOutboxRepository(SqlAlchemyOutboxRepository):
    """Competing discipline: ``FOR UPDATE SKIP LOCKED``."""

    nowait = False
    lock_clause = "SKIP LOCKED"


class SqlAlchemyStrictOrderingOutboxRepository(SqlAlchemyOutboxRepository):
    """Strict ordering discipline: ``FOR UPDATE NOWAIT``, conflicts give an empty batch."""

    nowait = True
    lock_clause = "NOWAIT"
    supports_retry = False
