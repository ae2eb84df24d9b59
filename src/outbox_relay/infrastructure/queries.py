"""Raw SQL of the asyncpg outbox repositories.

Identifiers come from :class:`DbMapping` and are quoted there; values are
always passed as query parameters.
"""

from outbox_relay.models import OutboxItemStatus
from outbox_relay.options import OutboxOptions

SKIP_LOCKED = "SKIP LOCKED"
NOWAIT = "NOWAIT"


def build_fetch_query(options: OutboxOptions, limit: int, lock_clause: str) -> str:
    """
    SELECT eligible rows in processing order and lock them.

    With the status capability, ``$1`` is the current time: rows whose
    ``retry_after`` is in the future are not eligible yet.
    """
    m = options.mapping
    conditions: list[str] = []
    order: list[str] = []

    if options.features.status:
        conditions.append(f"({m.retry_after} IS NULL OR {m.retry_after} <= $1)")
        if options.partitioned:
            conditions.append(f"{m.status} <> {int(OutboxItemStatus.COMPLETED)}")

    if options.features.priority:
        order.append(f"{m.priority} DESC")
    order.append(f"{m.id} ASC")
    if options.features.status:
        order.append(f"{m.retry_after} ASC")

    sql = f"SELECT * FROM {m.qualified_table_name}"
    if conditions:
        sql += "\nWHERE " + " AND ".join(conditions)
    sql += f"\nORDER BY {', '.join(order)}"
    sql += f"\nLIMIT {int(limit)}"
    sql += f"\nFOR UPDATE {lock_clause}"
    return sql


def build_delete_query(options: OutboxOptions) -> str:
    """DELETE rows whose id is in ``$1``."""
    m = options.mapping
    return f"DELETE FROM {m.qualified_table_name}\nWHERE {m.id} = ANY($1::uuid[])"


def build_complete_query(options: OutboxOptions) -> str:
    """Mark rows whose id is in ``$1`` as COMPLETED (partitioned tables)."""
    m = options.mapping
    return (
        f"UPDATE {m.qualified_table_name}\n"
        f"SET {m.status} = {int(OutboxItemStatus.COMPLETED)}\n"
        f"WHERE {m.id} = ANY($1::uuid[])"
    )


def build_retry_update_query(options: OutboxOptions) -> str:
    """Bulk update status and retry fields from parallel arrays ``$1..$4``."""
    m = options.mapping
    table = m.qualified_table_name
    return (
        f"UPDATE {table}\n"
        f"SET {m.status} = data.item_status,\n"
        f"    {m.retry_count} = data.item_retry_count,\n"
        f"    {m.retry_after} = data.item_retry_after\n"
        "FROM (SELECT * FROM unnest($1::uuid[], $2::int[], $3::int[], $4::timestamptz[]))\n"
        "     AS data(item_id, item_status, item_retry_count, item_retry_after)\n"
        f"WHERE {table}.{m.id} = data.item_id"
    )
