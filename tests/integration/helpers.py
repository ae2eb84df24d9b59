"""Helpers for integration tests against real outbox tables."""

import asyncio

from outbox_relay.config import OutboxSettings
from outbox_relay.features import resolve_features
from outbox_relay.infrastructure.mapping import DbMapping
from outbox_relay.options import OutboxOptions


def options_for(item_type, table: str, name: str = "it_outbox", **settings_kwargs) -> OutboxOptions:
    return OutboxOptions(
        name=name,
        item_type=item_type,
        features=resolve_features(item_type),
        mapping=DbMapping.default("public", table),
        settings=OutboxSettings(**settings_kwargs),
    )


async def insert_items(pool, table: str, items) -> None:
    """Insert items, writing every dataclass field to the column of the same name."""
    async with pool.acquire() as conn:
        for item in items:
            row = {key: int(value) if key == "status" else value for key, value in vars(item).items()}
            columns = ", ".join(f'"{column}"' for column in row)
            placeholders = ", ".join(f"${i}" for i in range(1, len(row) + 1))
            await conn.execute(
                f'INSERT INTO "public"."{table}" ({columns}) VALUES ({placeholders})',
                *row.values(),
            )


async def fetch_rows(pool, table: str) -> list:
    async with pool.acquire() as conn:
        return await conn.fetch(f'SELECT * FROM "public"."{table}" ORDER BY id')


async def drain(workers, options, max_rounds: int = 50) -> None:
    """Run all workers concurrently, round after round, until a round fetches nothing."""
    for _ in range(max_rounds):
        results = await asyncio.gather(*(worker.process(options) for worker in workers))
        assert not any(result.failed for result in results)
        if not any(result.fetched for result in results):
            return
    raise AssertionError("outbox was not drained")
