"""Outbox item domain models."""

import os
import threading
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Self

_uuid7_lock = threading.Lock()
_last_timestamp_ms = 0
_last_counter = 0


def uuid7() -> uuid.UUID:
    """Generate a UUID v7 (time-sortable).

    The first 48 bits hold the Unix timestamp in milliseconds. The 12-bit
    ``rand_a`` field is used as a counter for ids created within the same
    millisecond, so ids generated by one process sort in creation order.

    Example:
        >>> id1 = uuid7()
        >>> id2 = uuid7()
        >>> id1 < id2
        True
    """
    global _last_timestamp_ms, _last_counter

    random_bytes = os.urandom(10)

    with _uuid7_lock:
        timestamp_ms = time.time_ns() // 1_000_000
        if timestamp_ms <= _last_timestamp_ms:
            timestamp_ms = _last_timestamp_ms
            counter = _last_counter + 1
            if counter > 0xFFF:
                timestamp_ms += 1
                counter = 0
        else:
            # Leave headroom in the counter for ids in the same millisecond
            counter = int.from_bytes(random_bytes[0:2], "big") & 0x7FF
        _last_timestamp_ms = timestamp_ms
        _last_counter = counter

    uuid_bytes = bytearray(16)

    # First 6 bytes: timestamp (48 bits)
    uuid_bytes[0:6] = timestamp_ms.to_bytes(6, byteorder="big")

    # Bytes 6-7: version (7) in high nibble + 12-bit counter
    uuid_bytes[6] = 0x70 | (counter >> 8)
    uuid_bytes[7] = counter & 0xFF

    # Byte 8: variant (10) in high 2 bits + random in low 6 bits
    uuid_bytes[8] = (random_bytes[2] & 0x3F) | 0x80

    # Bytes 9-15: random
    uuid_bytes[9:16] = random_bytes[3:10]

    return uuid.UUID(bytes=bytes(uuid_bytes))


def uuid7_lower_bound(moment: datetime) -> uuid.UUID:
    """Smallest UUID v7 whose timestamp is ``moment``.

    Only the 48-bit timestamp prefix is kept, every other bit is zero. Used
    as a range bound for partitions keyed by id.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    timestamp_ms = int(moment.timestamp() * 1000)
    return uuid.UUID(bytes=timestamp_ms.to_bytes(6, byteorder="big") + bytes(10))


def uuid7_timestamp(value: uuid.UUID) -> datetime:
    """Extract the creation time encoded in a UUID v7."""
    timestamp_ms = int.from_bytes(value.bytes[0:6], byteorder="big")
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


class OutboxItemStatus(IntEnum):
    """Outbox item processing status."""

    READY = 0
    FAILED = 1
    RETRY = 2
    COMPLETED = 3


@dataclass(kw_only=True)
class OutboxItem:
    """
    A pending unit of work stored in an outbox table.

    Subclasses add payload fields and may mix in :class:`HasStatus` and
    :class:`HasPriority` to opt into retries and priority ordering. The id is
    a UUID v7, so sorting by id is sorting by insertion time.
    """

    id: uuid.UUID = field(default_factory=uuid7)

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        column_names: Mapping[str, str] | None = None,
    ) -> Self:
        """Build an item from a database row.

        Args:
            record: Row as a mapping of column name to value
            column_names: Optional field name -> column name overrides

        Returns:
            Item populated from the columns present in ``record``
        """
        column_names = column_names or {}
        values: dict[str, Any] = {}
        for item_field in fields(cls):
            if not item_field.init:
                continue
            column = column_names.get(item_field.name, item_field.name)
            if column in record:
                values[item_field.name] = record[column]

        if values.get("status") is not None:
            values["status"] = OutboxItemStatus(values["status"])

        return cls(**values)


@dataclass(kw_only=True)
class HasStatus(OutboxItem):
    """Status capability: lets failed items be rescheduled instead of blocking."""

    status: OutboxItemStatus = OutboxItemStatus.READY
    retry_count: int | None = None
    retry_after: datetime | None = None


@dataclass(kw_only=True)
class HasPriority(OutboxItem):
    """Priority capability: higher priority items are fetched first."""

    priority: int = 0
