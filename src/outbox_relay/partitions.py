"""Time-range partition layout of outbox tables."""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from outbox_relay.config import PartitionSettings
from outbox_relay.models import uuid7_lower_bound

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Partition:
    """One partition: rows with ids created in ``[date_from, date_to)``."""

    partition_table_name: str
    date_from: datetime
    date_to: datetime

    @property
    def id_from(self) -> str:
        return str(uuid7_lower_bound(self.date_from))

    @property
    def id_to(self) -> str:
        return str(uuid7_lower_bound(self.date_to))


def _range_start(moment: datetime, days_per_partition: int) -> int:
    """Index (in days since the epoch) of the range containing ``moment``.

    Ranges are aligned to multiples of ``days_per_partition`` so that runs on
    different days compute the same boundaries.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    day = (moment.astimezone(timezone.utc) - _EPOCH).days
    return day - day % days_per_partition


def _partitions_from(
    partition_settings: PartitionSettings, table_name: str, first_day: int
) -> Iterator[Partition]:
    step = partition_settings.days_per_partition
    for i in range(partition_settings.precreate_partition_count):
        date_from = _EPOCH + timedelta(days=first_day + i * step)
        date_to = date_from + timedelta(days=step)
        yield Partition(f"{table_name}_p{date_from:%Y%m%d}", date_from, date_to)


def get_partitions(
    partition_settings: PartitionSettings, table_name: str, start_from: datetime
) -> list[Partition]:
    """Partitions to precreate, starting with the one containing ``start_from``."""
    first_day = _range_start(start_from, partition_settings.days_per_partition)
    return list(_partitions_from(partition_settings, table_name, first_day))


def get_past_partitions(
    partition_settings: PartitionSettings, table_name: str, now: datetime
) -> list[Partition]:
    """The ``precreate_partition_count`` partitions right before the current one."""
    current = _range_start(now, partition_settings.days_per_partition)
    first_day = current - (
        partition_settings.precreate_partition_count * partition_settings.days_per_partition
    )
    return list(_partitions_from(partition_settings, table_name, first_day))


def get_partitions_to_retire(
    partition_settings: PartitionSettings, table_name: str, now: datetime
) -> list[Partition]:
    """Past partitions beyond the most recent ``partition_retention_count``, newest first."""
    past = get_past_partitions(partition_settings, table_name, now)
    past.reverse()
    return past[partition_settings.partition_retention_count:]
