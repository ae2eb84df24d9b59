"""Domain models for outbox processing."""

from outbox_relay.models.exceptions import (
    OutboxConfigurationError,
    OutboxError,
    PartitioningNotConfiguredError,
    RetryNotSupportedError,
    TransactionNotStartedError,
)
from outbox_relay.models.item import (
    HasPriority,
    HasStatus,
    OutboxItem,
    OutboxItemStatus,
    uuid7,
    uuid7_lower_bound,
    uuid7_timestamp,
)
from outbox_relay.models.results import (
    OutboxBatchResult,
    OutboxItemHandleResult,
    ProcessResult,
)

__all__ = [
    "HasPriority",
    "HasStatus",
    "OutboxBatchResult",
    "OutboxConfigurationError",
    "OutboxError",
    "OutboxItem",
    "OutboxItemHandleResult",
    "OutboxItemStatus",
    "PartitioningNotConfiguredError",
    "ProcessResult",
    "RetryNotSupportedError",
    "TransactionNotStartedError",
    "uuid7",
    "uuid7_lower_bound",
    "uuid7_timestamp",
]
