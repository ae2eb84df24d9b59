"""Transactional outbox relay for PostgreSQL."""

from outbox_relay.config import (
    OutboxSettings,
    PartitionSettings,
    RetryDelayPolicy,
    RetrySettings,
    WorkerType,
)
from outbox_relay.handlers import OutboxItemBatchHandler, OutboxItemHandler
from outbox_relay.models import (
    HasPriority,
    HasStatus,
    OutboxBatchResult,
    OutboxItem,
    OutboxItemHandleResult,
    OutboxItemStatus,
)
from outbox_relay.registry import OutboxRegistration, OutboxRegistry
from outbox_relay.workers import StorageBackend

__version__ = "0.1.0"

__all__ = [
    "HasPriority",
    "HasStatus",
    "OutboxBatchResult",
    "OutboxItem",
    "OutboxItemBatchHandler",
    "OutboxItemHandleResult",
    "OutboxItemHandler",
    "OutboxItemStatus",
    "OutboxRegistration",
    "OutboxRegistry",
    "OutboxSettings",
    "PartitionSettings",
    "RetryDelayPolicy",
    "RetrySettings",
    "StorageBackend",
    "WorkerType",
]
