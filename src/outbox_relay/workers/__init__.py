"""
Outbox worker strategies.

- competing.CompetingOutboxWorker: SKIP LOCKED, per-item handler, retries
- strict_ordering.StrictOrderingOutboxWorker: NOWAIT, per-item handler, stops on failure
- batch_competing.BatchCompetingOutboxWorker: SKIP LOCKED, batch handler, retries
- batch_strict_ordering.BatchStrictOrderingOutboxWorker: NOWAIT, batch handler
"""

from outbox_relay.workers.base import OutboxWorker
from outbox_relay.workers.batch_competing import BatchCompetingOutboxWorker
from outbox_relay.workers.batch_strict_ordering import BatchStrictOrderingOutboxWorker
from outbox_relay.workers.competing import CompetingOutboxWorker
from outbox_relay.workers.factory import StorageBackend, WorkerFactory
from outbox_relay.workers.strict_ordering import StrictOrderingOutboxWorker

__all__ = [
    "BatchCompetingOutboxWorker",
    "BatchStrictOrderingOutboxWorker",
    "CompetingOutboxWorker",
    "OutboxWorker",
    "StorageBackend",
    "StrictOrderingOutboxWorker",
    "WorkerFactory",
]
