"""
Worker factory for creating outbox workers and their repositories.

Worker strategies are selected by :class:`WorkerType`, repositories by the
storage backend and the lock discipline the worker type needs (SKIP LOCKED
for competing workers, NOWAIT for strict ordering ones).
"""

from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

import structlog

from outbox_relay.config import WorkerType
from outbox_relay.handlers.base import BatchHandlerFactory, HandlerFactory
from outbox_relay.infrastructure.asyncpg_repository import (
    AsyncpgCompetingOutboxRepository,
    AsyncpgStrictOrderingOutboxRepository,
)
from outbox_relay.infrastructure.repository import OutboxRepository, RepositoryFactory, utcnow
from outbox_relay.infrastructure.sqlalchemy_repository import (
    SqlAlchemyCompetingOutboxRepository,
    SqlAlchemyStrictOrderingOutboxRepository,
)
from outbox_relay.models import OutboxConfigurationError
from outbox_relay.options import OutboxOptions
from outbox_relay.workers.base import OutboxWorker
from outbox_relay.workers.batch_competing import BatchCompetingOutboxWorker
from outbox_relay.workers.batch_strict_ordering import BatchStrictOrderingOutboxWorker
from outbox_relay.workers.competing import CompetingOutboxWorker
from outbox_relay.workers.strict_ordering import StrictOrderingOutboxWorker

logger = structlog.get_logger(__name__)


class StorageBackend(str, Enum):
    """How repositories talk to PostgreSQL."""

    ASYNCPG = "asyncpg"
    SQLALCHEMY = "sqlalchemy"


class WorkerFactory:
    """
    Factory for outbox workers.

    Keeps two registries: worker classes by worker type, and repository
    classes by (backend, competing) pair.
    """

    # Registry of worker strategies
    _WORKERS: dict[WorkerType, type[OutboxWorker]] = {
        WorkerType.COMPETING: CompetingOutboxWorker,
        WorkerType.STRICT_ORDERING: StrictOrderingOutboxWorker,
        WorkerType.BATCH_COMPETING: BatchCompetingOutboxWorker,
        WorkerType.BATCH_STRICT_ORDERING: BatchStrictOrderingOutboxWorker,
    }

    # Registry of repositories; the flag is True for the competing discipline
    _REPOSITORIES: dict[tuple[StorageBackend, bool], type[OutboxRepository]] = {
        (StorageBackend.ASYNCPG, True): AsyncpgCompetingOutboxRepository,
        (StorageBackend.ASYNCPG, False): AsyncpgStrictOrderingOutboxRepository,
        (StorageBackend.SQLALCHEMY, True): SqlAlchemyCompetingOutboxRepository,
        (StorageBackend.SQLALCHEMY, False): SqlAlchemyStrictOrderingOutboxRepository,
    }

    @classmethod
    def repository_class(
        cls, backend: StorageBackend, worker_type: WorkerType
    ) -> type[OutboxRepository]:
        return cls._REPOSITORIES[(StorageBackend(backend), worker_type.is_competing)]

    @classmethod
    def create_repository_factory(
        cls,
        backend: StorageBackend,
        worker_type: WorkerType,
        resource: Any,
        clock: Callable[[], datetime] = utcnow,
    ) -> RepositoryFactory:
        """
        Build a factory that opens a fresh repository for each tick.

        Args:
            backend: Storage backend
            worker_type: Worker type, selects the lock discipline
            resource: asyncpg pool or SQLAlchemy async engine, per backend
            clock: Current UTC time used in the fetch predicate
        """
        repository_class = cls.repository_class(backend, worker_type)

        def create(options: OutboxOptions) -> OutboxRepository:
            return repository_class(resource, options, clock=clock)

        return create

    @classmethod
    def create_worker(
        cls,
        worker_type: WorkerType,
        repository_factory: RepositoryFactory,
        handler_factory: HandlerFactory | None = None,
        batch_handler_factory: BatchHandlerFactory | None = None,
        **kwargs: Any,
    ) -> OutboxWorker:
        """
        Create a worker for ``worker_type``.

        Batch worker types take ``batch_handler_factory``, the others take
        ``handler_factory``. Extra keyword arguments (``metrics``, ``clock``,
        ``rng``) are passed to the worker.

        Raises:
            OutboxConfigurationError: If the matching handler factory is missing
        """
        worker_type = WorkerType(worker_type)
        worker_class = cls._WORKERS[worker_type]

        if worker_type.is_batch:
            if batch_handler_factory is None:
                raise OutboxConfigurationError(
                    f"Worker type {worker_type.value} requires a batch handler"
                )
            worker = worker_class(repository_factory, batch_handler_factory, **kwargs)
        else:
            if handler_factory is None:
                raise OutboxConfigurationError(
                    f"Worker type {worker_type.value} requires an item handler"
                )
            worker = worker_class(repository_factory, handler_factory, **kwargs)

        logger.debug(
            "worker_created",
            worker_type=worker_type.value,
            worker_class=worker_class.__name__,
        )
        return worker
