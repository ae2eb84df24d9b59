"""Registration of outbox item types.

Everything an outbox needs at runtime is resolved here once: its name,
item capabilities, table mapping, backend resources and handler factory.
"""

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import asyncpg
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from outbox_relay.config import OutboxSettings, Settings, settings as app_settings
from outbox_relay.features import OutboxFeatures, resolve_features, validate_settings
from outbox_relay.handlers.base import BatchHandlerFactory, HandlerFactory
from outbox_relay.infrastructure.maintenance import OutboxMaintenanceRepository
from outbox_relay.infrastructure.mapping import DbMapping, pluralize, to_snake_case
from outbox_relay.infrastructure.metrics import OutboxMetricCollector
from outbox_relay.infrastructure.partitioner import Partitioner
from outbox_relay.infrastructure.repository import utcnow
from outbox_relay.models import OutboxConfigurationError, OutboxItem
from outbox_relay.options import OutboxOptions, OutboxOptionsMonitor
from outbox_relay.workers import OutboxWorker, StorageBackend, WorkerFactory

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OutboxRegistration:
    """A registered outbox and the resources it runs with."""

    name: str
    item_type: type[OutboxItem]
    features: OutboxFeatures
    mapping: DbMapping
    backend: StorageBackend
    pool: asyncpg.Pool | None = None
    engine: AsyncEngine | None = None
    handler_factory: HandlerFactory | None = None
    batch_handler_factory: BatchHandlerFactory | None = None

    @property
    def resource(self) -> Any:
        """Connection source of the repositories of this outbox."""
        if self.backend == StorageBackend.SQLALCHEMY:
            return self.engine
        return self.pool


class OutboxRegistry:
    """
    Outbox registrations of one application.

    Usage:
        registry = OutboxRegistry()
        registry.add_outbox_item(
            OrderEvent,
            pool=pool,
            handler_factory=lambda: SqsOutboxItemHandler(queue_url, sqs),
        )
        worker = registry.create_worker("OrderEvent")
    """

    def __init__(
        self,
        monitor: OutboxOptionsMonitor | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.monitor = monitor or OutboxOptionsMonitor()
        self.settings = settings or app_settings
        self._registrations: dict[str, OutboxRegistration] = {}

    def add_outbox_item(
        self,
        item_type: type[OutboxItem],
        *,
        name: str | None = None,
        schema: str = "public",
        table: str | None = None,
        mapping: DbMapping | None = None,
        backend: StorageBackend = StorageBackend.ASYNCPG,
        pool: asyncpg.Pool | None = None,
        engine: AsyncEngine | None = None,
        handler_factory: HandlerFactory | None = None,
        batch_handler_factory: BatchHandlerFactory | None = None,
        settings: OutboxSettings | None = None,
    ) -> OutboxRegistration:
        """
        Register an outbox item type.

        Args:
            item_type: OutboxItem subclass stored in the outbox table
            name: Outbox name, defaults to the item class name
            schema: Schema of the outbox table
            table: Table name, defaults to the pluralized snake_case outbox name
            mapping: Explicit table mapping, overrides ``schema`` and ``table``
            backend: Repository backend
            pool: asyncpg pool; required by the asyncpg backend and by partitioning
            engine: SQLAlchemy async engine; required by the SQLAlchemy backend
            handler_factory: Builds an item handler (non-batch worker types)
            batch_handler_factory: Builds a batch handler (batch worker types)
            settings: Outbox settings, defaults to ``Settings.for_outbox(name)``

        Returns:
            The registration

        Raises:
            OutboxConfigurationError: If the outbox is already registered or the
                configuration cannot work
        """
        name = name or item_type.__name__
        if name in self._registrations:
            raise OutboxConfigurationError(f"Outbox {name} is already registered")

        outbox_settings = settings or self.settings.for_outbox(name)
        features = resolve_features(item_type)
        validate_settings(item_type, features, outbox_settings)

        backend = StorageBackend(backend)
        if backend == StorageBackend.ASYNCPG and pool is None:
            raise OutboxConfigurationError(f"Outbox {name} needs an asyncpg pool")
        if backend == StorageBackend.SQLALCHEMY and engine is None:
            raise OutboxConfigurationError(f"Outbox {name} needs a SQLAlchemy engine")
        if outbox_settings.partition.enabled and pool is None:
            raise OutboxConfigurationError(
                f"Outbox {name} needs an asyncpg pool to maintain partitions"
            )

        if outbox_settings.worker_type.is_batch:
            if batch_handler_factory is None:
                raise OutboxConfigurationError(
                    f"Outbox {name} with worker type {outbox_settings.worker_type.value} "
                    "needs a batch handler"
                )
        elif handler_factory is None:
            raise OutboxConfigurationError(
                f"Outbox {name} with worker type {outbox_settings.worker_type.value} "
                "needs an item handler"
            )

        mapping = mapping or DbMapping.default(schema, table or pluralize(to_snake_case(name)))

        registration = OutboxRegistration(
            name=name,
            item_type=item_type,
            features=features,
            mapping=mapping,
            backend=backend,
            pool=pool,
            engine=engine,
            handler_factory=handler_factory,
            batch_handler_factory=batch_handler_factory,
        )
        self._registrations[name] = registration
        self.monitor.add(
            OutboxOptions(
                name=name,
                item_type=item_type,
                features=features,
                mapping=mapping,
                settings=outbox_settings,
            )
        )

        logger.info(
            "outbox_registered",
            outbox=name,
            table=mapping.qualified_table_name,
            worker_type=outbox_settings.worker_type.value,
            backend=backend.value,
            status=features.status,
            priority=features.priority,
            partitioned=outbox_settings.partition.enabled,
        )
        return registration

    def get(self, name: str) -> OutboxRegistration:
        """
        Raises:
            KeyError: If no outbox with this name is registered
        """
        return self._registrations[name]

    def __iter__(self) -> Iterator[OutboxRegistration]:
        return iter(list(self._registrations.values()))

    def __len__(self) -> int:
        return len(self._registrations)

    def options(self, name: str) -> OutboxOptions:
        """Current options of outbox ``name``."""
        return self.monitor.get(name)

    def create_worker(
        self,
        name: str,
        metrics: OutboxMetricCollector | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> OutboxWorker:
        """Build the worker of outbox ``name`` for its current worker type."""
        registration = self.get(name)
        worker_type = self.options(name).settings.worker_type

        repository_factory = WorkerFactory.create_repository_factory(
            registration.backend, worker_type, registration.resource, clock=clock
        )
        return WorkerFactory.create_worker(
            worker_type,
            repository_factory,
            handler_factory=registration.handler_factory,
            batch_handler_factory=registration.batch_handler_factory,
            metrics=metrics,
            clock=clock,
        )

    def create_partitioner(
        self, name: str, clock: Callable[[], datetime] = utcnow
    ) -> Partitioner:
        registration = self.get(name)
        if registration.pool is None:
            raise OutboxConfigurationError(f"Outbox {name} has no asyncpg pool for partitions")
        return Partitioner(registration.pool, self.options(name), clock=clock)

    def create_maintenance_repository(self, name: str) -> OutboxMaintenanceRepository:
        registration = self.get(name)
        if registration.pool is None:
            raise OutboxConfigurationError(f"Outbox {name} has no asyncpg pool for maintenance")
        return OutboxMaintenanceRepository(registration.pool, self.options(name))
