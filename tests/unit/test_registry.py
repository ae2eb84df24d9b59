"""Unit tests for outbox registration and worker construction."""

from dataclasses import dataclass
from unittest.mock import MagicMock

import pytest

from outbox_relay.config import OutboxSettings, PartitionSettings, Settings, WorkerType
from outbox_relay.infrastructure.asyncpg_repository import (
    AsyncpgCompetingOutboxRepository,
    AsyncpgStrictOrderingOutboxRepository,
)
from outbox_relay.infrastructure.maintenance import OutboxMaintenanceRepository
from outbox_relay.infrastructure.partitioner import Partitioner
from outbox_relay.infrastructure.sqlalchemy_repository import (
    SqlAlchemyCompetingOutboxRepository,
)
from outbox_relay.models import HasStatus, OutboxConfigurationError
from outbox_relay.registry import OutboxRegistry
from outbox_relay.workers import (
    BatchCompetingOutboxWorker,
    CompetingOutboxWorker,
    OutboxWorker,
    StorageBackend,
    StrictOrderingOutboxWorker,
    WorkerFactory,
)
from tests.fakes import HandlerScript, PlainItem, ScriptedBatchHandler, StatusItem


@dataclass(kw_only=True)
class OrderEvent(HasStatus):
    order_id: str = ""


@pytest.fixture
def outboxes():
    """Empty registry without configured outboxes."""
    return OutboxRegistry(settings=Settings(outbox={}))


@pytest.fixture
def pool():
    """Mock asyncpg pool."""
    return MagicMock(name="pool")


@pytest.fixture
def handler_factory():
    """Item handler factory."""
    return HandlerScript().factory()


class TestAddOutboxItem:
    """Test cases for registering outboxes."""

    def test_defaults_from_item_type(self, outboxes, pool, handler_factory):
        """Test the name, table and settings derived from the item type."""
        registration = outboxes.add_outbox_item(
            OrderEvent, pool=pool, handler_factory=handler_factory
        )

        assert registration.name == "OrderEvent"
        assert registration.mapping.qualified_table_name == '"public"."order_events"'
        assert registration.features.status is True
        assert registration.resource is pool
        assert outboxes.options("OrderEvent").settings == OutboxSettings()
        assert len(outboxes) == 1

    def test_settings_from_application_settings(self, pool, handler_factory):
        """Test that settings are taken from the application settings."""
        outboxes = OutboxRegistry(
            settings=Settings(outbox={"orderevent": OutboxSettings(outbox_items_limit=7)})
        )

        outboxes.add_outbox_item(OrderEvent, pool=pool, handler_factory=handler_factory)

        assert outboxes.options("OrderEvent").settings.outbox_items_limit == 7

    def test_explicit_name_and_table(self, outboxes, pool, handler_factory):
        """Test registering with an explicit name, schema and table."""
        registration = outboxes.add_outbox_item(
            StatusItem,
            name="payments",
            schema="billing",
            table="payment_outbox",
            pool=pool,
            handler_factory=handler_factory,
        )

        assert registration.mapping.qualified_table_name == '"billing"."payment_outbox"'
        assert outboxes.get("payments") is registration

    def test_explicit_table_name_not_converted(self, outboxes, pool, handler_factory):
        """Test that an explicit mixed-case table name reaches the mapping unchanged."""
        registration = outboxes.add_outbox_item(
            OrderEvent, table="OrderEvents", pool=pool, handler_factory=handler_factory
        )

        assert registration.mapping.qualified_table_name == '"public"."OrderEvents"'

    def test_duplicate_name_rejected(self, outboxes, pool, handler_factory):
        """Test that registering the same outbox twice fails."""
        outboxes.add_outbox_item(OrderEvent, pool=pool, handler_factory=handler_factory)

        with pytest.raises(OutboxConfigurationError):
            outboxes.add_outbox_item(OrderEvent, pool=pool, handler_factory=handler_factory)

    def test_competing_requires_status(self, outboxes, pool, handler_factory):
        """Test that a competing outbox needs the status capability."""
        with pytest.raises(OutboxConfigurationError):
            outboxes.add_outbox_item(PlainItem, pool=pool, handler_factory=handler_factory)

    def test_strict_ordering_without_status(self, outboxes, pool, handler_factory):
        """Test registering a strict ordering outbox for a plain item."""
        outboxes.add_outbox_item(
            PlainItem,
            pool=pool,
            handler_factory=handler_factory,
            settings=OutboxSettings(worker_type=WorkerType.STRICT_ORDERING),
        )

        assert outboxes.get("PlainItem").features.status is False

    def test_backend_resources_required(self, outboxes, pool, handler_factory):
        """Test that each backend requires its own resource."""
        with pytest.raises(OutboxConfigurationError):
            outboxes.add_outbox_item(OrderEvent, handler_factory=handler_factory)
        with pytest.raises(OutboxConfigurationError):
            outboxes.add_outbox_item(
                OrderEvent,
                backend=StorageBackend.SQLALCHEMY,
                pool=pool,
                handler_factory=handler_factory,
            )

    def test_partitions_require_pool(self, outboxes, handler_factory):
        """Test that partitioning requires an asyncpg pool."""
        with pytest.raises(OutboxConfigurationError):
            outboxes.add_outbox_item(
                OrderEvent,
                backend=StorageBackend.SQLALCHEMY,
                engine=MagicMock(name="engine"),
                handler_factory=handler_factory,
                settings=OutboxSettings(partition=PartitionSettings(enabled=True)),
            )

    def test_handler_kind_must_match_worker_type(self, outboxes, pool, handler_factory):
        """Test that the handler kind must match the worker type."""
        with pytest.raises(OutboxConfigurationError):
            outboxes.add_outbox_item(
                OrderEvent,
                pool=pool,
                handler_factory=handler_factory,
                settings=OutboxSettings(worker_type=WorkerType.BATCH_COMPETING),
            )
        with pytest.raises(OutboxConfigurationError):
            outboxes.add_outbox_item(
                OrderEvent, pool=pool, batch_handler_factory=lambda: ScriptedBatchHandler(None)
            )
        assert len(outboxes) == 0


class TestRegistryFactories:
    """Test cases for objects built by the registry."""

    def test_create_worker_per_worker_type(self, outboxes, pool, handler_factory):
        """Test that the registry builds the worker of each outbox's type."""
        outboxes.add_outbox_item(OrderEvent, pool=pool, handler_factory=handler_factory)
        outboxes.add_outbox_item(
            PlainItem,
            pool=pool,
            handler_factory=handler_factory,
            settings=OutboxSettings(worker_type=WorkerType.STRICT_ORDERING),
        )

        competing = outboxes.create_worker("OrderEvent")
        strict = outboxes.create_worker("PlainItem")

        assert isinstance(competing, CompetingOutboxWorker)
        assert isinstance(strict, StrictOrderingOutboxWorker)
        repository = strict.repository_factory(outboxes.options("PlainItem"))
        assert isinstance(repository, AsyncpgStrictOrderingOutboxRepository)
        assert repository.pool is pool

    def test_partitioner_and_maintenance(self, outboxes, pool, handler_factory):
        """Test building a partitioner and a maintenance repository."""
        outboxes.add_outbox_item(OrderEvent, pool=pool, handler_factory=handler_factory)

        assert isinstance(outboxes.create_partitioner("OrderEvent"), Partitioner)
        assert isinstance(
            outboxes.create_maintenance_repository("OrderEvent"), OutboxMaintenanceRepository
        )

    def test_unknown_outbox(self, outboxes):
        """Test that an unknown outbox raises KeyError."""
        with pytest.raises(KeyError):
            outboxes.create_worker("missing")


class TestWorkerFactory:
    """Test cases for the worker factory."""

    def test_repository_classes(self):
        """Test choosing the repository class by backend and worker type."""
        assert (
            WorkerFactory.repository_class(StorageBackend.ASYNCPG, WorkerType.BATCH_COMPETING)
            is AsyncpgCompetingOutboxRepository
        )
        assert (
            WorkerFactory.repository_class(StorageBackend.SQLALCHEMY, WorkerType.COMPETING)
            is SqlAlchemyCompetingOutboxRepository
        )

    def test_batch_worker_requires_batch_handler(self):
        """Test that a batch worker type needs a batch handler."""
        with pytest.raises(OutboxConfigurationError):
            WorkerFactory.create_worker(
                WorkerType.BATCH_COMPETING, MagicMock(), handler_factory=MagicMock()
            )

    def test_create_batch_worker(self):
        """Test building a batch worker."""
        worker = WorkerFactory.create_worker(
            WorkerType.BATCH_COMPETING, MagicMock(), batch_handler_factory=MagicMock()
        )

        assert isinstance(worker, BatchCompetingOutboxWorker)

    def test_every_worker_type_has_a_worker(self):
        """Test that every worker type has a worker class."""
        assert set(WorkerFactory._WORKERS) == set(WorkerType)

    def test_workers_share_the_base_class(self):
        """Test that every worker class derives from OutboxWorker."""
        for worker_class in WorkerFactory._WORKERS.values():
            assert issubclass(worker_class, OutboxWorker)
