"""Unit tests for live-reloadable outbox options."""

from datetime import timedelta

import pytest

from outbox_relay.config import OutboxSettings, Settings, WorkerType
from outbox_relay.models import OutboxConfigurationError
from outbox_relay.options import OutboxOptionsMonitor
from outbox_relay.workers import CompetingOutboxWorker
from tests.fakes import InMemoryOutboxRepository, RepositoryRecorder, StatusItem, make_options


@pytest.fixture
def monitor():
    """Monitor holding one competing outbox named ``orders``."""
    monitor = OutboxOptionsMonitor()
    monitor.add(make_options(StatusItem, name="orders"))
    return monitor


def test_get_unknown_outbox_raises(monitor):
    """Test that looking up an outbox that was never added raises KeyError."""
    with pytest.raises(KeyError):
        monitor.get("missing")


def test_update_replaces_settings(monitor):
    """Test that reloadable settings are swapped without mutating old options."""
    before = monitor.get("orders")

    updated = monitor.update(
        "orders", OutboxSettings(worker_delay=timedelta(seconds=1), is_worker_enabled=False)
    )

    assert monitor.get("orders") is updated
    assert updated.settings.is_worker_enabled is False
    assert updated.mapping == before.mapping
    # Options handed out earlier are not mutated
    assert before.settings.is_worker_enabled is True


def test_update_rejects_worker_type_change():
    """Test that the worker type cannot be changed after registration."""
    monitor = OutboxOptionsMonitor()
    monitor.add(make_options(StatusItem, name="orders"))

    with pytest.raises(OutboxConfigurationError, match="worker_type"):
        monitor.update(
            "orders", OutboxSettings(worker_type=WorkerType.BATCH_STRICT_ORDERING)
        )

    assert monitor.get("orders").settings.worker_type == WorkerType.COMPETING


@pytest.mark.parametrize("enabled_before", [True, False])
def test_update_rejects_partitioning_toggle(enabled_before):
    """Test that partitioning can be neither switched on nor off at runtime."""
    monitor = OutboxOptionsMonitor()
    monitor.add(make_options(StatusItem, name="orders", partition={"enabled": enabled_before}))

    with pytest.raises(OutboxConfigurationError, match="partition.enabled"):
        monitor.update(
            "orders", OutboxSettings(partition={"enabled": not enabled_before})
        )

    assert monitor.get("orders").partitioned is enabled_before


@pytest.mark.asyncio
async def test_rejected_reload_does_not_redeliver_completed_items(
    table, script, metrics, clock, no_jitter
):
    """Test that completed rows of a partitioned outbox stay completed after a reload attempt."""
    table.insert(*(StatusItem() for _ in range(3)))
    monitor = OutboxOptionsMonitor()
    monitor.add(make_options(StatusItem, name="orders", partition={"enabled": True}))
    worker = CompetingOutboxWorker(
        RepositoryRecorder(table, InMemoryOutboxRepository, clock),
        script.factory(),
        metrics=metrics,
        clock=clock,
        rng=no_jitter,
    )

    first = await worker.process(monitor.get("orders"))
    with pytest.raises(OutboxConfigurationError):
        monitor.update("orders", OutboxSettings())
    second = await worker.process(monitor.get("orders"))

    assert first.processed == 3
    assert second.fetched == 0
    assert len(script.handled) == 3


def test_partition_settings_other_than_enabled_reload(monitor):
    """Test that partition sizing may still change while partitioning stays off."""
    updated = monitor.update("orders", OutboxSettings(partition={"partition_retention_count": 5}))

    assert updated.settings.partition.partition_retention_count == 5
    assert updated.partitioned is False


def test_reload_reads_settings_by_name(monitor):
    """Test that reload picks each outbox's settings by its name."""
    app_settings = Settings(outbox={"ORDERS": OutboxSettings(outbox_items_limit=7)})

    monitor.reload(app_settings)

    assert monitor.get("orders").settings.outbox_items_limit == 7
    assert monitor.names() == ["orders"]


def test_reload_is_all_or_nothing(monitor):
    """Test that one rejected outbox keeps every outbox on its current settings."""
    monitor.add(make_options(StatusItem, name="payments"))
    app_settings = Settings(
        outbox={
            "ORDERS": OutboxSettings(outbox_items_limit=7),
            "PAYMENTS": OutboxSettings(worker_type=WorkerType.STRICT_ORDERING),
        }
    )

    with pytest.raises(OutboxConfigurationError):
        monitor.reload(app_settings)

    assert monitor.get("orders").settings.outbox_items_limit == 100
    assert monitor.get("payments").settings.worker_type == WorkerType.COMPETING
