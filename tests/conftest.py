"""Pytest configuration and shared fixtures for all tests."""

from unittest.mock import MagicMock

import pytest
from prometheus_client import CollectorRegistry

from outbox_relay.infrastructure.metrics import OutboxMetricCollector
from tests.fakes import FixedClock, HandlerScript, InMemoryOutboxTable


@pytest.fixture
def registry():
    """Fresh Prometheus registry for one test."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry):
    """Metric collector with its own registry, so tests do not share counters."""
    return OutboxMetricCollector(registry=registry)


@pytest.fixture
def no_jitter():
    """Random source that always draws zero jitter."""
    rng = MagicMock()
    rng.randrange.return_value = 0
    return rng


@pytest.fixture
def clock():
    """Controllable UTC clock."""
    return FixedClock()


@pytest.fixture
def table():
    """Empty in-memory outbox table."""
    return InMemoryOutboxTable()


@pytest.fixture
def script():
    """Handler script that succeeds for every item by default."""
    return HandlerScript()
