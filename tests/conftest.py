"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from metrics import SYNCING_VMS_METRIC, create_syncing_gauge
from resources import VirtualMachine
from sync_registry import SyncRegistry


@pytest.fixture
def collector_registry():
    """A fresh Prometheus collector registry."""
    return CollectorRegistry()


@pytest.fixture
def gauge_value(collector_registry):
    """Read the syncing gauge from the fresh registry."""

    def read():
        return collector_registry.get_sample_value(SYNCING_VMS_METRIC)

    return read


@pytest.fixture
def sync_registry(collector_registry):
    """Sync registry backed by a gauge in the fresh collector registry."""
    return SyncRegistry(create_syncing_gauge(collector_registry))


@pytest.fixture
def mock_store():
    """Create a mock VirtualMachine store."""
    store = AsyncMock()
    store.get_virtual_machine = AsyncMock(
        side_effect=lambda name: VirtualMachine(name=name)
    )
    store.update_virtual_machine_status = AsyncMock()
    store.list_virtual_machine_names = AsyncMock(return_value=[])
    return store


@pytest.fixture
def server_details():
    """Sample server details as returned by a provider."""
    return {
        "uuid": "0077fa3d-32db-4b09-9f5f-30d9e9afb565",
        "hostname": "web-1.example.com",
        "state": "started",
        "zone": "fi-hel1",
        "core_number": 2,
        "memory_amount": 4096,
    }


@pytest.fixture
def mock_gateway(server_details):
    """Create a mock provider gateway returning the sample details."""
    gateway = AsyncMock()
    gateway.get_server_details = AsyncMock(return_value=server_details)
    return gateway
