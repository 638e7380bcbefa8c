"""Unit tests for db.py - Database manager."""

import json
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import CollectorRegistry

from db import DatabaseManager
from metrics import create_syncing_gauge
from providers.static import StaticProvider
from reconciler import Requeue, VirtualMachineReconciler
from resources import ConnectionStatus, VirtualMachineStatus
from sync_registry import SyncRegistry


def make_row(name="vm-1", spec=None, status=None):
    """Build a dict standing in for an asyncpg.Record."""
    return {
        "name": name,
        "spec": json.dumps(spec or {}),
        "status": json.dumps(status or {}),
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 1, 2, tzinfo=timezone.utc),
    }


class TestDatabaseManager:
    """Tests for DatabaseManager construction."""

    def test_init(self):
        """Test database manager initialization."""
        db = DatabaseManager(
            host="localhost",
            port=5432,
            database="testdb",
            user="testuser",
            password="testpass",
            min_pool_size=3,
            max_pool_size=10,
        )
        assert db.host == "localhost"
        assert db.database == "testdb"
        assert db.min_pool_size == 3
        assert db.max_pool_size == 10
        assert db.pool is None

    def test_ensure_connected_raises_when_not_connected(self):
        """Test _ensure_connected raises when pool is None."""
        db = DatabaseManager("localhost", 5432, "testdb", "testuser", "testpass")
        with pytest.raises(RuntimeError) as exc_info:
            db._ensure_connected()
        assert "Database not connected" in str(exc_info.value)

    def test_parse_row(self):
        db = DatabaseManager("localhost", 5432, "testdb", "testuser", "testpass")
        row = make_row(
            spec={"plan": "1xCPU-2GB"},
            status={
                "connection": {"hostname": "web-1"},
                "connection_status": "Synced",
                "connection_synced_at": "2024-01-01T12:00:00+00:00",
            },
        )

        vm = db._parse_virtual_machine_row(row)

        assert vm.name == "vm-1"
        assert vm.spec == {"plan": "1xCPU-2GB"}
        assert vm.status.connection == {"hostname": "web-1"}
        assert vm.status.connection_status is ConnectionStatus.SYNCED
        assert vm.status.connection_synced_at == datetime(
            2024, 1, 1, 12, tzinfo=timezone.utc
        )

    def test_parse_row_empty_status(self):
        db = DatabaseManager("localhost", 5432, "testdb", "testuser", "testpass")
        vm = db._parse_virtual_machine_row(make_row())
        assert vm.status == VirtualMachineStatus()


@pytest.mark.asyncio
class TestVirtualMachineOperations:
    """Tests for VirtualMachine queries against a mocked pool."""

    @pytest.fixture
    def mock_conn(self):
        return AsyncMock()

    @pytest.fixture
    def db_manager(self, mock_conn):
        db = DatabaseManager("localhost", 5432, "testdb", "testuser", "testpass")

        @asynccontextmanager
        async def mock_acquire():
            yield mock_conn

        db.pool = MagicMock()
        db.pool.acquire = mock_acquire
        return db

    async def test_initialize_schema(self, db_manager, mock_conn):
        await db_manager.initialize_schema()

        sql = mock_conn.execute.call_args.args[0]
        assert "CREATE TABLE IF NOT EXISTS virtual_machines" in sql

    async def test_create_virtual_machine(self, db_manager, mock_conn):
        mock_conn.fetchrow = AsyncMock(
            return_value=make_row(spec={"plan": "1xCPU-2GB"})
        )

        vm = await db_manager.create_virtual_machine("vm-1", {"plan": "1xCPU-2GB"})

        args = mock_conn.fetchrow.call_args.args
        assert "ON CONFLICT (name)" in args[0]
        assert args[1] == "vm-1"
        assert json.loads(args[2]) == {"plan": "1xCPU-2GB"}
        assert vm.spec == {"plan": "1xCPU-2GB"}

    async def test_get_virtual_machine(self, db_manager, mock_conn):
        mock_conn.fetchrow = AsyncMock(return_value=make_row())

        vm = await db_manager.get_virtual_machine("vm-1")

        assert vm.name == "vm-1"
        assert mock_conn.fetchrow.call_args.args[1] == "vm-1"

    async def test_get_virtual_machine_absent(self, db_manager, mock_conn):
        mock_conn.fetchrow = AsyncMock(return_value=None)

        assert await db_manager.get_virtual_machine("vm-1") is None

    async def test_list_virtual_machines(self, db_manager, mock_conn):
        mock_conn.fetch = AsyncMock(return_value=[make_row("a"), make_row("b")])

        vms = await db_manager.list_virtual_machines(limit=10)

        assert [vm.name for vm in vms] == ["a", "b"]
        assert mock_conn.fetch.call_args.args[1] == 10

    async def test_list_virtual_machine_names(self, db_manager, mock_conn):
        mock_conn.fetch = AsyncMock(return_value=[{"name": "a"}, {"name": "b"}])

        assert await db_manager.list_virtual_machine_names() == ["a", "b"]

    async def test_update_status(self, db_manager, mock_conn):
        mock_conn.execute = AsyncMock(return_value="UPDATE 1")
        status = VirtualMachineStatus(
            connection_status=ConnectionStatus.PROVIDER_ERROR,
            connection_last_error="rate limited",
            connection_synced_at=datetime(2024, 1, 1, 12, tzinfo=timezone.utc),
        )

        await db_manager.update_virtual_machine_status("vm-1", status)

        args = mock_conn.execute.call_args.args
        assert json.loads(args[1]) == {
            "connection_status": "ProviderError",
            "connection_last_error": "rate limited",
            "connection_synced_at": "2024-01-01T12:00:00+00:00",
        }
        assert args[2] == "vm-1"

    async def test_update_status_missing_row(self, db_manager, mock_conn):
        mock_conn.execute = AsyncMock(return_value="UPDATE 0")

        with pytest.raises(LookupError):
            await db_manager.update_virtual_machine_status(
                "vm-1", VirtualMachineStatus()
            )

    async def test_delete_virtual_machine(self, db_manager, mock_conn):
        mock_conn.execute = AsyncMock(return_value="DELETE 1")
        assert await db_manager.delete_virtual_machine("vm-1") is True

        mock_conn.execute = AsyncMock(return_value="DELETE 0")
        assert await db_manager.delete_virtual_machine("vm-1") is False

    async def test_operations_require_connection(self):
        db = DatabaseManager("localhost", 5432, "testdb", "testuser", "testpass")

        with pytest.raises(RuntimeError):
            await db.get_virtual_machine("vm-1")

    async def test_update_status_with_dates(self, db_manager, mock_conn):
        """Date values in the connection details are stored as ISO strings."""
        mock_conn.execute = AsyncMock(return_value="UPDATE 1")
        status = VirtualMachineStatus(
            connection={"hostname": "web-1", "created": date(2024, 1, 1)},
            connection_status=ConnectionStatus.SYNCED,
        )

        await db_manager.update_virtual_machine_status("vm-1", status)

        stored = json.loads(mock_conn.execute.call_args.args[1])
        assert stored["connection"] == {"hostname": "web-1", "created": "2024-01-01"}

    async def test_static_yaml_details_sync(self, db_manager, mock_conn, tmp_path):
        """YAML details with date scalars reconcile to Synced."""
        path = tmp_path / "servers.yaml"
        path.write_text("vm-1:\n  hostname: web-1\n  created: 2024-01-01\n")
        provider = StaticProvider()
        await provider.initialize({"file": str(path)})

        mock_conn.fetchrow = AsyncMock(return_value=make_row())
        mock_conn.execute = AsyncMock(return_value="UPDATE 1")
        registry = SyncRegistry(create_syncing_gauge(CollectorRegistry()))
        reconciler = VirtualMachineReconciler(db_manager, provider, registry)

        result = await reconciler.reconcile("vm-1")

        assert result.requeue is Requeue.AFTER_INTERVAL
        assert result.error is None
        stored = json.loads(mock_conn.execute.call_args.args[1])
        assert stored["connection_status"] == "Synced"
        assert stored["connection"]["created"] == "2024-01-01"
