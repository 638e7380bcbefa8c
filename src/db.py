"""
Database Manager - PostgreSQL storage for VirtualMachine records.

Stores declared VirtualMachines and the status snapshots written by the
reconciler.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import asyncpg

from resources import VirtualMachine, VirtualMachineStatus

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS virtual_machines (
    name VARCHAR(255) PRIMARY KEY,
    spec JSONB NOT NULL DEFAULT '{}',
    status JSONB NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


class DatabaseManager:
    """Manages PostgreSQL database operations for the operator."""

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_pool_size: int = 5,
        max_pool_size: int = 20,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Establish connection pool to PostgreSQL."""
        self.pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            command_timeout=60,  # Query timeout
        )
        logger.info(
            f"Connected to PostgreSQL (pool: {self.min_pool_size}-{self.max_pool_size})"
        )

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            logger.info("Closed PostgreSQL connection")

    def _ensure_connected(self) -> None:
        """Ensure the database connection pool is established."""
        if self.pool is None:
            raise RuntimeError(
                "Database not connected. Call connect() before performing operations."
            )

    async def initialize_schema(self) -> None:
        """Create the virtual_machines table if it doesn't exist."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA)
        logger.info("Database schema initialized")

    # ==================== VirtualMachine Methods ====================

    async def create_virtual_machine(
        self, name: str, spec: Optional[Dict[str, Any]] = None
    ) -> VirtualMachine:
        """
        Create a VirtualMachine, or replace the spec of an existing one.

        Args:
            name: The provider server UUID
            spec: Optional desired state (not interpreted by the operator)

        Returns:
            The stored VirtualMachine
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO virtual_machines (name, spec)
                VALUES ($1, $2)
                ON CONFLICT (name)
                DO UPDATE SET spec = EXCLUDED.spec, updated_at = NOW()
                RETURNING *
                """,
                name,
                json.dumps(spec or {}),
            )

            logger.info(f"Applied VirtualMachine {name}")
            return self._parse_virtual_machine_row(row)

    async def get_virtual_machine(self, name: str) -> Optional[VirtualMachine]:
        """Get a VirtualMachine by name, or None if it doesn't exist."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM virtual_machines WHERE name = $1",
                name,
            )
            if not row:
                return None

            return self._parse_virtual_machine_row(row)

    async def list_virtual_machines(self, limit: int = 100) -> List[VirtualMachine]:
        """List VirtualMachines ordered by name."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM virtual_machines ORDER BY name LIMIT $1",
                limit,
            )
            return [self._parse_virtual_machine_row(row) for row in rows]

    async def list_virtual_machine_names(self) -> List[str]:
        """List the names of all VirtualMachines."""
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT name FROM virtual_machines ORDER BY name")
            return [row["name"] for row in rows]

    async def update_virtual_machine_status(
        self, name: str, status: VirtualMachineStatus
    ) -> None:
        """
        Replace the status of a VirtualMachine.

        Raises:
            LookupError: If the VirtualMachine no longer exists
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE virtual_machines
                SET status = $1, updated_at = NOW()
                WHERE name = $2
                """,
                json.dumps(status.to_dict(), default=str),
                name,
            )

        if result == "UPDATE 0":
            raise LookupError(f"VirtualMachine {name} not found")

    async def delete_virtual_machine(self, name: str) -> bool:
        """
        Delete a VirtualMachine.

        Returns:
            True if a row was deleted
        """
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM virtual_machines WHERE name = $1",
                name,
            )

        deleted = result == "DELETE 1"
        if deleted:
            logger.info(f"Deleted VirtualMachine {name}")
        return deleted

    def _parse_virtual_machine_row(self, row: asyncpg.Record) -> VirtualMachine:
        """
        Parse a virtual_machines row, converting JSON fields.

        Args:
            row: An asyncpg.Record from a database query

        Returns:
            A VirtualMachine with spec and status parsed
        """
        result = dict(row)
        spec = result.get("spec")
        status = result.get("status")
        if isinstance(spec, str):
            spec = json.loads(spec)
        if isinstance(status, str):
            status = json.loads(status)

        return VirtualMachine(
            name=result["name"],
            spec=spec or {},
            status=VirtualMachineStatus.from_dict(status),
            created_at=result.get("created_at"),
            updated_at=result.get("updated_at"),
        )
