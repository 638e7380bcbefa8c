"""
Main entry point for the VirtualMachine operator.

This module wires the database, provider gateway, sync registry and
reconciler together and runs the controller until a shutdown signal.
"""

import asyncio
import logging
import signal
from typing import Optional

from config import get_config
from controller import Controller
from db import DatabaseManager
from metrics import create_syncing_gauge, start_metrics_server
from providers.base import ProviderGateway
from providers.registry import get_registry, register_builtin_providers
from reconciler import VirtualMachineReconciler
from sync_registry import SyncRegistry

logger = logging.getLogger(__name__)


class Application:
    """Main application that orchestrates the controller and its collaborators."""

    def __init__(self):
        self.config = get_config()
        self.db: Optional[DatabaseManager] = None
        self.provider: Optional[ProviderGateway] = None
        self.sync_registry: Optional[SyncRegistry] = None
        self.controller: Optional[Controller] = None
        self.running = False

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing VirtualMachine operator")

        # Initialize database
        db_config = self.config.database
        self.db = DatabaseManager(
            host=db_config.host,
            port=db_config.port,
            database=db_config.database,
            user=db_config.user,
            password=db_config.password,
            min_pool_size=db_config.min_pool_size,
            max_pool_size=db_config.max_pool_size,
        )
        await self.db.connect()
        await self.db.initialize_schema()
        logger.info("Database initialized")

        # Provider gateway, env config overridden by PROVIDER_CONFIG
        register_builtin_providers()
        provider_config = self.config.provider
        self.provider = await get_registry().get_provider(
            provider_config.plugin, provider_config.plugin_config
        )

        # Metrics and tracking
        self.sync_registry = SyncRegistry(create_syncing_gauge())
        if self.config.metrics.enabled:
            start_metrics_server(self.config.metrics.port)

        ctrl_config = self.config.controller
        reconciler = VirtualMachineReconciler(
            store=self.db,
            gateway=self.provider,
            sync_registry=self.sync_registry,
            sync_interval=ctrl_config.sync_interval,
            call_timeout=ctrl_config.reconcile_timeout,
        )
        self.controller = Controller(
            db_manager=self.db,
            reconciler=reconciler,
            config=ctrl_config,
        )

        logger.info("All components initialized")

    async def start(self):
        """Start the application."""
        self.running = True
        if not self.controller:
            await self.initialize()

        logger.info("Starting VirtualMachine operator")
        await self.controller.start()

    async def stop(self):
        """Stop the application gracefully."""
        if not self.running:
            return
        logger.info("Stopping VirtualMachine operator")
        self.running = False

        if self.controller:
            await self.controller.stop()

        if self.provider:
            await self.provider.close()

        if self.db:
            await self.db.close()

        logger.info("VirtualMachine operator stopped")


async def main():
    """Main entry point."""
    app = Application()

    logging.basicConfig(
        level=app.config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
