"""
VirtualMachine Reconciler - mirrors provider state into VirtualMachine status.

Each reconcile() call is one pass of the lifecycle:

    Claim  ->  Sync  ...  Sync  ->  Withdraw

- Claim: the first pass that reaches the provider starts tracking the VM and
  increments the syncing gauge.
- Sync: every pass fetches the server details and writes a status snapshot.
- Withdraw: once the VirtualMachine is gone, tracking is released and the
  gauge decremented.

The reconciler never schedules itself. It returns a ReconcileResult telling
the caller when to run it again.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

from providers.base import ProviderErrorKind, ProviderGateway, classify_provider_error
from resources import ConnectionStatus, VirtualMachine, VirtualMachineStatus
from sync_registry import SyncRegistry

logger = logging.getLogger(__name__)


class Requeue(Enum):
    """What the caller should do after a reconciliation pass."""

    AFTER_INTERVAL = "after_interval"
    BACKOFF = "backoff"
    IMMEDIATELY = "immediately"
    NONE = "none"


@dataclass
class ReconcileResult:
    """Scheduling decision returned by a reconciliation pass."""

    requeue: Requeue = Requeue.NONE
    requeue_after: Optional[float] = None
    error: Optional[BaseException] = None


@dataclass
class SyncOutcome:
    """Status computed from one provider lookup."""

    status: VirtualMachineStatus
    backoff: bool = False


class CallTimeoutError(Exception):
    """A store or provider call did not complete within the call timeout."""


class VirtualMachineStore(Protocol):
    """The parts of the declarative store the reconciler uses."""

    async def get_virtual_machine(self, name: str) -> Optional[VirtualMachine]: ...

    async def update_virtual_machine_status(
        self, name: str, status: VirtualMachineStatus
    ) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VirtualMachineReconciler:
    """
    Reconciles VirtualMachine records against the compute provider.

    Safe to call concurrently for different names, and for the same name:
    the only shared state is the SyncRegistry, whose transitions are atomic.
    """

    def __init__(
        self,
        store: VirtualMachineStore,
        gateway: ProviderGateway,
        sync_registry: SyncRegistry,
        sync_interval: float = 30,
        call_timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.sync_registry = sync_registry
        self.sync_interval = sync_interval
        self.call_timeout = call_timeout
        self._clock = clock or _utcnow

    async def reconcile(self, name: str) -> ReconcileResult:
        """
        Run one reconciliation pass for a VirtualMachine.

        Args:
            name: The VirtualMachine name (the provider server UUID)

        Returns:
            ReconcileResult with the scheduling decision and, for store
            failures and timeouts, the error that caused a retry
        """
        try:
            vm = await self._call(self.store.get_virtual_machine(name), "lookup")
        except Exception as e:
            logger.error(f"Failed to fetch VirtualMachine {name}: {e}")
            return ReconcileResult(requeue=Requeue.BACKOFF, error=e)

        if vm is None:
            # VirtualMachine is gone, stop polling
            return self._withdraw(name)

        try:
            outcome = await self._sync(vm)
        except CallTimeoutError as e:
            logger.error(f"Provider lookup for {name} timed out")
            return ReconcileResult(requeue=Requeue.BACKOFF, error=e)

        return await self._persist(vm, outcome)

    async def _sync(self, vm: VirtualMachine) -> SyncOutcome:
        """Fetch server details and compute the new status."""
        try:
            details = await self._call(
                self.gateway.get_server_details(vm.name), "provider lookup"
            )
        except CallTimeoutError:
            raise
        except Exception as e:
            if classify_provider_error(e) is ProviderErrorKind.NOT_FOUND:
                logger.debug(f"VM doesn't exist: {vm.name}")
                # Zero the connection, it could have been set previously
                return SyncOutcome(
                    status=VirtualMachineStatus(
                        connection={},
                        connection_status=ConnectionStatus.NOT_FOUND,
                        connection_synced_at=self._clock(),
                    )
                )

            logger.error(f"Provider API error for {vm.name}: {e}", exc_info=True)
            return SyncOutcome(
                status=VirtualMachineStatus(
                    connection={},
                    connection_status=ConnectionStatus.PROVIDER_ERROR,
                    connection_last_error=str(e),
                    connection_synced_at=self._clock(),
                ),
                backoff=True,
            )

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"VM info for {vm.name}: {_encode_json(details)}")

        return SyncOutcome(
            status=VirtualMachineStatus(
                connection=details,
                connection_status=ConnectionStatus.SYNCED,
                connection_synced_at=self._clock(),
            )
        )

    async def _persist(self, vm: VirtualMachine, outcome: SyncOutcome) -> ReconcileResult:
        """Write the status and claim the VM for polling."""
        try:
            await self._call(
                self.store.update_virtual_machine_status(vm.name, outcome.status),
                "status update",
            )
        except CallTimeoutError as e:
            logger.error(f"Status update for {vm.name} timed out")
            return ReconcileResult(requeue=Requeue.BACKOFF, error=e)
        except Exception as e:
            # Tracking stands even if the status could not be written
            self.sync_registry.claim(vm.name)
            logger.error(f"Failed to update status of {vm.name}: {e}")
            return ReconcileResult(requeue=Requeue.BACKOFF, error=e)

        self.sync_registry.claim(vm.name)
        logger.debug(f"Synced {vm.name}: {outcome.status.connection_status.value}")

        if outcome.backoff:
            return ReconcileResult(requeue=Requeue.BACKOFF)

        return ReconcileResult(
            requeue=Requeue.AFTER_INTERVAL, requeue_after=self.sync_interval
        )

    def _withdraw(self, name: str) -> ReconcileResult:
        self.sync_registry.withdraw(name)
        logger.info(f"Reconciled {name}: VirtualMachine deleted")
        return ReconcileResult(requeue=Requeue.NONE)

    async def _call(self, aw: Awaitable[Any], what: str) -> Any:
        """
        Await a store or provider call, bounded by call_timeout.

        A timeout raises CallTimeoutError so it can't be mistaken for an
        error raised by the call itself. The call is cancelled if the
        caller is.
        """
        if self.call_timeout is None:
            return await aw

        task = asyncio.ensure_future(aw)
        try:
            done, _ = await asyncio.wait({task}, timeout=self.call_timeout)
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise

        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise CallTimeoutError(f"{what} timed out after {self.call_timeout}s")

        return task.result()


def _encode_json(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, default=str, sort_keys=True)
