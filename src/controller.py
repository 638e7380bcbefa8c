"""
Operator Controller - drives the VirtualMachine reconciler.

Similar to a Kubernetes controller work queue: every known VirtualMachine
has at most one pending entry, due at the time its last reconciliation
asked for. A resync loop picks up VirtualMachines created since the last
listing, and a fixed pool of workers reconciles entries as they fall due.
The backoff curve for failed passes lives here, not in the reconciler.
"""

import asyncio
import logging
import random
from typing import Dict, List, Optional, Set

from config import ControllerConfig
from db import DatabaseManager
from reconciler import ReconcileResult, Requeue, VirtualMachineReconciler

logger = logging.getLogger(__name__)

# Exponent cap for the backoff delay
MAX_BACKOFF_EXPONENT = 10


class Controller:
    """
    Work queue and worker pool around a VirtualMachineReconciler.

    A name is never reconciled by two workers at once. A trigger that
    arrives while the name is in flight is replayed as soon as the running
    pass finishes.
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        reconciler: VirtualMachineReconciler,
        config: Optional[ControllerConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db_manager
        self.reconciler = reconciler
        self.config = config or ControllerConfig()
        self.running = False
        self._rng = rng or random.Random()

        # name -> loop time at which the next pass is due
        self._due: Dict[str, float] = {}
        # name -> consecutive passes that asked for backoff
        self._failures: Dict[str, int] = {}
        self._in_flight: Set[str] = set()
        self._retrigger: Set[str] = set()

        self._wakeup = asyncio.Event()
        self._shutdown_event = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

    async def start(self):
        """Start the resync loop and the workers, and run until stopped."""
        logger.info(
            f"Starting controller with {self.config.max_concurrent_reconciles} workers"
        )
        self.running = True
        self._shutdown_event.clear()

        self._tasks = [asyncio.create_task(self._resync_loop())]
        for worker_id in range(self.config.max_concurrent_reconciles):
            self._tasks.append(asyncio.create_task(self._worker(worker_id)))

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Controller tasks cancelled")

    async def stop(self):
        """Stop the controller and wait for in-flight passes to finish."""
        logger.info("Stopping controller")
        self.running = False
        self._shutdown_event.set()
        self._wakeup.set()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Controller stopped")

    def trigger(self, name: str) -> None:
        """Manually trigger reconciliation for a VirtualMachine."""
        logger.info(f"Manually triggering reconciliation for {name}")
        self._enqueue(name, 0)

    def compute_backoff_delay(self, failures: int) -> float:
        """
        Delay before retrying a name that failed `failures` times in a row.

        Exponential in the failure count, capped at backoff_max_delay, with
        ±backoff_jitter_factor jitter to prevent thundering herd.
        """
        delay = min(
            self.config.backoff_base_delay
            * 2 ** min(failures, MAX_BACKOFF_EXPONENT),
            self.config.backoff_max_delay,
        )
        jitter = self.config.backoff_jitter_factor
        return delay * (1 + self._rng.uniform(-jitter, jitter))

    def is_queued(self, name: str) -> bool:
        """Check whether a name has a pending or running pass."""
        return name in self._due or name in self._in_flight

    def _now(self) -> float:
        return asyncio.get_running_loop().time()

    def _enqueue(self, name: str, delay: float) -> None:
        if name in self._in_flight:
            if delay <= 0:
                self._retrigger.add(name)
            return

        due = self._now() + max(delay, 0)
        current = self._due.get(name)
        if current is None or due < current:
            self._due[name] = due
            self._wakeup.set()

    async def _resync_loop(self):
        """Periodically enqueue VirtualMachines the queue doesn't know about."""
        while self.running:
            try:
                names = await self.db.list_virtual_machine_names()
                new = [name for name in names if not self.is_queued(name)]
                for name in new:
                    self._enqueue(name, 0)
                if new:
                    logger.info(f"Found {len(new)} VirtualMachines to reconcile")
                delay = self.config.resync_interval
            except Exception as e:
                logger.error(f"Error listing VirtualMachines: {e}", exc_info=True)
                delay = min(self.config.resync_interval, 10)  # Brief pause on error

            await self._sleep(delay)

    async def _sleep(self, delay: float) -> None:
        """Sleep, returning early on shutdown."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _next_due(self) -> Optional[str]:
        """Wait for the earliest due name and take it off the queue."""
        while self.running:
            timeout = None
            if self._due:
                name = min(self._due, key=self._due.__getitem__)
                wait = self._due[name] - self._now()
                if wait <= 0:
                    del self._due[name]
                    return name
                timeout = wait

            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
        return None

    async def _worker(self, worker_id: int):
        while self.running:
            name = await self._next_due()
            if name is None:
                break

            self._in_flight.add(name)
            try:
                result = await self.reconciler.reconcile(name)
            except Exception as e:
                logger.error(f"Error reconciling {name}: {e}", exc_info=True)
                result = ReconcileResult(requeue=Requeue.BACKOFF, error=e)
            finally:
                self._in_flight.discard(name)

            self._handle_result(name, result)
        logger.debug(f"Worker {worker_id} stopped")

    def _handle_result(self, name: str, result: ReconcileResult) -> None:
        """Schedule the next pass for a name according to its result."""
        if result.error is not None:
            logger.error(f"Reconciliation of {name} failed: {result.error}")

        retrigger = name in self._retrigger
        self._retrigger.discard(name)

        if result.requeue is Requeue.NONE:
            self._failures.pop(name, None)
            return

        if result.requeue is Requeue.BACKOFF:
            failures = self._failures.get(name, 0)
            self._failures[name] = failures + 1
            delay = self.compute_backoff_delay(failures)
        elif result.requeue is Requeue.IMMEDIATELY:
            delay = 0
        else:
            self._failures.pop(name, None)
            delay = (
                result.requeue_after
                if result.requeue_after is not None
                else self.config.sync_interval
            )

        self._enqueue(name, 0 if retrigger else delay)
        logger.debug(f"Requeued {name} in {0 if retrigger else delay:.1f}s")
