"""
Sync Registry - tracks which virtual machines are actively polled.

Membership is the only state: a name is present from its first sync until its
deletion is observed. Every transition is atomic, so duplicate or concurrent
reconciliations never double count the syncing gauge.
"""

import logging
import threading
from typing import Protocol, Set

logger = logging.getLogger(__name__)


class SyncGauge(Protocol):
    """Minimal gauge interface (satisfied by prometheus_client.Gauge)."""

    def inc(self, amount: float = 1) -> None: ...

    def dec(self, amount: float = 1) -> None: ...


class SyncRegistry:
    """
    Concurrency-safe set of virtual machine names currently being synced.

    Owns the syncing gauge so that the gauge only moves as a direct
    consequence of a membership transition.
    """

    def __init__(self, gauge: SyncGauge):
        self._gauge = gauge
        self._names: Set[str] = set()
        self._lock = threading.Lock()

    def insert_if_absent(self, name: str) -> bool:
        """
        Add a name to the registry.

        Returns:
            True if the name was already present
        """
        with self._lock:
            if name in self._names:
                return True
            self._names.add(name)
            return False

    def remove_if_present(self, name: str) -> bool:
        """
        Remove a name from the registry.

        Returns:
            True if the name was present and has been removed
        """
        with self._lock:
            if name not in self._names:
                return False
            self._names.remove(name)
            return True

    def claim(self, name: str) -> bool:
        """
        Start tracking a virtual machine.

        Returns:
            True if this call made the claim (gauge incremented)
        """
        if self.insert_if_absent(name):
            return False

        logger.info(f"Start polling VM state from provider: {name}")
        self._gauge.inc()
        return True

    def withdraw(self, name: str) -> bool:
        """
        Stop tracking a virtual machine.

        Returns:
            True if this call released the claim (gauge decremented)
        """
        if not self.remove_if_present(name):
            return False

        logger.info(f"Stop polling VM state from provider: {name}")
        self._gauge.dec()
        return True

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)
