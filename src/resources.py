"""
VirtualMachine resource types.

The VirtualMachine record is owned externally. The operator only reads its
identity and writes its status, which mirrors what the compute provider
reports for the server with the same UUID.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ConnectionStatus(Enum):
    """Outcome of the most recent provider lookup."""

    NOT_FOUND = "NotFound"
    SYNCED = "Synced"
    PROVIDER_ERROR = "ProviderError"


@dataclass
class VirtualMachineStatus:
    """Status snapshot written on every reconciliation pass."""

    connection: Dict[str, Any] = field(default_factory=dict)
    connection_status: Optional[ConnectionStatus] = None
    connection_last_error: str = ""
    connection_synced_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the snapshot, omitting empty fields.

        Returns:
            Dictionary keyed by the status field names.
        """
        data: Dict[str, Any] = {}
        if self.connection:
            data["connection"] = self.connection
        if self.connection_status is not None:
            data["connection_status"] = self.connection_status.value
        if self.connection_last_error:
            data["connection_last_error"] = self.connection_last_error
        if self.connection_synced_at is not None:
            data["connection_synced_at"] = self.connection_synced_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "VirtualMachineStatus":
        """Build a snapshot from its serialized form."""
        if not data:
            return cls()

        status = data.get("connection_status")
        synced_at = data.get("connection_synced_at")
        return cls(
            connection=data.get("connection") or {},
            connection_status=ConnectionStatus(status) if status else None,
            connection_last_error=data.get("connection_last_error", ""),
            connection_synced_at=(
                datetime.fromisoformat(synced_at) if synced_at else None
            ),
        )


@dataclass
class VirtualMachine:
    """A declared VirtualMachine, keyed by the provider's server UUID."""

    name: str
    spec: Dict[str, Any] = field(default_factory=dict)
    status: VirtualMachineStatus = field(default_factory=VirtualMachineStatus)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "spec": self.spec,
            "status": self.status.to_dict(),
        }
        if self.created_at is not None:
            data["created_at"] = self.created_at.isoformat()
        if self.updated_at is not None:
            data["updated_at"] = self.updated_at.isoformat()
        return data
