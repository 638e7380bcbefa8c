"""
Provider Gateway Base - Abstract interface for compute provider plugins.

A provider gateway returns the provider's current detailed state for a
server UUID. Failures are reported by raising; classify_provider_error()
decides whether a failure means "server does not exist" or anything else.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ERROR_CODE_SERVER_NOT_FOUND = "SERVER_NOT_FOUND"


class ProviderError(Exception):
    """Generic failure talking to the compute provider."""


class ProviderProblem(ProviderError):
    """A structured error response returned by the provider API."""

    def __init__(self, error_code: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.status = status

    def __str__(self) -> str:
        return f"{self.message} ({self.error_code})"


class ProviderErrorKind(Enum):
    """Classification of a provider failure."""

    NOT_FOUND = "not_found"
    GENERIC = "generic"


def is_not_found(err: Optional[BaseException]) -> bool:
    """Return True if the error says the server does not exist."""
    if err is None:
        return False
    return (
        isinstance(err, ProviderProblem)
        and err.error_code == ERROR_CODE_SERVER_NOT_FOUND
    )


def classify_provider_error(err: BaseException) -> ProviderErrorKind:
    """
    Classify an error raised by a provider gateway.

    Network failures, authentication failures, rate limiting and malformed
    responses are all generic; only the provider's "server not found" problem
    is not.
    """
    if is_not_found(err):
        return ProviderErrorKind.NOT_FOUND
    return ProviderErrorKind.GENERIC


class ProviderGateway(ABC):
    """
    Abstract base class for provider gateways.

    Gateways are registered with the ProviderRegistry, either as built-ins or
    through the 'vmsync.providers' entry point group.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this provider (e.g., 'static')."""
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        """Provider plugin version string."""
        pass

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """
        Load provider-specific configuration from environment variables.

        Override this method in subclasses to define how the provider
        loads its configuration from the environment.

        Returns:
            Dictionary of configuration values for this provider.
        """
        return {}

    @abstractmethod
    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the provider with configuration.

        Args:
            config: Provider-specific configuration dictionary
        """
        pass

    @abstractmethod
    async def get_server_details(self, uuid: str) -> Dict[str, Any]:
        """
        Fetch the current detailed state of a server.

        Args:
            uuid: The server UUID (the VirtualMachine name)

        Returns:
            The provider's server details

        Raises:
            ProviderProblem: with SERVER_NOT_FOUND if the server doesn't exist
            Exception: any other failure, treated as a generic provider error
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the provider."""
        pass
