"""
Provider gateways for the VirtualMachine operator.

Third-party gateways are discovered via Python entry points
(group: 'vmsync.providers').
"""

from providers.base import (
    ProviderError,
    ProviderErrorKind,
    ProviderGateway,
    ProviderProblem,
    classify_provider_error,
    is_not_found,
)
from providers.registry import ProviderRegistry, get_registry

__all__ = [
    "ProviderError",
    "ProviderErrorKind",
    "ProviderGateway",
    "ProviderProblem",
    "classify_provider_error",
    "is_not_found",
    "ProviderRegistry",
    "get_registry",
]
