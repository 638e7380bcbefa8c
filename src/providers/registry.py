"""
Provider Registry - Discovery and registration of provider gateways.
"""

import logging
from importlib.metadata import entry_points
from typing import Any, Dict, Optional, Type

from providers.base import ProviderGateway

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "vmsync.providers"


class ProviderRegistry:
    """
    Central registry for provider gateways.

    Handles discovery, registration, and instantiation of providers.
    """

    def __init__(self):
        # Registered provider classes (not instantiated)
        self._providers: Dict[str, Type[ProviderGateway]] = {}

        # Cached provider metadata (name, version)
        self._provider_info: Dict[str, Dict[str, str]] = {}

        # Instantiated and initialized provider instances
        self._instances: Dict[str, ProviderGateway] = {}

        # Provider configurations loaded from environment
        self._provider_configs: Dict[str, Dict[str, Any]] = {}

    def register_provider(self, provider_class: Type[ProviderGateway]) -> None:
        """
        Register a provider gateway class.

        Args:
            provider_class: The ProviderGateway subclass to register
        """
        # Create temporary instance to get name/version (only once at registration)
        temp_instance = provider_class()
        name = temp_instance.name
        version = temp_instance.version

        if name in self._providers:
            logger.warning(f"Overwriting existing provider: {name}")

        self._providers[name] = provider_class
        self._provider_info[name] = {"name": name, "version": version}
        self._provider_configs[name] = provider_class.load_config_from_env()
        logger.info(f"Registered provider: {name} v{version}")

    async def get_provider(
        self, name: str, config: Optional[Dict[str, Any]] = None
    ) -> ProviderGateway:
        """
        Get an initialized provider instance.

        The environment-loaded configuration is used as the base and
        overridden by the given config.

        Args:
            name: The provider name to retrieve
            config: Optional configuration overrides

        Returns:
            An initialized ProviderGateway instance

        Raises:
            ValueError: If the provider name is not registered
        """
        if name not in self._providers:
            available = ", ".join(self._providers.keys()) or "none"
            raise ValueError(
                f"Unknown provider: {name}. Available providers: {available}"
            )

        if name not in self._instances:
            provider_config = dict(self._provider_configs.get(name, {}))
            provider_config.update(config or {})

            provider = self._providers[name]()
            await provider.initialize(provider_config)
            self._instances[name] = provider
            logger.info(f"Initialized provider: {name}")

        return self._instances[name]

    def list_providers(self) -> list[str]:
        """List all registered provider names."""
        return list(self._providers.keys())

    def has_provider(self, name: str) -> bool:
        """Check if a provider is registered."""
        return name in self._providers

    def get_provider_info(self, name: str) -> Optional[Dict[str, str]]:
        """
        Get information about a registered provider.

        Returns:
            Dictionary with 'name' and 'version', or None if not found
        """
        return self._provider_info.get(name)

    def get_provider_config(self, name: str) -> Dict[str, Any]:
        """Get the environment-loaded configuration for a provider."""
        return self._provider_configs.get(name, {})


# Global registry instance
_registry: Optional[ProviderRegistry] = None


def get_registry() -> ProviderRegistry:
    """Get the global provider registry singleton."""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_providers() -> None:
    """
    Register the built-in providers and discover third-party ones
    via entry points.
    """
    registry = get_registry()

    from providers.static import StaticProvider

    registry.register_provider(StaticProvider)

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            provider_class = ep.load()
            registry.register_provider(provider_class)
        except Exception as e:
            logger.warning(f"Could not load provider plugin {ep.name}: {e}")
