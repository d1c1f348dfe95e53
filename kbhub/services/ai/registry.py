"""Provider factory registry: maps a provider type to a constructor."""

import logging
from typing import Callable, Dict, List, Union

from kbhub.adapters.base import BaseAIProvider
from kbhub.adapters.vendor_adapter_mock import MockAIProvider
from kbhub.adapters.vendor_adapter_openai import OpenAIProvider
from kbhub.infra.error_handler import ProviderConfigError, UnregisteredProviderError
from kbhub.models.ai import ProviderConfig, ProviderType

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ProviderConfig], BaseAIProvider]


class ProviderRegistry:
    """
    Registry of provider factories.

    Populated once at process start and only read afterwards, so lookups need
    no synchronisation.
    """

    def __init__(self):
        self._factories: Dict[ProviderType, ProviderFactory] = {}

    def register(self, provider_type: Union[ProviderType, str], factory: ProviderFactory) -> None:
        """
        Register a factory for a provider type.

        Re-registering a type replaces the previous factory.

        Raises:
            ValueError: If provider_type is not a known ProviderType
        """
        provider_type = ProviderType(provider_type)
        if provider_type in self._factories:
            logger.warning(
                f"Overwriting provider factory for {provider_type.value}",
                extra={"provider": provider_type.value},
            )
        else:
            logger.info(f"Registered provider {provider_type.value}", extra={"provider": provider_type.value})
        self._factories[provider_type] = factory

    def is_registered(self, provider_type: Union[ProviderType, str]) -> bool:
        try:
            return ProviderType(provider_type) in self._factories
        except ValueError:
            return False

    def registered_types(self) -> List[ProviderType]:
        return list(self._factories.keys())

    def create(self, config: ProviderConfig) -> BaseAIProvider:
        """
        Build a provider from a configuration record.

        Raises:
            UnregisteredProviderError: No factory for config.type
            ProviderConfigError: The built provider rejects the configuration
        """
        factory = self._factories.get(config.type)
        if factory is None:
            raise UnregisteredProviderError(config.type.value)

        provider = factory(config)
        if not provider.validate_config(config):
            raise ProviderConfigError(config.type.value, "provider rejected its configuration")
        return provider


def register_builtin_providers(registry: ProviderRegistry) -> ProviderRegistry:
    """Register the providers shipped with the gateway."""
    registry.register(ProviderType.MOCK, lambda config: MockAIProvider(config))
    registry.register(ProviderType.OPENAI, lambda config: OpenAIProvider(config))
    return registry
