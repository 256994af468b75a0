# src/llmgate/providers/manager.py
"""
Provider Manager for LLMGate.

Builds provider instances from :class:`~llmgate.models.ProviderConfig`
entries using a type registry and gives access to them by name.

Virtual providers (``loadbalance``, ``racing``, ``fallback``) are built in.
Their ``provider_config["providers"]`` lists child provider names, which
are resolved against providers defined earlier in the configuration list.
"""

import asyncio
import inspect
import logging
from typing import Any, Dict, Iterable, List, Optional, Type

from ..exceptions import ConfigError, DuplicateRegistrationError, ProviderNotFoundError
from ..models import ProviderConfig, ProviderType
from ..observability.collector import MetricsCollector
from ..utils import metadata as md
from .base import BaseProvider
from .static_provider import StaticProvider
from .virtual.base import VirtualProvider
from .virtual.fallback import FallbackProvider
from .virtual.loadbalance import LoadBalanceProvider
from .virtual.racing import RacingProvider

logger = logging.getLogger(__name__)

# --- Mapping from config provider type string to class ---
PROVIDER_MAP: Dict[str, Type[BaseProvider]] = {
    ProviderType.STATIC.value: StaticProvider,
    ProviderType.LOADBALANCE.value: LoadBalanceProvider,
    ProviderType.RACING.value: RacingProvider,
    ProviderType.FALLBACK.value: FallbackProvider,
}
# --- End Mapping ---


class ProviderManager:
    """
    Manages the initialization and access to providers.

    Args:
        providers: Provider configurations, in dependency order.
        default_provider: Name returned by ``get_provider()`` without a name.
            Defaults to the first configured provider.
        metrics_collector: Collector attached to every built provider.
        provider_types: Extra type registrations merged over ``PROVIDER_MAP``.
    """

    def __init__(
        self,
        providers: Optional[Iterable[ProviderConfig]] = None,
        default_provider: str = "",
        metrics_collector: Optional[MetricsCollector] = None,
        provider_types: Optional[Dict[str, Type[BaseProvider]]] = None,
    ):
        self._provider_types: Dict[str, Type[BaseProvider]] = dict(PROVIDER_MAP)
        if provider_types:
            self._provider_types.update({k.lower(): v for k, v in provider_types.items()})
        self._providers: Dict[str, Any] = {}
        self._metrics_collector = metrics_collector
        self._default_provider_name = default_provider.lower()

        for config in providers or []:
            self._load_provider(config)

        if not self._default_provider_name and self._providers:
            self._default_provider_name = next(iter(self._providers))
        logger.info(
            f"ProviderManager initialized with {len(self._providers)} provider(s). "
            f"Default provider: '{self._default_provider_name or '<none>'}'."
        )

    def register_provider_type(self, type_name: str, provider_cls: Type[BaseProvider]) -> None:
        """Make a provider class available to configurations of ``type_name``."""
        self._provider_types[type_name.lower()] = provider_cls

    def _load_provider(self, config: ProviderConfig) -> None:
        name = config.name.lower()
        type_key = config.type.lower()
        provider_cls = self._provider_types.get(type_key)
        if provider_cls is None:
            logger.warning(f"Provider type '{type_key}' (for '{name}') is not supported. Skipping.")
            return
        if name in self._providers:
            raise DuplicateRegistrationError("provider", name)

        try:
            if issubclass(provider_cls, VirtualProvider):
                children = self._resolve_children(name, config)
                provider = provider_cls(config, children, metrics_collector=self._metrics_collector)
            else:
                provider = provider_cls(config, metrics_collector=self._metrics_collector)
        except ConfigError:
            raise
        except Exception as e:
            logger.error(f"Failed to initialize provider '{name}' (type: '{type_key}'): {e}", exc_info=True)
            return

        self._providers[name] = provider
        logger.info(f"Provider instance '{name}' (type: '{type_key}') initialized successfully.")

    def _resolve_children(self, name: str, config: ProviderConfig) -> List[Any]:
        child_names = md.get_list(config.provider_config, "providers", []) or []
        children = []
        for child_name in child_names:
            child = self._providers.get(str(child_name).lower())
            if child is None:
                raise ConfigError(
                    f"Virtual provider '{name}' references unknown provider '{child_name}'. "
                    f"Providers must be defined before the virtual providers using them."
                )
            children.append(child)
        return children

    def add_provider(self, provider: Any) -> None:
        """
        Register an already built provider instance.

        Raises:
            DuplicateRegistrationError: If the name is taken.
        """
        name = provider.name.lower()
        if name in self._providers:
            raise DuplicateRegistrationError("provider", name)
        if self._metrics_collector is not None and hasattr(provider, "set_metrics_collector"):
            provider.set_metrics_collector(self._metrics_collector)
        self._providers[name] = provider
        if not self._default_provider_name:
            self._default_provider_name = name

    def get_provider(self, name: Optional[str] = None) -> Any:
        """
        Get a provider instance by name, or the default provider if name is None.

        Raises:
            ProviderNotFoundError: If no provider with that name is loaded.
        """
        target = name.lower() if name else self._default_provider_name
        provider = self._providers.get(target)
        if provider is None:
            raise ProviderNotFoundError(target or "<default>")
        return provider

    def get_default_provider(self) -> Any:
        return self.get_provider(None)

    @property
    def default_provider_name(self) -> str:
        return self._default_provider_name

    def get_available_providers(self) -> List[str]:
        """Names of all loaded provider instances, in load order."""
        return list(self._providers.keys())

    def set_metrics_collector(self, collector: Optional[MetricsCollector]) -> None:
        """Attach a collector to every managed provider that accepts one."""
        self._metrics_collector = collector
        for provider in self._providers.values():
            if hasattr(provider, "set_metrics_collector"):
                provider.set_metrics_collector(collector)

    async def close_providers(self) -> None:
        """Closes connections or cleans up resources for all loaded providers."""
        logger.info("Closing provider connections...")
        close_tasks = [
            self._close_single_provider(name, provider)
            for name, provider in self._providers.items()
            if inspect.iscoroutinefunction(getattr(provider, "close", None))
        ]
        if close_tasks:
            await asyncio.gather(*close_tasks)
        logger.info("Provider connections closure attempt complete.")

    async def _close_single_provider(self, name: str, provider: Any) -> None:
        try:
            await provider.close()
            logger.debug(f"Provider instance '{name}' closed.")
        except Exception as e:
            logger.error(f"Error closing provider instance '{name}': {e}", exc_info=True)
