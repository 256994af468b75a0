# src/llmgate/providers/__init__.py
"""
Provider contract and provider implementations for the LLMGate library.

This package defines the capability protocols every provider implements a
subset of, the :class:`BaseProvider` with default behavior, chat stream
helpers, the canned-response :class:`StaticProvider`, the virtual providers
and the :class:`ProviderManager` that builds them from configuration.
Vendor-specific HTTP adapters subclass :class:`BaseProvider` and register
their type with the manager.
"""

from .base import (
    BaseProvider,
    ChatProvider,
    HealthCheckProvider,
    LifecycleProvider,
    ModelInventory,
    ProviderIdentity,
    describe_provider,
    merge_metrics,
    provider_capabilities,
)
from .manager import PROVIDER_MAP, ProviderManager
from .static_provider import StaticProvider
from .streams import ChatStream, IteratorChatStream, ListChatStream, MetadataStampingStream, collect_stream
from .virtual import (
    FallbackProvider,
    LoadBalanceProvider,
    LoadBalanceStrategy,
    RacingProvider,
    RacingStrategy,
    VirtualProvider,
)

__all__ = [
    "BaseProvider",
    "ChatProvider",
    "HealthCheckProvider",
    "LifecycleProvider",
    "ModelInventory",
    "ProviderIdentity",
    "describe_provider",
    "merge_metrics",
    "provider_capabilities",
    "PROVIDER_MAP",
    "ProviderManager",
    "StaticProvider",
    "ChatStream",
    "IteratorChatStream",
    "ListChatStream",
    "MetadataStampingStream",
    "collect_stream",
    "FallbackProvider",
    "LoadBalanceProvider",
    "LoadBalanceStrategy",
    "RacingProvider",
    "RacingStrategy",
    "VirtualProvider",
]
