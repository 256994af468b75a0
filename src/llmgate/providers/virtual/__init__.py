# src/llmgate/providers/virtual/__init__.py
"""
Virtual providers: providers composed of other providers.

- LoadBalanceProvider: spreads requests over children
- RacingProvider: races children and serves the winner
- FallbackProvider: tries children in order
"""

from .base import VirtualProvider
from .fallback import FallbackConfig, FallbackProvider
from .loadbalance import LoadBalanceConfig, LoadBalanceProvider, LoadBalanceStrategy
from .racing import PerformanceTracker, ProviderRaceStats, RacingConfig, RacingProvider, RacingStrategy

__all__ = [
    "VirtualProvider",
    "FallbackConfig",
    "FallbackProvider",
    "LoadBalanceConfig",
    "LoadBalanceProvider",
    "LoadBalanceStrategy",
    "PerformanceTracker",
    "ProviderRaceStats",
    "RacingConfig",
    "RacingProvider",
    "RacingStrategy",
]
