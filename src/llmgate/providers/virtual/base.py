# src/llmgate/providers/virtual/base.py
"""
Common base for virtual providers.

A virtual provider implements the provider contract by composing child
providers. It needs no credentials of its own, reports the combined
metrics of its children and is healthy while any child is healthy.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

from ...exceptions import ProviderError
from ...models import AuthConfig, ModelInfo, ProviderConfig, ProviderMetrics, ToolFormat
from ...observability.collector import MetricsCollector
from ..base import BaseProvider, ChatProvider, HealthCheckProvider, ModelInventory, merge_metrics

logger = logging.getLogger(__name__)


class VirtualProvider(BaseProvider):
    """
    Provider composed of child providers.

    Args:
        config: Provider configuration; ``provider_config["providers"]``
            lists child names for :class:`~llmgate.providers.manager.ProviderManager`.
        providers: Child provider instances, in configuration order.
        metrics_collector: Optional collector receiving metric events.
    """

    def __init__(
        self,
        config: ProviderConfig,
        providers: Optional[Sequence[Any]] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        super().__init__(config, metrics_collector)
        self._children_lock = threading.Lock()
        self._providers: List[Any] = list(providers or [])
        self._apply_settings(config.provider_config)

    def _apply_settings(self, settings: Dict[str, Any]) -> None:
        """Read type-specific settings from ``provider_config``."""

    @property
    def provider_type(self) -> str:
        return self.default_provider_type

    @property
    def providers(self) -> List[Any]:
        with self._children_lock:
            return list(self._providers)

    def set_providers(self, providers: Sequence[Any]) -> None:
        with self._children_lock:
            self._providers = list(providers)
        logger.debug(f"Virtual provider '{self.name}' now has {len(providers)} child provider(s)")

    def _require_providers(self) -> List[Any]:
        providers = self.providers
        if not providers:
            raise ProviderError(self.name, "no providers configured")
        return providers

    def configure(self, config: ProviderConfig) -> None:
        super().configure(config)
        self._apply_settings(config.provider_config)

    # Virtual providers hold no credentials

    async def authenticate(self, auth: AuthConfig) -> None:
        return None

    def is_authenticated(self) -> bool:
        return True

    async def logout(self) -> None:
        return None

    async def list_models(self) -> List[ModelInfo]:
        """Union of the children's models, first occurrence wins."""
        models: Dict[str, ModelInfo] = {}
        for child in self.providers:
            if not isinstance(child, ModelInventory):
                continue
            for model in await child.list_models():
                models.setdefault(model.id, model)
        return list(models.values())

    def supports_streaming(self) -> bool:
        return True

    def get_tool_format(self) -> ToolFormat:
        return ToolFormat.OPENAI

    async def health_check(self) -> None:
        """
        Healthy if any child that supports health checks is healthy.

        Raises:
            ProviderError: If there are no children or every checked child failed.
        """
        providers = self._require_providers()
        last_error: Optional[BaseException] = None
        for child in providers:
            if not isinstance(child, HealthCheckProvider):
                continue
            try:
                await child.health_check()
                return
            except Exception as e:
                last_error = e
        if last_error is not None:
            raise ProviderError(self.name, f"all providers unhealthy: {last_error}") from last_error

    def get_metrics(self) -> ProviderMetrics:
        """Combined metrics of all children."""
        return merge_metrics(
            [child.get_metrics() for child in self.providers if isinstance(child, HealthCheckProvider)]
        )

    @staticmethod
    def _child_name(child: Any) -> str:
        return getattr(child, "name", type(child).__name__)

    @staticmethod
    def _is_chat_capable(child: Any) -> bool:
        return isinstance(child, ChatProvider)
