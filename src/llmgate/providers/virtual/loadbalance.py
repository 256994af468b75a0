# src/llmgate/providers/virtual/loadbalance.py
"""
Load-balancing virtual provider.

Distributes chat completions across child providers. Selection is pure
(no I/O, no health probing); an unhealthy child shows up as a propagated
error from its call.

Strategies:
    round_robin  children in turn (default)
    random       index derived from the monotonic clock
    weighted     smooth weighted round-robin over ``weights``; children
                 without a weight count as 1, so equal weights behave
                 exactly like round_robin

Every chunk of a served stream carries ``loadbalance_provider`` in its
metadata, naming the child that produced it.

Usage:
    >>> lb = LoadBalanceProvider(
    ...     ProviderConfig(name="pool", type="loadbalance",
    ...                    provider_config={"strategy": "round_robin"}),
    ...     providers=[a, b, c],
    ... )
    >>> stream = await lb.generate_chat_completion(ChatRequest(prompt="hi"))
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from ...exceptions import ProviderIncompatibleError
from ...models import ChatRequest, ProviderConfig, ProviderType
from ...observability.collector import MetricsCollector
from ...observability.events import MetricEventType
from ..streams import ChatStream, MetadataStampingStream
from .base import VirtualProvider

logger = logging.getLogger(__name__)

METADATA_KEY = "loadbalance_provider"


class LoadBalanceStrategy(str, Enum):
    ROUND_ROBIN = "round_robin"
    RANDOM = "random"
    WEIGHTED = "weighted"


class LoadBalanceConfig(BaseModel):
    """Load-balancer settings read from ``provider_config``."""

    strategy: LoadBalanceStrategy = LoadBalanceStrategy.ROUND_ROBIN
    providers: List[str] = Field(default_factory=list)
    weights: Dict[str, int] = Field(default_factory=dict)

    @field_validator("strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, value: Any) -> Any:
        """Accepts "round-robin" style names; unknown strategies fall back to round_robin."""
        if isinstance(value, LoadBalanceStrategy):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            if normalized in LoadBalanceStrategy._value2member_map_:
                return normalized
            logger.warning(f"Unknown load-balance strategy '{value}', using round_robin")
        return LoadBalanceStrategy.ROUND_ROBIN


class LoadBalanceProvider(VirtualProvider):
    """Virtual provider spreading requests over its children."""

    default_provider_type = ProviderType.LOADBALANCE.value
    default_description = "Distributes requests across providers"

    def __init__(
        self,
        config: ProviderConfig,
        providers: Optional[Sequence[Any]] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._select_lock = threading.Lock()
        self._counter = 0
        self._current_weights: Dict[int, int] = {}
        self.settings = LoadBalanceConfig()
        super().__init__(config, providers, metrics_collector)

    def _apply_settings(self, settings: Dict[str, Any]) -> None:
        self.settings = LoadBalanceConfig.model_validate(settings or {})
        with self._select_lock:
            self._current_weights = {}

    @property
    def strategy(self) -> LoadBalanceStrategy:
        return self.settings.strategy

    def set_providers(self, providers: Sequence[Any]) -> None:
        super().set_providers(providers)
        with self._select_lock:
            self._current_weights = {}

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def select_provider(self, providers: Sequence[Any]) -> Any:
        """Pick the child serving the next request."""
        strategy = self.settings.strategy
        if strategy == LoadBalanceStrategy.RANDOM:
            return providers[time.monotonic_ns() % len(providers)]
        if strategy == LoadBalanceStrategy.WEIGHTED:
            return providers[self._next_weighted_index(providers)]
        with self._select_lock:
            index = self._counter
            self._counter += 1
        return providers[index % len(providers)]

    def _weight_of(self, child: Any) -> int:
        weight = self.settings.weights.get(self._child_name(child), 1)
        return weight if weight >= 1 else 1

    def _next_weighted_index(self, providers: Sequence[Any]) -> int:
        weights = [self._weight_of(child) for child in providers]
        total = sum(weights)
        with self._select_lock:
            best = 0
            for i, weight in enumerate(weights):
                self._current_weights[i] = self._current_weights.get(i, 0) + weight
                if self._current_weights[i] > self._current_weights[best]:
                    best = i
            self._current_weights[best] -= total
        return best

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    async def generate_chat_completion(self, request: ChatRequest) -> ChatStream:
        providers = self._require_providers()
        model = request.model
        await self._emit(MetricEventType.REQUEST, model)

        child = self.select_provider(providers)
        child_name = self._child_name(child)

        if not self._is_chat_capable(child):
            message = f"selected provider '{child_name}' does not support chat"
            await self._emit(
                MetricEventType.ERROR,
                model,
                error_type="provider_incompatible",
                error_message=message,
            )
            raise ProviderIncompatibleError(self.name, message)

        start = time.perf_counter()
        try:
            stream = await child.generate_chat_completion(request)
        except Exception as e:
            await self._emit(
                MetricEventType.ERROR,
                model,
                error_type="provider_error",
                error_message=str(e),
                latency_ms=self._elapsed_ms(start),
            )
            raise

        await self._emit(
            MetricEventType.SUCCESS,
            model,
            latency_ms=self._elapsed_ms(start),
            metadata={"selected_provider": child_name, "strategy": self.settings.strategy.value},
        )
        logger.debug(f"Load balancer '{self.name}' routed request to '{child_name}'")
        return MetadataStampingStream(stream, {METADATA_KEY: child_name})
