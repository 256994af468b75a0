# src/llmgate/providers/base.py
"""
Provider contract for the LLMGate library.

The contract is split into capability protocols so consumers depend only
on what they use:

- :class:`ProviderIdentity`: name, type and description
- :class:`LifecycleProvider`: authenticate, logout, configure
- :class:`ChatProvider`: ``generate_chat_completion``
- :class:`ModelInventory`: models and feature flags
- :class:`HealthCheckProvider`: health check and self-reported metrics

Every protocol is ``runtime_checkable``, so capability detection is a plain
``isinstance`` check. :class:`BaseProvider` implements all of them with
sensible defaults; concrete providers override ``generate_chat_completion``
and whatever else they support.

Metrics:
    A provider may be given a :class:`~llmgate.observability.MetricsCollector`
    via ``set_metrics_collector``. Events are then emitted through
    ``try_record``, so a closed collector never breaks a request.
"""

import abc
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..models import (
    AuthConfig,
    ChatRequest,
    ModelInfo,
    ProviderConfig,
    ProviderMetrics,
    ProviderType,
    ToolFormat,
)
from ..observability.collector import MetricsCollector
from ..observability.events import MetricEvent, MetricEventType
from .streams import ChatStream

logger = logging.getLogger(__name__)


# =============================================================================
# CAPABILITY PROTOCOLS
# =============================================================================


@runtime_checkable
class ProviderIdentity(Protocol):
    """Identity every provider exposes."""

    @property
    def name(self) -> str: ...

    @property
    def provider_type(self) -> str: ...

    @property
    def description(self) -> str: ...


@runtime_checkable
class LifecycleProvider(Protocol):
    """Authentication and configuration lifecycle."""

    async def authenticate(self, auth: AuthConfig) -> None: ...

    def is_authenticated(self) -> bool: ...

    async def logout(self) -> None: ...

    def configure(self, config: ProviderConfig) -> None: ...

    def get_config(self) -> ProviderConfig: ...


@runtime_checkable
class ChatProvider(Protocol):
    """Streaming chat completion."""

    async def generate_chat_completion(self, request: ChatRequest) -> ChatStream: ...


@runtime_checkable
class ModelInventory(Protocol):
    """Model listing and feature flags."""

    async def list_models(self) -> List[ModelInfo]: ...

    def get_default_model(self) -> str: ...

    def supports_tool_calling(self) -> bool: ...

    def supports_streaming(self) -> bool: ...

    def supports_responses_api(self) -> bool: ...

    def get_tool_format(self) -> ToolFormat: ...


@runtime_checkable
class HealthCheckProvider(Protocol):
    """Operational checks. ``health_check`` raises when the provider is unhealthy."""

    async def health_check(self) -> None: ...

    def get_metrics(self) -> ProviderMetrics: ...


CAPABILITY_PROTOCOLS = {
    "identity": ProviderIdentity,
    "lifecycle": LifecycleProvider,
    "chat": ChatProvider,
    "inventory": ModelInventory,
    "health": HealthCheckProvider,
}


def provider_capabilities(provider: Any) -> List[str]:
    """Names of the capability protocols a provider satisfies."""
    return [name for name, protocol in CAPABILITY_PROTOCOLS.items() if isinstance(provider, protocol)]


# =============================================================================
# BASE PROVIDER
# =============================================================================


class BaseProvider(abc.ABC):
    """
    Abstract Base Class for provider integrations.

    Supplies default lifecycle, inventory and health behavior, keeps
    :class:`ProviderMetrics` about its own calls and emits metric events
    to an attached collector.

    Args:
        config: Provider configuration. ``config.name`` is the instance name.
        metrics_collector: Optional collector receiving metric events.
    """

    default_provider_type: str = ProviderType.CUSTOM.value
    default_description: str = "Provider"

    def __init__(self, config: ProviderConfig, metrics_collector: Optional[MetricsCollector] = None):
        self._config = config
        self._lock = threading.Lock()
        self._metrics = ProviderMetrics()
        self._metrics_collector = metrics_collector

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def provider_type(self) -> str:
        return self._config.type or self.default_provider_type

    @property
    def description(self) -> str:
        return self._config.description or self.default_description

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def authenticate(self, auth: AuthConfig) -> None:
        """Store an API key. Other methods must be implemented by subclasses."""
        if not auth.api_key:
            raise NotImplementedError(f"authentication method '{auth.method}' is not supported by {self.name}")
        with self._lock:
            self._config = self._config.model_copy(update={"api_key": auth.api_key})
        logger.debug(f"Provider '{self.name}' authenticated with API key")

    def is_authenticated(self) -> bool:
        with self._lock:
            return bool(self._config.api_key)

    async def logout(self) -> None:
        with self._lock:
            self._config = self._config.model_copy(update={"api_key": ""})

    def configure(self, config: ProviderConfig) -> None:
        with self._lock:
            old_type = self._config.type
            self._config = config
        logger.debug(f"Provider '{self.name}' reconfigured (type {old_type} -> {config.type})")

    def get_config(self) -> ProviderConfig:
        with self._lock:
            return self._config.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    async def list_models(self) -> List[ModelInfo]:
        return []

    def get_default_model(self) -> str:
        return self._config.default_model

    def supports_tool_calling(self) -> bool:
        return False

    def supports_streaming(self) -> bool:
        return True

    def supports_responses_api(self) -> bool:
        return False

    def get_tool_format(self) -> ToolFormat:
        return ToolFormat.NONE

    # -------------------------------------------------------------------------
    # Chat
    # -------------------------------------------------------------------------

    @abc.abstractmethod
    async def generate_chat_completion(self, request: ChatRequest) -> ChatStream:
        """
        Start a chat completion.

        Args:
            request: The uniform chat request.

        Returns:
            A stream of chunks; callers must consume or close it.

        Raises:
            ProviderError: For upstream failures.
        """

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def health_check(self) -> None:
        """Default health check: always healthy."""

    def get_metrics(self) -> ProviderMetrics:
        with self._lock:
            return self._metrics.model_copy()

    def set_metrics_collector(self, collector: Optional[MetricsCollector]) -> None:
        with self._lock:
            self._metrics_collector = collector

    @property
    def metrics_collector(self) -> Optional[MetricsCollector]:
        with self._lock:
            return self._metrics_collector

    async def close(self) -> None:
        """Clean up resources such as network sessions. No-op by default."""

    # -------------------------------------------------------------------------
    # Instrumentation helpers
    # -------------------------------------------------------------------------

    def _record_request(self) -> None:
        with self._lock:
            self._metrics.request_count += 1
            self._metrics.last_request_time = datetime.now(timezone.utc)

    def _record_success(self, latency_ms: float, tokens_used: int = 0) -> None:
        with self._lock:
            m = self._metrics
            m.success_count += 1
            m.total_latency_ms += latency_ms
            m.average_latency_ms = m.total_latency_ms / m.success_count
            m.tokens_used += tokens_used
            m.last_success_time = datetime.now(timezone.utc)

    def _record_error(self, error: BaseException) -> None:
        with self._lock:
            self._metrics.error_count += 1
            self._metrics.last_error = str(error)
            self._metrics.last_error_time = datetime.now(timezone.utc)

    async def _emit(self, event_type: MetricEventType, model_id: str = "", **fields: Any) -> None:
        """Emit an event tagged with this provider. No-op without a collector."""
        collector = self.metrics_collector
        if collector is None:
            return
        await collector.try_record(
            MetricEvent(
                type=event_type,
                provider_name=self.name,
                provider_type=self.provider_type,
                model_id=model_id,
                **fields,
            )
        )

    def _resolve_model(self, request: ChatRequest) -> str:
        return request.model or self.get_default_model()

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000.0


def merge_metrics(metrics: List[ProviderMetrics]) -> ProviderMetrics:
    """
    Sum the counters of several providers.

    Timestamps take the latest value; the average latency is recomputed
    from the summed total and success count.
    """
    total = ProviderMetrics()
    for m in metrics:
        total.request_count += m.request_count
        total.success_count += m.success_count
        total.error_count += m.error_count
        total.total_latency_ms += m.total_latency_ms
        total.tokens_used += m.tokens_used
        for field in ("last_request_time", "last_success_time", "last_error_time"):
            value = getattr(m, field)
            current = getattr(total, field)
            if value is not None and (current is None or value > current):
                setattr(total, field, value)
                if field == "last_error_time":
                    total.last_error = m.last_error
    if total.success_count > 0:
        total.average_latency_ms = total.total_latency_ms / total.success_count
    return total


def describe_provider(provider: Any) -> Dict[str, Any]:
    """Short description of a provider for diagnostics and listings."""
    return {
        "name": getattr(provider, "name", ""),
        "type": getattr(provider, "provider_type", ""),
        "description": getattr(provider, "description", ""),
        "capabilities": provider_capabilities(provider),
    }
