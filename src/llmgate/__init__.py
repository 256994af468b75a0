# src/llmgate/__init__.py
"""
LLMGate - core of a multi-provider AI inference gateway.

This library provides a uniform chat-completion contract over many model
providers, virtual providers that compose them (load-balancing, racing,
fallback), a plugin system of extensions and interceptors around each
request, and a non-blocking metrics hub with streaming instrumentation.
"""

from importlib.metadata import PackageNotFoundError, version

from .config import (
    ExtensionSettings,
    GatewayConfig,
    MetricsConfig,
    load_gateway_config,
)
from .exceptions import (
    AllProvidersFailedError,
    APIError,
    ConfigError,
    DuplicateRegistrationError,
    ExtensionInitError,
    ExtensionShutdownError,
    HookError,
    HubClosedError,
    LLMGateError,
    NotRegisteredError,
    ProviderError,
    ProviderIncompatibleError,
    ProviderNotFoundError,
    TransportError,
    ValidationError,
)
from .extensions import (
    BaseExtension,
    ExtensionRegistry,
    FastAPIRouteRegistrar,
    FunctionInterceptor,
    InterceptorChain,
    InterceptorRegistry,
)
from .gateway import Gateway
from .models import (
    AuthConfig,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    Chunk,
    ChunkChoice,
    ChunkDelta,
    ModelInfo,
    ProviderConfig,
    ProviderMetrics,
    ProviderType,
    Role,
    ToolFormat,
    Usage,
)
from .observability import (
    MetricEvent,
    MetricEventType,
    MetricFilter,
    MetricsCollector,
    MetricsSnapshot,
    MetricsStreamWrapper,
    StaticPricingCostCalculator,
)
from .providers import (
    BaseProvider,
    ChatStream,
    FallbackProvider,
    LoadBalanceProvider,
    ProviderManager,
    RacingProvider,
    StaticProvider,
)

try:
    __version__ = version("llmgate")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    # Facade and configuration
    "Gateway",
    "GatewayConfig",
    "ExtensionSettings",
    "MetricsConfig",
    "load_gateway_config",
    # Models
    "AuthConfig",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "Chunk",
    "ChunkChoice",
    "ChunkDelta",
    "ModelInfo",
    "ProviderConfig",
    "ProviderMetrics",
    "ProviderType",
    "Role",
    "ToolFormat",
    "Usage",
    # Providers
    "BaseProvider",
    "ChatStream",
    "FallbackProvider",
    "LoadBalanceProvider",
    "ProviderManager",
    "RacingProvider",
    "StaticProvider",
    # Extensions
    "BaseExtension",
    "ExtensionRegistry",
    "FastAPIRouteRegistrar",
    "FunctionInterceptor",
    "InterceptorChain",
    "InterceptorRegistry",
    # Observability
    "MetricEvent",
    "MetricEventType",
    "MetricFilter",
    "MetricsCollector",
    "MetricsSnapshot",
    "MetricsStreamWrapper",
    "StaticPricingCostCalculator",
    # Exceptions
    "AllProvidersFailedError",
    "APIError",
    "ConfigError",
    "DuplicateRegistrationError",
    "ExtensionInitError",
    "ExtensionShutdownError",
    "HookError",
    "HubClosedError",
    "LLMGateError",
    "NotRegisteredError",
    "ProviderError",
    "ProviderIncompatibleError",
    "ProviderNotFoundError",
    "TransportError",
    "ValidationError",
    "__version__",
]
