# src/llmgate/extensions/__init__.py
"""
Extension system for LLMGate.

Components:
    Capabilities (base.py, capabilities.py):
        - ExtensionMeta plus optional hook protocols
        - BaseExtension with no-op hooks
        - capability introspection helpers

    Registry (registry.py):
        - ExtensionRegistry: dependency-ordered lifecycle and
          priority-ordered hook dispatch

    Interceptors (interceptor.py):
        - InterceptorChain / InterceptorRegistry around the provider call

    Per-request config (config.py):
        - ``extension_config`` request metadata helpers

    Routes (routes.py):
        - RouteRegistrar / FastAPIRouteRegistrar
"""

from .base import (
    PRIORITY_CACHE,
    PRIORITY_DEFAULT,
    PRIORITY_LOGGING,
    PRIORITY_RATE_LIMIT,
    PRIORITY_ROUTING,
    PRIORITY_SECURITY,
    PRIORITY_TRANSFORM,
    AfterGenerateHook,
    BaseExtension,
    BeforeGenerateHook,
    DependencyDeclarer,
    ExtensionMeta,
    Initializable,
    PriorityProvider,
    ProviderErrorHandler,
    ProviderSelectionHook,
    RouteProvider,
)
from .capabilities import (
    CAPABILITIES,
    get_capabilities,
    get_dependencies,
    get_extension_type,
    get_priority,
    has_capability,
    is_security_critical,
)
from .config import (
    EXTENSION_CONFIG_KEY,
    get_extension_config,
    is_extension_enabled,
    set_extension_config,
)
from .interceptor import (
    FunctionInterceptor,
    Interceptor,
    InterceptorChain,
    InterceptorRegistry,
    ProviderFunc,
)
from .registry import ExtensionRegistry
from .routes import FastAPIRouteRegistrar, RouteRegistrar

__all__ = [
    # Priorities
    "PRIORITY_CACHE",
    "PRIORITY_DEFAULT",
    "PRIORITY_LOGGING",
    "PRIORITY_RATE_LIMIT",
    "PRIORITY_ROUTING",
    "PRIORITY_SECURITY",
    "PRIORITY_TRANSFORM",
    # Capabilities
    "AfterGenerateHook",
    "BaseExtension",
    "BeforeGenerateHook",
    "DependencyDeclarer",
    "ExtensionMeta",
    "Initializable",
    "PriorityProvider",
    "ProviderErrorHandler",
    "ProviderSelectionHook",
    "RouteProvider",
    "CAPABILITIES",
    "get_capabilities",
    "get_dependencies",
    "get_extension_type",
    "get_priority",
    "has_capability",
    "is_security_critical",
    # Per-request config
    "EXTENSION_CONFIG_KEY",
    "get_extension_config",
    "is_extension_enabled",
    "set_extension_config",
    # Interceptors
    "FunctionInterceptor",
    "Interceptor",
    "InterceptorChain",
    "InterceptorRegistry",
    "ProviderFunc",
    # Registry
    "ExtensionRegistry",
    # Routes
    "FastAPIRouteRegistrar",
    "RouteRegistrar",
]
