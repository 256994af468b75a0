# src/llmgate/extensions/capabilities.py
"""
Capability introspection for extensions.

Used for diagnostics and by the registry to decide which hooks to call.
"""

from typing import Any, Dict, List

from .base import (
    PRIORITY_DEFAULT,
    AfterGenerateHook,
    BeforeGenerateHook,
    DependencyDeclarer,
    ExtensionMeta,
    Initializable,
    PriorityProvider,
    ProviderErrorHandler,
    ProviderSelectionHook,
    RouteProvider,
)

CAPABILITIES: Dict[str, type] = {
    "ExtensionMeta": ExtensionMeta,
    "Initializable": Initializable,
    "BeforeGenerateHook": BeforeGenerateHook,
    "AfterGenerateHook": AfterGenerateHook,
    "ProviderErrorHandler": ProviderErrorHandler,
    "ProviderSelectionHook": ProviderSelectionHook,
    "RouteProvider": RouteProvider,
    "DependencyDeclarer": DependencyDeclarer,
    "PriorityProvider": PriorityProvider,
}


def get_capabilities(ext: Any) -> List[str]:
    """Names of the capabilities ``ext`` implements, in canonical order."""
    if ext is None:
        return []
    return [name for name, protocol in CAPABILITIES.items() if isinstance(ext, protocol)]


def has_capability(ext: Any, capability: str) -> bool:
    """True if ``ext`` implements the named capability. Unknown names are False."""
    protocol = CAPABILITIES.get(capability)
    return ext is not None and protocol is not None and isinstance(ext, protocol)


def get_extension_type(ext: Any) -> str:
    """Qualified class name of an extension, for logs."""
    if ext is None:
        return "None"
    cls = type(ext)
    return f"{cls.__module__}.{cls.__qualname__}"


def get_priority(ext: Any) -> int:
    if isinstance(ext, PriorityProvider):
        return ext.priority()
    return PRIORITY_DEFAULT


def get_dependencies(ext: Any) -> List[str]:
    if isinstance(ext, DependencyDeclarer):
        return list(ext.dependencies() or [])
    return []


def is_security_critical(ext: Any) -> bool:
    return getattr(ext, "security_critical", False) is True
