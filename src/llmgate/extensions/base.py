# src/llmgate/extensions/base.py
"""
Extension capability protocols.

An extension is a named, versioned plugin implementing any subset of the
capability protocols below. Only :class:`ExtensionMeta` is required; the
registry detects the rest with ``isinstance`` and calls only the hooks an
extension actually provides.

Hooks are coroutines, except ``register_routes`` and the metadata
accessors ``dependencies`` and ``priority``.

Priority:
    Lower values run earlier. Extensions without a priority run at
    ``PRIORITY_DEFAULT`` (500). Suggested bands:

    ========== =====  ============================================
    SECURITY     100  authentication, authorization, validation
    RATE_LIMIT   200  quotas and throttling
    CACHE        300  response caching
    ROUTING      400  provider selection and rewriting
    TRANSFORM    500  request / response transformation
    LOGGING      900  logging and auditing
    ========== =====  ============================================
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..models import ChatRequest, ChatResponse

# =============================================================================
# PRIORITIES
# =============================================================================

PRIORITY_SECURITY = 100
PRIORITY_RATE_LIMIT = 200
PRIORITY_CACHE = 300
PRIORITY_ROUTING = 400
PRIORITY_TRANSFORM = 500
PRIORITY_LOGGING = 900
PRIORITY_DEFAULT = PRIORITY_TRANSFORM


# =============================================================================
# CAPABILITY PROTOCOLS
# =============================================================================


@runtime_checkable
class ExtensionMeta(Protocol):
    """Metadata every extension must provide."""

    name: str
    version: str
    description: str


@runtime_checkable
class Initializable(Protocol):
    """Extensions with setup and teardown."""

    async def initialize(self, config: Dict[str, Any]) -> None: ...

    async def shutdown(self) -> None: ...


@runtime_checkable
class BeforeGenerateHook(Protocol):
    """Inspects or mutates a request before it reaches a provider; raising rejects it."""

    async def before_generate(self, request: ChatRequest) -> None: ...


@runtime_checkable
class AfterGenerateHook(Protocol):
    """Inspects or mutates a response after generation."""

    async def after_generate(self, request: ChatRequest, response: ChatResponse) -> None: ...


@runtime_checkable
class ProviderErrorHandler(Protocol):
    """Reacts to provider failures (logging, alerting, bookkeeping)."""

    async def on_provider_error(self, provider: Any, error: BaseException, request: Optional[ChatRequest] = None) -> None: ...


@runtime_checkable
class ProviderSelectionHook(Protocol):
    """Reacts to, or vetoes, the provider selected for a request."""

    async def on_provider_selected(self, provider: Any, request: Optional[ChatRequest] = None) -> None: ...


@runtime_checkable
class RouteProvider(Protocol):
    """Contributes HTTP routes through a route registrar."""

    def register_routes(self, registrar: Any) -> None: ...


@runtime_checkable
class DependencyDeclarer(Protocol):
    """Names extensions that must be initialized first."""

    def dependencies(self) -> List[str]: ...


@runtime_checkable
class PriorityProvider(Protocol):
    """Declares the hook execution priority."""

    def priority(self) -> int: ...


# =============================================================================
# BASE EXTENSION
# =============================================================================


class BaseExtension:
    """
    Convenience base with no-op implementations of every capability.

    Subclasses set ``name``, ``version`` and ``description`` and override
    the hooks they need. Set ``security_critical = True`` for extensions
    that must run even when a request disables them.
    """

    name: str = ""
    version: str = "0.1.0"
    description: str = ""
    security_critical: bool = False

    def __init__(self):
        self.config: Dict[str, Any] = {}

    async def initialize(self, config: Dict[str, Any]) -> None:
        self.config = dict(config or {})

    async def shutdown(self) -> None:
        return None

    async def before_generate(self, request: ChatRequest) -> None:
        return None

    async def after_generate(self, request: ChatRequest, response: ChatResponse) -> None:
        return None

    async def on_provider_error(self, provider: Any, error: BaseException, request: Optional[ChatRequest] = None) -> None:
        return None

    async def on_provider_selected(self, provider: Any, request: Optional[ChatRequest] = None) -> None:
        return None

    def register_routes(self, registrar: Any) -> None:
        return None

    def dependencies(self) -> List[str]:
        return []

    def priority(self) -> int:
        return PRIORITY_DEFAULT

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, version={self.version!r})"
