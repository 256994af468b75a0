# src/llmgate/extensions/registry.py
"""
Extension Registry for LLMGate.

Stores extensions by unique name and drives their lifecycle:

- ``initialize`` visits extensions in dependency order (declared
  dependencies first, missing ones ignored) and initializes those enabled
  in the startup configuration;
- ``shutdown`` visits them in reverse registration order;
- generation hooks run in ascending priority, registration order breaking
  ties, and the first failure halts the chain;
- route registration runs in registration order.

Hook dispatch honors per-request opt-out through the ``extension_config``
request metadata, except for extensions with ``security_critical = True``.
"""

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..config import ExtensionSettings
from ..exceptions import (
    DuplicateRegistrationError,
    ExtensionInitError,
    ExtensionShutdownError,
    HookError,
    ValidationError,
)
from ..models import ChatRequest, ChatResponse
from .base import (
    AfterGenerateHook,
    BeforeGenerateHook,
    ExtensionMeta,
    Initializable,
    ProviderErrorHandler,
    ProviderSelectionHook,
    RouteProvider,
)
from .capabilities import get_capabilities, get_dependencies, get_priority, is_security_critical
from .config import is_extension_enabled

logger = logging.getLogger(__name__)

STAGE_BEFORE_GENERATE = "before_generate"
STAGE_AFTER_GENERATE = "after_generate"
STAGE_PROVIDER_SELECTED = "on_provider_selected"
STAGE_PROVIDER_ERROR = "on_provider_error"


class ExtensionRegistry:
    """Thread-safe registry of named extensions."""

    def __init__(self):
        self._lock = threading.RLock()
        self._extensions: Dict[str, Any] = {}

    # --- Registration ---

    def register(self, extension: Any) -> None:
        """
        Add an extension under its ``name``.

        Raises:
            ValidationError: If the object lacks name, version or description,
                or its name is empty.
            DuplicateRegistrationError: If the name is already registered.
        """
        if not isinstance(extension, ExtensionMeta) or not extension.name:
            raise ValidationError(f"extension {extension!r} must define name, version and description")

        name = extension.name
        with self._lock:
            if name in self._extensions:
                raise DuplicateRegistrationError("extension", name)
            self._extensions[name] = extension
        logger.info(f"Extension '{name}' v{extension.version} registered (priority {get_priority(extension)}).")

    def get(self, name: str) -> Optional[Any]:
        with self._lock:
            return self._extensions.get(name)

    def list(self) -> List[Any]:
        """Extensions in ascending priority, registration order breaking ties."""
        with self._lock:
            extensions = list(self._extensions.values())
        return sorted(extensions, key=get_priority)

    def names(self) -> List[str]:
        """Names in registration order."""
        with self._lock:
            return list(self._extensions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._extensions)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._extensions

    def describe(self) -> List[Dict[str, Any]]:
        """Name, version, priority and capabilities of each extension, for diagnostics."""
        return [
            {
                "name": ext.name,
                "version": ext.version,
                "description": ext.description,
                "priority": get_priority(ext),
                "security_critical": is_security_critical(ext),
                "capabilities": get_capabilities(ext),
            }
            for ext in self.list()
        ]

    # --- Lifecycle ---

    def initialization_order(self) -> List[str]:
        """
        Registered names with every present dependency before its dependents.

        Depth-first post-order over registration order. Unknown dependencies
        are skipped and cycles are broken at the first revisit.
        """
        with self._lock:
            extensions = dict(self._extensions)

        visited = set()
        order: List[str] = []

        def visit(name: str) -> None:
            if name in visited:
                return
            visited.add(name)
            ext = extensions.get(name)
            if ext is None:
                return
            for dep in get_dependencies(ext):
                visit(dep)
            order.append(name)

        for name in extensions:
            visit(name)
        return order

    async def initialize(self, configs: Optional[Mapping[str, Union[ExtensionSettings, Dict[str, Any]]]] = None) -> None:
        """
        Initialize every extension enabled in ``configs``, dependencies first.

        Extensions without an entry, with ``enabled = False``, or without an
        ``initialize`` method are skipped.

        Raises:
            ExtensionInitError: On the first failing extension, or on
                malformed settings.
        """
        configs = configs or {}
        for name in self.initialization_order():
            ext = self.get(name)
            try:
                settings = _coerce_settings(configs.get(name))
            except PydanticValidationError as e:
                logger.error(f"Invalid settings for extension '{name}': {e}")
                raise ExtensionInitError(name, e) from e
            if settings is None or not settings.enabled:
                logger.debug(f"Extension '{name}' not enabled, skipping initialization.")
                continue
            if not isinstance(ext, Initializable):
                continue
            try:
                await ext.initialize(dict(settings.config))
            except Exception as e:
                logger.error(f"Failed to initialize extension '{name}': {e}", exc_info=True)
                raise ExtensionInitError(name, e) from e
            logger.info(f"Extension '{name}' initialized.")

    async def shutdown(self) -> None:
        """
        Shut extensions down in reverse registration order.

        Raises:
            ExtensionShutdownError: On the first failing extension; the rest
                are not shut down.
        """
        for name in reversed(self.names()):
            ext = self.get(name)
            if not isinstance(ext, Initializable):
                continue
            try:
                await ext.shutdown()
            except Exception as e:
                logger.error(f"Failed to shutdown extension '{name}': {e}", exc_info=True)
                raise ExtensionShutdownError(name, e) from e
            logger.debug(f"Extension '{name}' shut down.")

    # --- Hook dispatch ---

    def _active(self, capability: type, request: Optional[ChatRequest]) -> List[Any]:
        metadata = request.metadata if request is not None else None
        active = []
        for ext in self.list():
            if not isinstance(ext, capability):
                continue
            if not is_security_critical(ext) and not is_extension_enabled(metadata, ext.name):
                logger.debug(f"Extension '{ext.name}' disabled for this request.")
                continue
            active.append(ext)
        return active

    async def call_before_generate(self, request: ChatRequest) -> None:
        """
        Raises:
            HookError: From the first failing hook.
        """
        for ext in self._active(BeforeGenerateHook, request):
            try:
                await ext.before_generate(request)
            except Exception as e:
                raise _hook_error(ext, STAGE_BEFORE_GENERATE, e) from e

    async def call_after_generate(self, request: ChatRequest, response: ChatResponse) -> None:
        for ext in self._active(AfterGenerateHook, request):
            try:
                await ext.after_generate(request, response)
            except Exception as e:
                raise _hook_error(ext, STAGE_AFTER_GENERATE, e) from e

    async def call_on_provider_selected(self, provider: Any, request: Optional[ChatRequest] = None) -> None:
        for ext in self._active(ProviderSelectionHook, request):
            try:
                await ext.on_provider_selected(provider, request)
            except Exception as e:
                raise _hook_error(ext, STAGE_PROVIDER_SELECTED, e) from e

    async def call_on_provider_error(
        self, provider: Any, error: BaseException, request: Optional[ChatRequest] = None
    ) -> None:
        for ext in self._active(ProviderErrorHandler, request):
            try:
                await ext.on_provider_error(provider, error, request)
            except Exception as e:
                raise _hook_error(ext, STAGE_PROVIDER_ERROR, e) from e

    def register_routes(self, registrar: Any) -> None:
        """
        Let every route-providing extension register its routes, in
        registration order.

        Raises:
            HookError: Naming the first extension that failed.
        """
        for name in self.names():
            ext = self.get(name)
            if not isinstance(ext, RouteProvider):
                continue
            try:
                ext.register_routes(registrar)
            except Exception as e:
                raise HookError(name, "register_routes", e) from e


def _coerce_settings(value: Any) -> Optional[ExtensionSettings]:
    if value is None:
        return None
    if isinstance(value, ExtensionSettings):
        return value
    if isinstance(value, Mapping):
        return ExtensionSettings.model_validate(dict(value))
    return None


def _hook_error(ext: Any, stage: str, error: Exception) -> HookError:
    logger.debug(f"Extension '{ext.name}' failed in {stage}: {error}")
    return HookError(ext.name, stage, error)
