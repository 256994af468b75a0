# src/llmgate/extensions/interceptor.py
"""
Interceptor chain around the provider call.

An interceptor is around-advice for a :data:`ProviderFunc`. Each one
receives the request and ``next`` and may mutate the request before
calling ``next``, mutate the response afterwards, or skip ``next``
entirely to answer from a cache or reject the call by raising.

Interceptors added first run outermost::

    chain.add(auth)       # auth -> cache -> provider
    chain.add(cache)
"""

import logging
import threading
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from ..exceptions import DuplicateRegistrationError, NotRegisteredError
from ..models import ChatRequest, ChatResponse

logger = logging.getLogger(__name__)

ProviderFunc = Callable[[ChatRequest], Awaitable[ChatResponse]]


@runtime_checkable
class Interceptor(Protocol):
    """Around-advice over a provider call."""

    async def intercept(self, request: ChatRequest, next: ProviderFunc) -> ChatResponse: ...


class FunctionInterceptor:
    """Adapts a coroutine function ``fn(request, next)`` to :class:`Interceptor`."""

    def __init__(self, fn: Callable[[ChatRequest, ProviderFunc], Awaitable[ChatResponse]], name: str = ""):
        self._fn = fn
        self.name = name or getattr(fn, "__name__", "interceptor")

    async def intercept(self, request: ChatRequest, next: ProviderFunc) -> ChatResponse:
        return await self._fn(request, next)

    def __repr__(self) -> str:
        return f"FunctionInterceptor(name={self.name!r})"


class InterceptorChain:
    """
    Ordered list of interceptors composed around a terminal provider call.

    ``add`` may run concurrently with ``execute``. An execution uses the
    list as it was when ``execute`` was called.
    """

    def __init__(self, interceptors: Optional[Iterable[Interceptor]] = None):
        self._lock = threading.Lock()
        self._interceptors: List[Interceptor] = list(interceptors or [])

    def add(self, interceptor: Interceptor) -> None:
        with self._lock:
            self._interceptors.append(interceptor)

    def __len__(self) -> int:
        with self._lock:
            return len(self._interceptors)

    async def execute(self, request: ChatRequest, provider_fn: ProviderFunc) -> ChatResponse:
        """
        Run ``request`` through every interceptor and finally ``provider_fn``.

        Errors raised by an interceptor or by ``provider_fn`` propagate to
        the caller unless an outer interceptor translates them.
        """
        with self._lock:
            interceptors = list(self._interceptors)

        if not interceptors:
            return await provider_fn(request)

        chain = provider_fn
        for interceptor in reversed(interceptors):
            chain = _bind(interceptor, chain)
        return await chain(request)


def _bind(interceptor: Interceptor, next_fn: ProviderFunc) -> ProviderFunc:
    async def call(request: ChatRequest) -> ChatResponse:
        return await interceptor.intercept(request, next_fn)

    return call


class InterceptorRegistry:
    """Named interceptors kept in registration order for later chain assembly."""

    def __init__(self):
        self._lock = threading.Lock()
        self._interceptors: Dict[str, Interceptor] = {}

    def register(self, name: str, interceptor: Interceptor) -> None:
        """
        Raises:
            DuplicateRegistrationError: If ``name`` is taken.
        """
        with self._lock:
            if name in self._interceptors:
                raise DuplicateRegistrationError("interceptor", name)
            self._interceptors[name] = interceptor
        logger.debug(f"Interceptor '{name}' registered.")

    def get(self, name: str) -> Optional[Interceptor]:
        with self._lock:
            return self._interceptors.get(name)

    def list(self) -> List[str]:
        """Registered names in registration order."""
        with self._lock:
            return list(self._interceptors)

    def unregister(self, name: str) -> None:
        """
        Raises:
            NotRegisteredError: If ``name`` is not registered.
        """
        with self._lock:
            if name not in self._interceptors:
                raise NotRegisteredError("interceptor", name)
            del self._interceptors[name]
        logger.debug(f"Interceptor '{name}' unregistered.")

    def build_chain(self, names: Optional[Iterable[str]] = None) -> InterceptorChain:
        """
        Assemble a chain from the named interceptors, or from all of them in
        registration order when ``names`` is None.

        Raises:
            NotRegisteredError: If a requested name is unknown.
        """
        with self._lock:
            selected = list(self._interceptors) if names is None else list(names)
            missing = [n for n in selected if n not in self._interceptors]
            if missing:
                raise NotRegisteredError("interceptor", missing[0])
            return InterceptorChain(self._interceptors[n] for n in selected)
