# src/llmgate/extensions/routes.py
"""
Route registration for extensions.

The gateway does not own an HTTP server. Extensions that contribute HTTP
endpoints receive a :class:`RouteRegistrar` and register handlers on it;
:class:`FastAPIRouteRegistrar` collects them on a FastAPI ``APIRouter``
which the application includes in its own app.

Usage:
    >>> registrar = FastAPIRouteRegistrar(prefix="/ext")
    >>> registry.register_routes(registrar)
    >>> app.include_router(registrar.router)
"""

import logging
from typing import Any, Callable, List, Optional, Protocol, Sequence, runtime_checkable

from fastapi import APIRouter

logger = logging.getLogger(__name__)

DEFAULT_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


@runtime_checkable
class RouteRegistrar(Protocol):
    """Sink for extension routes."""

    def handle(self, pattern: str, handler: Callable[..., Any], methods: Optional[Sequence[str]] = None) -> None: ...

    def handle_func(self, pattern: str, func: Callable[..., Any], methods: Optional[Sequence[str]] = None) -> None: ...


class FastAPIRouteRegistrar:
    """
    Registers extension routes on a FastAPI ``APIRouter``.

    ``handle`` takes a raw Starlette endpoint receiving the ``Request`` and
    returning a ``Response``. ``handle_func`` takes a FastAPI endpoint
    function, so parameters, bodies and return values go through FastAPI's
    usual validation and serialization.

    Args:
        router: Router to register on. A new one is created when omitted.
        prefix: Path prefix for a newly created router.
        tags: OpenAPI tags for a newly created router.
    """

    def __init__(self, router: Optional[APIRouter] = None, prefix: str = "", tags: Optional[List[str]] = None):
        self._router = router if router is not None else APIRouter(prefix=prefix, tags=list(tags or ["extensions"]))
        self._patterns: List[str] = []

    @property
    def router(self) -> APIRouter:
        return self._router

    @property
    def patterns(self) -> List[str]:
        """Registered path patterns, in registration order."""
        return list(self._patterns)

    def handle(self, pattern: str, handler: Callable[..., Any], methods: Optional[Sequence[str]] = None) -> None:
        # raw Starlette routes do not inherit the router prefix
        self._router.add_route(self._router.prefix + pattern, handler, methods=list(methods or DEFAULT_METHODS))
        self._patterns.append(pattern)
        logger.debug(f"Extension route registered: {pattern}")

    def handle_func(self, pattern: str, func: Callable[..., Any], methods: Optional[Sequence[str]] = None) -> None:
        self._router.add_api_route(pattern, func, methods=list(methods or DEFAULT_METHODS))
        self._patterns.append(pattern)
        logger.debug(f"Extension API route registered: {pattern}")
