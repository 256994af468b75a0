# src/llmgate/gateway.py
"""
Gateway facade for LLMGate.

Ties the provider manager, extension registry, interceptor chain and
metrics hub into one request pipeline::

    provider lookup -> before_generate hooks -> on_provider_selected hooks
        -> interceptor chain -> provider -> metrics stream wrapper
        -> (collect) -> after_generate hooks

Provider failures are reported to ``on_provider_error`` hooks before they
propagate. Failures inside those hooks are logged and do not mask the
provider error.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from .config import GatewayConfig
from .exceptions import HookError
from .extensions.interceptor import InterceptorChain
from .extensions.registry import ExtensionRegistry
from .models import ChatRequest, ChatResponse, Chunk, Usage
from .observability.collector import MetricsCollector
from .observability.cost import CostCalculator
from .observability.snapshots import MetricsSnapshot
from .observability.stream_wrapper import MetricsStreamWrapper, StreamWrapperConfig
from .providers.manager import ProviderManager
from .providers.streams import ChatStream

logger = logging.getLogger(__name__)

UNKNOWN_MODEL = "unknown"


class Gateway:
    """
    Main entry point for serving chat completions.

    Args:
        manager: Provider instances, looked up by ``ChatRequest.provider``.
        registry: Extension registry. An empty one is created when omitted.
        interceptors: Interceptor chain around the provider call.
        collector: Metrics hub. Without one, streams are not instrumented.
        config: Gateway configuration, used for extension startup settings
            and metrics options.
    """

    def __init__(
        self,
        manager: ProviderManager,
        registry: Optional[ExtensionRegistry] = None,
        interceptors: Optional[InterceptorChain] = None,
        collector: Optional[MetricsCollector] = None,
        config: Optional[GatewayConfig] = None,
    ):
        self._manager = manager
        self._registry = registry or ExtensionRegistry()
        self._interceptors = interceptors or InterceptorChain()
        self._collector = collector
        self._config = config or GatewayConfig()
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: GatewayConfig,
        extensions: Iterable[Any] = (),
        cost_calculator: Optional[CostCalculator] = None,
        interceptors: Optional[InterceptorChain] = None,
    ) -> "Gateway":
        """Build the collector, providers and registry described by ``config``."""
        collector = MetricsCollector(
            cost_calculator=cost_calculator,
            histogram_capacity=config.metrics.histogram_capacity,
            currency=config.metrics.currency,
            subscription_buffer=config.metrics.default_subscription_buffer,
        )
        manager = ProviderManager(config.providers, config.default_provider, metrics_collector=collector)
        registry = ExtensionRegistry()
        for extension in extensions:
            registry.register(extension)
        return cls(manager, registry=registry, interceptors=interceptors, collector=collector, config=config)

    # --- Accessors ---

    @property
    def manager(self) -> ProviderManager:
        return self._manager

    @property
    def registry(self) -> ExtensionRegistry:
        return self._registry

    @property
    def interceptors(self) -> InterceptorChain:
        return self._interceptors

    @property
    def collector(self) -> Optional[MetricsCollector]:
        return self._collector

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def get_available_providers(self) -> List[str]:
        """Lists the names of all successfully loaded provider instances."""
        return self._manager.get_available_providers()

    def snapshot(self) -> Optional[MetricsSnapshot]:
        return self._collector.snapshot() if self._collector is not None else None

    # --- Lifecycle ---

    async def startup(self) -> None:
        """Initialize the extensions enabled in the configuration."""
        if self._started:
            return
        await self._registry.initialize(self._config.extensions)
        self._started = True
        logger.info(f"Gateway started with providers {self.get_available_providers()} and {len(self._registry)} extension(s).")

    async def shutdown(self) -> None:
        """Shut extensions down, close providers and close the metrics hub."""
        logger.info("Shutting down gateway...")
        try:
            await self._registry.shutdown()
        finally:
            await self._manager.close_providers()
            if self._collector is not None:
                self._collector.close()
            self._started = False
        logger.info("Gateway shutdown complete.")

    async def __aenter__(self) -> "Gateway":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    def register_routes(self, registrar: Any) -> None:
        """Let route-providing extensions register on ``registrar``."""
        self._registry.register_routes(registrar)

    # --- Request pipeline ---

    async def _select_provider(self, request: ChatRequest) -> Any:
        provider = self._manager.get_provider(request.provider or None)
        await self._registry.call_before_generate(request)
        await self._registry.call_on_provider_selected(provider, request)
        return provider

    async def generate(self, request: ChatRequest) -> ChatResponse:
        """
        Serve a request and return the collected response.

        Raises:
            ProviderNotFoundError: If the requested provider is not loaded.
            HookError: If an extension hook rejects the request.
            ProviderError: For provider failures not handled by an interceptor.
        """
        provider = await self._select_provider(request)

        async def call_provider(req: ChatRequest) -> ChatResponse:
            try:
                stream = await self._open_stream(provider, req)
                return await _collect_response(stream, provider.name, req.model or _default_model(provider))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await self._notify_provider_error(provider, e, req)
                raise

        response = await self._interceptors.execute(request, call_provider)
        await self._registry.call_after_generate(request, response)
        return response

    async def stream(self, request: ChatRequest) -> ChatStream:
        """
        Serve a request as a stream.

        The interceptor chain is not applied to streams. ``after_generate``
        hooks run once the stream ends cleanly, with the accumulated response.
        """
        provider = await self._select_provider(request)
        try:
            stream = await self._open_stream(provider, request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._notify_provider_error(provider, e, request)
            raise
        return _GatewayStream(self, stream, provider, request)

    async def _open_stream(self, provider: Any, request: ChatRequest) -> ChatStream:
        stream = await provider.generate_chat_completion(request)
        if self._collector is None:
            return stream
        return MetricsStreamWrapper(
            StreamWrapperConfig(
                stream=stream,
                collector=self._collector,
                provider_name=provider.name,
                provider_type=str(getattr(provider, "provider_type", "")),
                model_id=request.model or _default_model(provider) or UNKNOWN_MODEL,
                emit_chunk_events=self._config.metrics.emit_chunk_events,
            )
        )

    async def _notify_provider_error(self, provider: Any, error: BaseException, request: ChatRequest) -> None:
        try:
            await self._registry.call_on_provider_error(provider, error, request)
        except HookError as hook_error:
            logger.warning(f"Provider error hook failed while handling '{error}': {hook_error}")


def _default_model(provider: Any) -> str:
    getter = getattr(provider, "get_default_model", None)
    return getter() if callable(getter) else ""


class _ResponseAccumulator:
    def __init__(self, provider_name: str, model: str):
        self.parts: List[str] = []
        self.usage: Optional[Usage] = None
        self.metadata: Dict[str, Any] = {}
        self.provider_name = provider_name
        self.model = model

    def add(self, chunk: Chunk) -> None:
        text = chunk.text()
        if text:
            self.parts.append(text)
        if chunk.usage is not None and chunk.usage.total_tokens > 0:
            self.usage = chunk.usage
        for key, value in chunk.metadata.items():
            self.metadata.setdefault(key, value)

    def response(self) -> ChatResponse:
        return ChatResponse(
            content="".join(self.parts),
            model=self.model,
            provider=self.provider_name,
            usage=self.usage,
            metadata=dict(self.metadata),
        )


async def _collect_response(stream: ChatStream, provider_name: str, model: str) -> ChatResponse:
    acc = _ResponseAccumulator(provider_name, model)
    try:
        async for chunk in stream:
            acc.add(chunk)
            if chunk.done:
                break
    finally:
        await stream.aclose()
    return acc.response()


class _GatewayStream(ChatStream):
    """Passes chunks through and runs after_generate hooks on a clean end."""

    def __init__(self, gateway: Gateway, inner: ChatStream, provider: Any, request: ChatRequest):
        self.inner = inner
        self._gateway = gateway
        self._provider = provider
        self._request = request
        self._acc = _ResponseAccumulator(provider.name, request.model or _default_model(provider))
        self._finished = False

    async def __anext__(self) -> Chunk:
        if self._finished:
            raise StopAsyncIteration
        try:
            chunk = await self.inner.__anext__()
        except StopAsyncIteration:
            await self._finish()
            raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._finished = True
            await self._gateway._notify_provider_error(self._provider, e, self._request)
            raise

        self._acc.add(chunk)
        if chunk.done:
            await self._finish()
        return chunk

    async def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        await self.inner.aclose()
        await self._gateway.registry.call_after_generate(self._request, self._acc.response())

    async def aclose(self) -> None:
        self._finished = True
        await self.inner.aclose()
