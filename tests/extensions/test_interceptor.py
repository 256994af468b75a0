# tests/extensions/test_interceptor.py
"""Tests for the interceptor chain and registry."""

import asyncio

import pytest

from llmgate.exceptions import DuplicateRegistrationError, NotRegisteredError
from llmgate.extensions.interceptor import (
    FunctionInterceptor,
    Interceptor,
    InterceptorChain,
    InterceptorRegistry,
)
from llmgate.models import ChatRequest, ChatResponse


class CacheInterceptor:
    """Answers repeated prompts from memory."""

    def __init__(self):
        self.cache = {}

    async def intercept(self, request, next):
        key = (request.model, request.prompt)
        if key in self.cache:
            return self.cache[key]
        response = await next(request)
        self.cache[key] = response
        return response


def tracing(name, trace):
    async def intercept(request, next):
        trace.append(f"{name}:before")
        response = await next(request)
        trace.append(f"{name}:after")
        return response

    return FunctionInterceptor(intercept, name=name)


class TestInterceptorChain:
    """Tests for InterceptorChain."""

    @pytest.mark.asyncio
    async def test_empty_chain_calls_provider(self):
        """Test an empty chain is the provider call."""

        async def provider(request):
            return ChatResponse(content=request.prompt.upper())

        response = await InterceptorChain().execute(ChatRequest(prompt="hi"), provider)
        assert response.content == "HI"

    @pytest.mark.asyncio
    async def test_first_added_runs_outermost(self):
        """Test interceptor nesting order."""
        trace = []

        async def provider(request):
            trace.append("provider")
            return ChatResponse()

        chain = InterceptorChain()
        chain.add(tracing("auth", trace))
        chain.add(tracing("cache", trace))
        await chain.execute(ChatRequest(), provider)

        assert trace == ["auth:before", "cache:before", "provider", "cache:after", "auth:after"]
        assert len(chain) == 2

    @pytest.mark.asyncio
    async def test_cache_short_circuit(self):
        """Test a cache interceptor skips the provider on a repeated request."""
        calls = 0

        async def provider(request):
            nonlocal calls
            calls += 1
            return ChatResponse(content=f"answer {calls}", model=request.model)

        chain = InterceptorChain([CacheInterceptor()])
        first = await chain.execute(ChatRequest(model="m", prompt="q"), provider)
        second = await chain.execute(ChatRequest(model="m", prompt="q"), provider)

        assert calls == 1
        assert first == second
        assert second.content == "answer 1"

    @pytest.mark.asyncio
    async def test_mutation_before_and_after(self):
        """Test interceptors may rewrite the request and the response."""

        async def rewrite(request, next):
            request.model = "rewritten"
            response = await next(request)
            response.metadata["intercepted"] = True
            return response

        async def provider(request):
            return ChatResponse(model=request.model)

        response = await InterceptorChain([FunctionInterceptor(rewrite)]).execute(ChatRequest(model="orig"), provider)
        assert response.model == "rewritten"
        assert response.metadata == {"intercepted": True}

    @pytest.mark.asyncio
    async def test_rejection_propagates(self):
        """Test an interceptor may reject the call."""
        called = False

        async def reject(request, next):
            raise PermissionError("denied")

        async def provider(request):
            nonlocal called
            called = True
            return ChatResponse()

        with pytest.raises(PermissionError):
            await InterceptorChain([FunctionInterceptor(reject)]).execute(ChatRequest(), provider)
        assert not called

    @pytest.mark.asyncio
    async def test_error_translation(self):
        """Test an outer interceptor may translate a provider error."""

        async def fallback(request, next):
            try:
                return await next(request)
            except RuntimeError:
                return ChatResponse(content="fallback")

        async def provider(request):
            raise RuntimeError("upstream down")

        response = await InterceptorChain([FunctionInterceptor(fallback)]).execute(ChatRequest(), provider)
        assert response.content == "fallback"

    @pytest.mark.asyncio
    async def test_add_during_execute_uses_snapshot(self):
        """Test an in-flight execution ignores interceptors added meanwhile."""
        trace = []
        release = asyncio.Event()
        chain = InterceptorChain([tracing("first", trace)])

        async def provider(request):
            await release.wait()
            return ChatResponse()

        task = asyncio.create_task(chain.execute(ChatRequest(), provider))
        await asyncio.sleep(0)
        chain.add(tracing("late", trace))
        release.set()
        await task

        assert trace == ["first:before", "first:after"]
        assert len(chain) == 2

    def test_function_interceptor(self):
        """Test FunctionInterceptor naming and protocol conformance."""

        async def audit(request, next):
            return await next(request)

        interceptor = FunctionInterceptor(audit)
        assert interceptor.name == "audit"
        assert isinstance(interceptor, Interceptor)
        assert isinstance(CacheInterceptor(), Interceptor)


class TestInterceptorRegistry:
    """Tests for InterceptorRegistry."""

    def test_register_and_list(self):
        """Test registration keeps order."""
        registry = InterceptorRegistry()
        registry.register("auth", CacheInterceptor())
        registry.register("cache", CacheInterceptor())

        assert registry.list() == ["auth", "cache"]
        assert registry.get("auth") is not None
        assert registry.get("missing") is None

    def test_duplicate(self):
        """Test duplicate names are rejected."""
        registry = InterceptorRegistry()
        registry.register("auth", CacheInterceptor())
        with pytest.raises(DuplicateRegistrationError):
            registry.register("auth", CacheInterceptor())

    def test_unregister(self):
        """Test removal, and removal of unknown names."""
        registry = InterceptorRegistry()
        registry.register("auth", CacheInterceptor())
        registry.unregister("auth")

        assert registry.list() == []
        with pytest.raises(NotRegisteredError):
            registry.unregister("auth")

    @pytest.mark.asyncio
    async def test_build_chain(self):
        """Test chains built from all or selected names."""
        trace = []
        registry = InterceptorRegistry()
        registry.register("a", tracing("a", trace))
        registry.register("b", tracing("b", trace))

        async def provider(request):
            return ChatResponse()

        assert len(registry.build_chain()) == 2
        await registry.build_chain(["b", "a"]).execute(ChatRequest(), provider)
        assert trace == ["b:before", "a:before", "a:after", "b:after"]

        with pytest.raises(NotRegisteredError):
            registry.build_chain(["a", "zzz"])
