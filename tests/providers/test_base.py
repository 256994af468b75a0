# tests/providers/test_base.py
"""Tests for the provider contract and BaseProvider defaults."""

from datetime import datetime, timedelta, timezone

import pytest

from llmgate.models import AuthConfig, ProviderConfig, ProviderMetrics, ToolFormat
from llmgate.observability.events import MetricEventType
from llmgate.providers.base import (
    BaseProvider,
    ChatProvider,
    HealthCheckProvider,
    LifecycleProvider,
    ModelInventory,
    ProviderIdentity,
    describe_provider,
    merge_metrics,
    provider_capabilities,
)
from llmgate.providers.streams import ListChatStream


class EchoProvider(BaseProvider):
    default_description = "Echoes nothing"

    async def generate_chat_completion(self, request):
        return ListChatStream([])


class ChatOnly:
    async def generate_chat_completion(self, request):
        return ListChatStream([])


def make_provider(**overrides):
    settings = dict(name="echo", type="custom")
    settings.update(overrides)
    return EchoProvider(ProviderConfig(**settings))


class TestCapabilities:
    """Tests for capability detection."""

    def test_base_provider_satisfies_every_protocol(self):
        """Test BaseProvider subclasses implement the full contract."""
        provider = make_provider()
        for protocol in (ProviderIdentity, LifecycleProvider, ChatProvider, ModelInventory, HealthCheckProvider):
            assert isinstance(provider, protocol)
        assert provider_capabilities(provider) == ["identity", "lifecycle", "chat", "inventory", "health"]

    def test_partial_provider(self):
        """Test a chat-only object reports only chat."""
        assert provider_capabilities(ChatOnly()) == ["chat"]
        assert provider_capabilities(object()) == []

    def test_describe_provider(self):
        """Test diagnostics description."""
        description = describe_provider(make_provider(description="custom echo"))
        assert description["name"] == "echo"
        assert description["type"] == "custom"
        assert description["description"] == "custom echo"
        assert "chat" in description["capabilities"]

        assert describe_provider(ChatOnly())["name"] == ""


class TestBaseProvider:
    """Tests for BaseProvider defaults."""

    def test_identity_defaults(self):
        """Test identity falls back to the class defaults."""
        provider = make_provider(type="")
        assert provider.name == "echo"
        assert provider.provider_type == "custom"
        assert provider.description == "Echoes nothing"

    def test_inventory_defaults(self):
        """Test feature flags and default model."""
        provider = make_provider(default_model="m1")
        assert provider.get_default_model() == "m1"
        assert provider.supports_streaming()
        assert not provider.supports_tool_calling()
        assert not provider.supports_responses_api()
        assert provider.get_tool_format() == ToolFormat.NONE

    @pytest.mark.asyncio
    async def test_authenticate_with_api_key(self):
        """Test API key authentication and logout."""
        provider = make_provider()
        assert not provider.is_authenticated()

        await provider.authenticate(AuthConfig(api_key="sk-test"))
        assert provider.is_authenticated()
        assert provider.get_config().api_key == "sk-test"

        await provider.logout()
        assert not provider.is_authenticated()

    @pytest.mark.asyncio
    async def test_authenticate_unsupported_method(self):
        """Test methods without an API key are not supported by default."""
        with pytest.raises(NotImplementedError):
            await make_provider().authenticate(AuthConfig(method="oauth"))

    def test_configure_and_get_config(self):
        """Test reconfiguration and that get_config returns a copy."""
        provider = make_provider()
        provider.configure(ProviderConfig(name="echo", type="custom", default_model="m2", provider_config={"a": 1}))

        config = provider.get_config()
        config.provider_config["a"] = 2
        assert provider.get_config().provider_config == {"a": 1}
        assert provider.get_default_model() == "m2"

    @pytest.mark.asyncio
    async def test_health_check_and_list_models(self):
        """Test default health check passes and no models are listed."""
        provider = make_provider()
        await provider.health_check()
        assert await provider.list_models() == []
        await provider.close()

    def test_metrics_bookkeeping(self):
        """Test request, success and error counters."""
        provider = make_provider()
        provider._record_request()
        provider._record_success(100.0, tokens_used=5)
        provider._record_request()
        provider._record_success(300.0, tokens_used=7)
        provider._record_request()
        provider._record_error(RuntimeError("boom"))

        metrics = provider.get_metrics()
        assert metrics.request_count == 3
        assert metrics.success_count == 2
        assert metrics.error_count == 1
        assert metrics.average_latency_ms == 200.0
        assert metrics.tokens_used == 12
        assert metrics.last_error == "boom"
        assert metrics.last_error_time is not None

    @pytest.mark.asyncio
    async def test_emit_without_collector(self):
        """Test emitting without a collector is a no-op."""
        await make_provider()._emit(MetricEventType.REQUEST, "m")

    @pytest.mark.asyncio
    async def test_emit_tags_provider(self, collector, subscription, drain):
        """Test emitted events carry the provider identity."""
        provider = make_provider()
        provider.set_metrics_collector(collector)
        assert provider.metrics_collector is collector

        await provider._emit(MetricEventType.REQUEST, "m", metadata={"k": "v"})

        [event] = drain(subscription)
        assert event.type == MetricEventType.REQUEST
        assert event.provider_name == "echo"
        assert event.provider_type == "custom"
        assert event.model_id == "m"
        assert event.metadata == {"k": "v"}


class TestMergeMetrics:
    """Tests for merge_metrics."""

    def test_sums_and_latest_timestamps(self):
        """Test counters are summed and the latest error wins."""
        now = datetime.now(timezone.utc)
        a = ProviderMetrics(
            request_count=2,
            success_count=1,
            error_count=1,
            total_latency_ms=100.0,
            tokens_used=10,
            last_error="old",
            last_error_time=now - timedelta(minutes=1),
        )
        b = ProviderMetrics(
            request_count=3,
            success_count=3,
            total_latency_ms=500.0,
            tokens_used=5,
            last_error="new",
            last_error_time=now,
            last_success_time=now,
        )

        total = merge_metrics([a, b])
        assert total.request_count == 5
        assert total.success_count == 4
        assert total.error_count == 1
        assert total.tokens_used == 15
        assert total.average_latency_ms == 150.0
        assert total.last_error == "new"
        assert total.last_error_time == now
        assert total.last_success_time == now

    def test_empty(self):
        """Test merging nothing yields zero metrics."""
        assert merge_metrics([]) == ProviderMetrics()
