# tests/providers/test_loadbalance.py
"""Tests for the load-balancing virtual provider."""

from collections import Counter

import pytest

from llmgate.exceptions import ProviderError, ProviderIncompatibleError
from llmgate.models import ChatRequest, ProviderConfig
from llmgate.observability.events import MetricEventType
from llmgate.providers.streams import collect_stream
from llmgate.providers.virtual.loadbalance import (
    METADATA_KEY,
    LoadBalanceConfig,
    LoadBalanceProvider,
    LoadBalanceStrategy,
)


class Inert:
    """Child without chat support."""

    name = "inert"


def make_pool(children, collector=None, **settings):
    config = ProviderConfig(name="pool", type="loadbalance", provider_config=settings)
    return LoadBalanceProvider(config, children, metrics_collector=collector)


async def served_by(pool, request=None):
    stream = await pool.generate_chat_completion(request or ChatRequest(prompt="hi"))
    chunks = [c async for c in stream]
    [name] = {c.metadata[METADATA_KEY] for c in chunks}
    return name


class TestLoadBalanceConfig:
    """Tests for LoadBalanceConfig parsing."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("round_robin", LoadBalanceStrategy.ROUND_ROBIN),
            ("Round-Robin", LoadBalanceStrategy.ROUND_ROBIN),
            ("random", LoadBalanceStrategy.RANDOM),
            ("weighted", LoadBalanceStrategy.WEIGHTED),
            ("least_busy", LoadBalanceStrategy.ROUND_ROBIN),
            (42, LoadBalanceStrategy.ROUND_ROBIN),
        ],
    )
    def test_strategy_normalization(self, value, expected):
        """Test strategy names are normalized and unknown ones fall back."""
        assert LoadBalanceConfig(strategy=value).strategy == expected

    def test_defaults(self):
        """Test default settings."""
        config = LoadBalanceConfig()
        assert config.strategy == LoadBalanceStrategy.ROUND_ROBIN
        assert config.providers == []
        assert config.weights == {}


class TestSelection:
    """Tests for child selection."""

    @pytest.mark.asyncio
    async def test_round_robin_distributes_evenly(self, make_static):
        """Test nine requests over three children serve three each in turn."""
        children = [make_static(name, responses=["one two three"], chunk_size=4) for name in ("a", "b", "c")]
        pool = make_pool(children)

        served = [await served_by(pool) for _ in range(9)]

        assert served == ["a", "b", "c"] * 3
        assert Counter(served) == {"a": 3, "b": 3, "c": 3}
        assert [c.get_metrics().request_count for c in children] == [3, 3, 3]

    @pytest.mark.asyncio
    async def test_every_chunk_stamped(self, make_static):
        """Test each chunk of a multi-chunk response names the serving child."""
        pool = make_pool([make_static("a", responses=["one two three"], chunk_size=4)])

        stream = await pool.generate_chat_completion(ChatRequest(prompt="hi"))
        chunks = [c async for c in stream]

        assert len(chunks) == 4
        assert all(c.metadata[METADATA_KEY] == "a" for c in chunks)

    @pytest.mark.asyncio
    async def test_weighted(self, make_static):
        """Test smooth weighted round-robin."""
        pool = make_pool([make_static("a"), make_static("b")], strategy="weighted", weights={"a": 3, "b": 1})

        served = [await served_by(pool) for _ in range(8)]

        assert served[:4] == ["a", "a", "b", "a"]
        assert Counter(served) == {"a": 6, "b": 2}

    @pytest.mark.asyncio
    async def test_weighted_equal_weights_is_round_robin(self, make_static):
        """Test missing weights count as one."""
        pool = make_pool([make_static(n) for n in ("a", "b", "c")], strategy="weighted")
        assert [await served_by(pool) for _ in range(6)] == ["a", "b", "c"] * 2

    @pytest.mark.asyncio
    async def test_random_picks_a_child(self, make_static):
        """Test random selection stays within the children."""
        pool = make_pool([make_static("a"), make_static("b")], strategy="random")
        for _ in range(5):
            assert await served_by(pool) in {"a", "b"}

    def test_select_provider_is_pure(self, make_static):
        """Test selection performs no calls on the children."""
        children = [make_static("a"), make_static("b")]
        pool = make_pool(children)
        assert pool.select_provider(children) is children[0]
        assert pool.select_provider(children) is children[1]
        assert all(c.get_metrics().request_count == 0 for c in children)


class TestGeneration:
    """Tests for request handling."""

    @pytest.mark.asyncio
    async def test_response_content_and_events(self, make_static, collector, subscription, drain):
        """Test content passes through and success reports the selected child."""
        pool = make_pool([make_static("a", responses=["hello"])], collector)

        text, _ = await collect_stream(await pool.generate_chat_completion(ChatRequest(model="m", prompt="hi")))

        assert text == "hello"
        pool_events = [e for e in drain(subscription) if e.provider_name == "pool"]
        assert [e.type for e in pool_events] == [MetricEventType.REQUEST, MetricEventType.SUCCESS]
        assert pool_events[1].provider_type == "loadbalance"
        assert pool_events[1].metadata == {"selected_provider": "a", "strategy": "round_robin"}

    @pytest.mark.asyncio
    async def test_no_providers(self):
        """Test a pool without children fails."""
        with pytest.raises(ProviderError, match="no providers configured"):
            await make_pool([]).generate_chat_completion(ChatRequest())

    @pytest.mark.asyncio
    async def test_incompatible_child(self, collector, subscription, drain):
        """Test selecting a child without chat support fails."""
        pool = make_pool([Inert()], collector)

        with pytest.raises(ProviderIncompatibleError):
            await pool.generate_chat_completion(ChatRequest())

        events = drain(subscription)
        assert events[-1].type == MetricEventType.ERROR
        assert events[-1].error_type == "provider_incompatible"

    @pytest.mark.asyncio
    async def test_child_error_propagates(self, make_static, collector, subscription, drain):
        """Test a failing child error is reported and re-raised."""
        pool = make_pool([make_static("broken", error="down")], collector)

        with pytest.raises(ProviderError) as exc_info:
            await pool.generate_chat_completion(ChatRequest())

        assert exc_info.value.provider_name == "broken"
        pool_events = [e for e in drain(subscription) if e.provider_name == "pool"]
        assert [e.type for e in pool_events] == [MetricEventType.REQUEST, MetricEventType.ERROR]
        assert pool_events[1].error_type == "provider_error"

    @pytest.mark.asyncio
    async def test_reconfigure_strategy(self, make_static):
        """Test configure re-reads the strategy."""
        pool = make_pool([make_static("a")])
        pool.configure(ProviderConfig(name="pool", type="loadbalance", provider_config={"strategy": "random"}))
        assert pool.strategy == LoadBalanceStrategy.RANDOM
