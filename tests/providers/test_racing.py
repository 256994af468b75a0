# tests/providers/test_racing.py
"""Tests for the racing virtual provider."""

import asyncio
import time

import pytest

from llmgate.exceptions import AllProvidersFailedError
from llmgate.models import ChatRequest, Chunk, ProviderConfig
from llmgate.observability.events import MetricEventType
from llmgate.providers.base import BaseProvider
from llmgate.providers.streams import ListChatStream
from llmgate.providers.virtual.racing import (
    METADATA_KEY,
    PerformanceTracker,
    RacingConfig,
    RacingProvider,
    RacingStrategy,
)


class DelayedProvider(BaseProvider):
    """Returns a one-chunk stream after ``delay`` seconds, or fails."""

    def __init__(self, name, delay=0.0, fail=False):
        super().__init__(ProviderConfig(name=name))
        self.delay = delay
        self.fail = fail
        self.streams = []
        self.cancelled = False

    async def generate_chat_completion(self, request):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.fail:
            raise RuntimeError(f"{self.name} failed")
        stream = ListChatStream([Chunk(content=f"from {self.name}", done=True)])
        self.streams.append(stream)
        return stream


class Inert:
    name = "inert"


def make_race(children, collector=None, **settings):
    config = ProviderConfig(name="race", type="racing", provider_config=settings)
    return RacingProvider(config, children, metrics_collector=collector)


async def first_chunk(stream):
    async for chunk in stream:
        return chunk


# =============================================================================
# CONFIGURATION AND TRACKING
# =============================================================================


class TestRacingConfig:
    """Tests for RacingConfig."""

    def test_defaults(self):
        """Test default timeouts and strategy."""
        config = RacingConfig()
        assert config.timeout_ms == 5000
        assert config.grace_period_ms == 1000
        assert config.strategy == RacingStrategy.FIRST_WINS

    def test_strategy_normalization(self):
        """Test strategy names are normalized and unknown ones fall back."""
        assert RacingConfig(strategy="Weighted").strategy == RacingStrategy.WEIGHTED
        assert RacingConfig(strategy="first-wins").strategy == RacingStrategy.FIRST_WINS
        assert RacingConfig(strategy="fastest").strategy == RacingStrategy.FIRST_WINS


class TestPerformanceTracker:
    """Tests for PerformanceTracker."""

    def test_default_score(self):
        """Test a provider that never raced scores 0.5."""
        assert PerformanceTracker().get_score("unknown") == 0.5

    def test_win_rate(self):
        """Test win rate and latency averages."""
        tracker = PerformanceTracker()
        tracker.record_win("a", 100.0)
        tracker.record_win("a", 300.0)
        tracker.record_loss("a", 200.0)
        tracker.record_loss("a", 400.0)

        stats = tracker.get_all_stats()["a"]
        assert stats.total_races == 4
        assert stats.wins == 2
        assert stats.losses == 2
        assert stats.average_latency_ms == 250.0
        assert stats.last_updated is not None
        assert tracker.get_score("a") == 0.5

    def test_stats_are_copies_and_reset(self):
        """Test returned stats are detached and reset clears them."""
        tracker = PerformanceTracker()
        tracker.record_win("a", 10.0)
        tracker.get_all_stats()["a"].wins = 99
        assert tracker.get_all_stats()["a"].wins == 1

        tracker.reset()
        assert tracker.get_all_stats() == {}


# =============================================================================
# RACES
# =============================================================================


class TestFirstWins:
    """Tests for the first_wins strategy."""

    @pytest.mark.asyncio
    async def test_fastest_wins_and_losers_cancelled(self, collector, subscription, drain):
        """Test the fastest child wins and slower calls are cancelled."""
        fast = DelayedProvider("fast", delay=0.01)
        slow = DelayedProvider("slow", delay=0.5)
        race = make_race([slow, fast], collector)

        started = time.perf_counter()
        stream = await race.generate_chat_completion(ChatRequest(model="m"))
        elapsed = time.perf_counter() - started

        chunk = await first_chunk(stream)
        assert chunk.content == "from fast"
        assert chunk.metadata[METADATA_KEY] == "fast"
        assert elapsed < 0.4
        assert slow.cancelled

        events = drain(subscription)
        assert [e.type for e in events] == [
            MetricEventType.REQUEST,
            MetricEventType.RACE_COMPLETE,
            MetricEventType.SUCCESS,
        ]
        complete = events[1]
        assert complete.race_winner == "fast"
        assert complete.race_participants == ["slow", "fast"]
        assert "fast" in complete.race_latencies_ms
        assert events[2].metadata[METADATA_KEY] == "fast"
        assert race.performance.get_all_stats()["fast"].wins == 1

    @pytest.mark.asyncio
    async def test_failures_do_not_win(self):
        """Test a fast failure loses to a slower success."""
        broken = DelayedProvider("broken", delay=0.0, fail=True)
        steady = DelayedProvider("steady", delay=0.02)
        race = make_race([broken, steady])

        chunk = await first_chunk(await race.generate_chat_completion(ChatRequest()))

        assert chunk.metadata[METADATA_KEY] == "steady"
        assert race.performance.get_all_stats()["broken"].losses == 1

    @pytest.mark.asyncio
    async def test_incompatible_child_is_a_failure(self):
        """Test a child without chat support counts as a failed participant."""
        race = make_race([Inert(), DelayedProvider("ok")])
        chunk = await first_chunk(await race.generate_chat_completion(ChatRequest()))
        assert chunk.metadata[METADATA_KEY] == "ok"

    @pytest.mark.asyncio
    async def test_all_failed(self, collector, subscription, drain):
        """Test the race fails when every child fails."""
        race = make_race([DelayedProvider("a", fail=True), DelayedProvider("b", fail=True)], collector)

        with pytest.raises(AllProvidersFailedError, match="all providers failed") as exc_info:
            await race.generate_chat_completion(ChatRequest())

        assert len(exc_info.value.errors) == 2
        error_event = drain(subscription)[-1]
        assert error_event.type == MetricEventType.ERROR
        assert error_event.error_type == "race_all_failed"
        assert sorted(error_event.race_latencies_ms) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_timeout(self, collector, subscription, drain):
        """Test the race is bounded by timeout_ms."""
        slow = DelayedProvider("slow", delay=2.0)
        race = make_race([slow], collector, timeout_ms=50)

        started = time.perf_counter()
        with pytest.raises(AllProvidersFailedError, match="race timed out"):
            await race.generate_chat_completion(ChatRequest())

        assert time.perf_counter() - started < 1.0
        assert slow.cancelled
        assert drain(subscription)[-1].error_type == "race_timeout"


class TestWeighted:
    """Tests for the weighted strategy."""

    @pytest.mark.asyncio
    async def test_latency_decides_between_unknown_providers(self):
        """Test equal scores pick the lower latency and close the loser."""
        a = DelayedProvider("a", delay=0.01)
        b = DelayedProvider("b", delay=0.05)
        race = make_race([a, b], strategy="weighted", grace_period_ms=500)

        chunk = await first_chunk(await race.generate_chat_completion(ChatRequest()))

        assert chunk.metadata[METADATA_KEY] == "a"
        assert b.streams[0].closed
        stats = race.performance.get_all_stats()
        assert stats["a"].wins == 1
        assert stats["b"].losses == 1

    @pytest.mark.asyncio
    async def test_history_beats_latency(self):
        """Test a provider with a better win rate wins despite being slower."""
        a = DelayedProvider("a", delay=0.01)
        b = DelayedProvider("b", delay=0.05)
        race = make_race([a, b], strategy="weighted", grace_period_ms=500)
        race.performance.record_loss("a", 10.0)
        race.performance.record_win("b", 50.0)

        chunk = await first_chunk(await race.generate_chat_completion(ChatRequest()))

        assert chunk.metadata[METADATA_KEY] == "b"
        assert a.streams[0].closed

    @pytest.mark.asyncio
    async def test_grace_period_bounds_wait(self):
        """Test slower candidates are not awaited past the grace period."""
        fast = DelayedProvider("fast", delay=0.01)
        slow = DelayedProvider("slow", delay=2.0)
        race = make_race([fast, slow], strategy="weighted", grace_period_ms=50)

        started = time.perf_counter()
        chunk = await first_chunk(await race.generate_chat_completion(ChatRequest()))

        assert chunk.metadata[METADATA_KEY] == "fast"
        assert time.perf_counter() - started < 1.0
        assert slow.cancelled
