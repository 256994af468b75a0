# src/llmgate/providers/virtual/racing.py
"""
Racing virtual provider.

Sends the same request to every child concurrently and serves the stream
of the winner. The whole race is bounded by ``timeout_ms``.

Strategies:
    first_wins  the first child to return a stream wins; the remaining
                calls are cancelled at once (default)
    weighted    after the first success, further successes are accepted
                for ``grace_period_ms``; the winner is the candidate with
                the best ``win_rate * 1 / (1 + latency_seconds)`` score

Wins and losses feed a :class:`PerformanceTracker`, whose win rate is the
score used by the weighted strategy (0.5 for a child that never raced).
Streams of losing candidates are closed. Every chunk of the winning stream
carries ``racing_winner`` in its metadata, and a ``race_complete`` event
reports the participants, their latencies and the winner.
"""

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, Field, field_validator

from ...exceptions import AllProvidersFailedError, ProviderIncompatibleError
from ...models import ChatRequest, ProviderConfig, ProviderType
from ...observability.collector import MetricsCollector
from ...observability.events import MetricEventType
from ..streams import ChatStream, MetadataStampingStream
from .base import VirtualProvider

logger = logging.getLogger(__name__)

METADATA_KEY = "racing_winner"

DEFAULT_SCORE = 0.5


class RacingStrategy(str, Enum):
    FIRST_WINS = "first_wins"
    WEIGHTED = "weighted"


class RacingConfig(BaseModel):
    """Racing settings read from ``provider_config``."""

    timeout_ms: int = Field(default=5000, gt=0)
    grace_period_ms: int = Field(default=1000, ge=0)
    strategy: RacingStrategy = RacingStrategy.FIRST_WINS
    providers: List[str] = Field(default_factory=list)

    @field_validator("strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower().replace("-", "_")
            if normalized in RacingStrategy._value2member_map_:
                return normalized
            logger.warning(f"Unknown racing strategy '{value}', using first_wins")
            return RacingStrategy.FIRST_WINS
        return value


# =============================================================================
# PERFORMANCE TRACKING
# =============================================================================


class ProviderRaceStats(BaseModel):
    total_races: int = 0
    wins: int = 0
    losses: int = 0
    total_latency_ms: float = 0.0
    average_latency_ms: float = 0.0
    win_rate: float = 0.0
    last_updated: Optional[datetime] = None


class PerformanceTracker:
    """Thread-safe per-provider race statistics."""

    def __init__(self):
        self._lock = threading.Lock()
        self._stats: Dict[str, ProviderRaceStats] = {}

    def record_win(self, provider: str, latency_ms: float) -> None:
        self._record(provider, latency_ms, won=True)

    def record_loss(self, provider: str, latency_ms: float) -> None:
        self._record(provider, latency_ms, won=False)

    def _record(self, provider: str, latency_ms: float, won: bool) -> None:
        with self._lock:
            stats = self._stats.setdefault(provider, ProviderRaceStats())
            stats.total_races += 1
            if won:
                stats.wins += 1
            else:
                stats.losses += 1
            stats.total_latency_ms += latency_ms
            stats.average_latency_ms = stats.total_latency_ms / stats.total_races
            stats.win_rate = stats.wins / stats.total_races
            stats.last_updated = datetime.now(timezone.utc)

    def get_score(self, provider: str) -> float:
        with self._lock:
            stats = self._stats.get(provider)
            return stats.win_rate if stats is not None else DEFAULT_SCORE

    def get_all_stats(self) -> Dict[str, ProviderRaceStats]:
        with self._lock:
            return {name: stats.model_copy() for name, stats in self._stats.items()}

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()


# =============================================================================
# RACING PROVIDER
# =============================================================================


_Candidate = Tuple[str, ChatStream, float]


class RacingProvider(VirtualProvider):
    """Virtual provider racing its children against each other."""

    default_provider_type = ProviderType.RACING.value
    default_description = "Races multiple providers for fastest response"

    def __init__(
        self,
        config: ProviderConfig,
        providers: Optional[Sequence[Any]] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self.settings = RacingConfig()
        self.performance = PerformanceTracker()
        super().__init__(config, providers, metrics_collector)

    def _apply_settings(self, settings: Dict[str, Any]) -> None:
        self.settings = RacingConfig.model_validate(settings or {})

    async def _run_candidate(self, child: Any, request: ChatRequest) -> _Candidate:
        name = self._child_name(child)
        if not self._is_chat_capable(child):
            raise ProviderIncompatibleError(name)
        start = time.perf_counter()
        stream = await child.generate_chat_completion(request)
        return name, stream, self._elapsed_ms(start)

    async def generate_chat_completion(self, request: ChatRequest) -> ChatStream:
        providers = self._require_providers()
        model = request.model
        strategy = self.settings.strategy
        await self._emit(MetricEventType.REQUEST, model, metadata={"strategy": strategy.value})

        participants = [self._child_name(child) for child in providers]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.timeout_ms / 1000.0
        started: Dict[asyncio.Task, Tuple[str, float]] = {}
        for child, name in zip(providers, participants):
            task = asyncio.create_task(self._run_candidate(child, request), name=f"race-{self.name}-{name}")
            started[task] = (name, time.perf_counter())

        pending: Set[asyncio.Task] = set(started)
        candidates: List[_Candidate] = []
        errors: List[BaseException] = []
        latencies: Dict[str, float] = {}
        timed_out = False
        try:
            while pending:
                if candidates and strategy == RacingStrategy.FIRST_WINS:
                    break
                remaining = deadline - loop.time()
                if remaining <= 0:
                    timed_out = not candidates
                    break
                done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    name, task_start = started[task]
                    error = asyncio.CancelledError() if task.cancelled() else task.exception()
                    if error is not None:
                        latency_ms = (time.perf_counter() - task_start) * 1000.0
                        latencies[name] = latency_ms
                        errors.append(error)
                        self.performance.record_loss(name, latency_ms)
                        logger.debug(f"Race '{self.name}': '{name}' failed after {latency_ms:.1f}ms: {error}")
                        continue
                    candidate = task.result()
                    latencies[name] = candidate[2]
                    candidates.append(candidate)
                    if len(candidates) == 1 and strategy == RacingStrategy.WEIGHTED:
                        deadline = min(deadline, loop.time() + self.settings.grace_period_ms / 1000.0)
        finally:
            await self._discard(pending)

        if not candidates:
            error_type = "race_timeout" if timed_out else "race_all_failed"
            message = "race timed out" if timed_out else "all providers failed"
            await self._emit(
                MetricEventType.ERROR,
                model,
                error_type=error_type,
                error_message=message,
                race_participants=participants,
                race_latencies_ms=latencies,
            )
            raise AllProvidersFailedError(self.name, errors, message)

        winner = self._pick_winner(candidates, strategy)
        winner_name, stream, winner_latency = winner
        for candidate in candidates:
            if candidate is winner:
                continue
            self.performance.record_loss(candidate[0], candidate[2])
            await candidate[1].aclose()
        self.performance.record_win(winner_name, winner_latency)

        await self._emit(
            MetricEventType.RACE_COMPLETE,
            model,
            latency_ms=winner_latency,
            race_participants=participants,
            race_latencies_ms=latencies,
            race_winner=winner_name,
            metadata={"strategy": strategy.value},
        )
        await self._emit(
            MetricEventType.SUCCESS,
            model,
            latency_ms=winner_latency,
            metadata={METADATA_KEY: winner_name, "strategy": strategy.value},
        )
        logger.debug(f"Race '{self.name}' won by '{winner_name}' in {winner_latency:.1f}ms")
        return MetadataStampingStream(stream, {METADATA_KEY: winner_name})

    def _pick_winner(self, candidates: List[_Candidate], strategy: RacingStrategy) -> _Candidate:
        if strategy == RacingStrategy.FIRST_WINS or len(candidates) == 1:
            return candidates[0]
        best = candidates[0]
        best_score = -1.0
        for candidate in candidates:
            name, _, latency_ms = candidate
            score = self.performance.get_score(name) * (1.0 / (1.0 + latency_ms / 1000.0))
            if score > best_score:
                best, best_score = candidate, score
        return best

    @staticmethod
    async def _discard(tasks: Set[asyncio.Task]) -> None:
        """Cancel unfinished race calls and close any stream that still arrived."""
        if not tasks:
            return
        for task in tasks:
            task.cancel()
        await asyncio.wait(tasks)
        for task in tasks:
            if task.cancelled() or task.exception() is not None:
                continue
            _, stream, _ = task.result()
            await stream.aclose()
