# src/llmgate/providers/virtual/fallback.py
"""
Fallback virtual provider.

Tries its children in configured order and serves the first stream that
starts successfully. Each move to the next child is reported as a
``provider_switch`` event; children that cannot serve chat completions
are skipped. Chunks of the served stream carry ``fallback_provider`` and
``fallback_index`` in their metadata.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ...exceptions import AllProvidersFailedError
from ...models import ChatRequest, ProviderType
from ...observability.events import MetricEventType
from ..streams import ChatStream, MetadataStampingStream
from .base import VirtualProvider

logger = logging.getLogger(__name__)


class FallbackConfig(BaseModel):
    providers: List[str] = Field(default_factory=list)


class FallbackProvider(VirtualProvider):
    """Virtual provider falling back through its children in order."""

    default_provider_type = ProviderType.FALLBACK.value
    default_description = "Tries providers in order until one succeeds"

    settings: FallbackConfig

    def _apply_settings(self, settings: Dict[str, Any]) -> None:
        self.settings = FallbackConfig.model_validate(settings or {})

    async def generate_chat_completion(self, request: ChatRequest) -> ChatStream:
        providers = self.providers
        model = request.model
        await self._emit(MetricEventType.REQUEST, model)

        errors: List[BaseException] = []
        previous: Optional[str] = None
        for index, child in enumerate(providers):
            if not self._is_chat_capable(child):
                continue
            name = self._child_name(child)
            start = time.perf_counter()
            try:
                stream = await child.generate_chat_completion(request)
            except Exception as e:
                latency_ms = self._elapsed_ms(start)
                if previous is not None:
                    await self._emit_switch(model, previous, name, "fallback_attempt", index, latency_ms, str(e))
                logger.debug(f"Fallback '{self.name}': '{name}' failed: {e}")
                errors.append(e)
                previous = name
                continue

            latency_ms = self._elapsed_ms(start)
            if previous is not None:
                await self._emit_switch(model, previous, name, "fallback_success", index, latency_ms)
            await self._emit(
                MetricEventType.SUCCESS,
                model,
                latency_ms=latency_ms,
                metadata={"fallback_provider": name, "fallback_index": index},
            )
            return MetadataStampingStream(stream, {"fallback_provider": name, "fallback_index": index})

        message = "all providers failed" if errors else "no providers available"
        await self._emit(
            MetricEventType.ERROR,
            model,
            error_type="fallback_all_failed",
            error_message=f"{message}, last error: {errors[-1]}" if errors else message,
            attempt_number=len(errors),
        )
        raise AllProvidersFailedError(self.name, errors, message)

    async def _emit_switch(
        self,
        model: str,
        from_provider: str,
        to_provider: str,
        reason: str,
        index: int,
        latency_ms: float,
        error_message: str = "",
    ) -> None:
        await self._emit(
            MetricEventType.PROVIDER_SWITCH,
            model,
            from_provider=from_provider,
            to_provider=to_provider,
            switch_reason=reason,
            attempt_number=index + 1,
            latency_ms=latency_ms,
            error_message=error_message,
        )
