# src/llmgate/providers/static_provider.py
"""
Static (canned-response) provider.

Serves configured responses without any network access. It is used for
local development, demos and as a deterministic child when exercising
virtual providers. ``provider_config`` keys:

    responses   list of response strings, served in rotation
                (default: echo the request text)
    chunk_size  characters per streamed chunk, 0 for a single chunk
    delay_ms    pause before each chunk
    error       if set, every call fails with this message
"""

import itertools
import logging
import threading
import time
from typing import List, Optional

from ..exceptions import ProviderError
from ..models import ChatRequest, Chunk, ChunkChoice, ChunkDelta, ModelInfo, ProviderConfig, ProviderType, Usage
from ..observability.collector import MetricsCollector
from ..observability.events import MetricEventType
from ..utils import metadata as md
from ..utils.tokens import estimate_tokens_from_string
from .base import BaseProvider
from .streams import ChatStream, ListChatStream

logger = logging.getLogger(__name__)

DEFAULT_STATIC_MODEL = "static-model"


class StaticProvider(BaseProvider):
    """Provider answering from a fixed list of responses."""

    default_provider_type = ProviderType.STATIC.value
    default_description = "Serves canned responses"

    def __init__(self, config: ProviderConfig, metrics_collector: Optional[MetricsCollector] = None):
        super().__init__(config, metrics_collector)
        settings = config.provider_config
        self._responses: List[str] = [str(r) for r in md.get_list(settings, "responses", [])]
        self._chunk_size = max(0, md.get_int(settings, "chunk_size", 0))
        self._delay_s = max(0.0, md.get_float(settings, "delay_ms", 0.0)) / 1000.0
        self._error = md.get_str(settings, "error", "")
        self._rotation = itertools.count()
        self._rotation_lock = threading.Lock()

    def get_default_model(self) -> str:
        return self._config.default_model or DEFAULT_STATIC_MODEL

    async def list_models(self) -> List[ModelInfo]:
        return [ModelInfo(id=self.get_default_model(), provider=self.name, supports_streaming=True)]

    def _next_response(self, request: ChatRequest) -> str:
        if not self._responses:
            return request.text_content()
        with self._rotation_lock:
            index = next(self._rotation)
        return self._responses[index % len(self._responses)]

    def _split(self, text: str) -> List[str]:
        if self._chunk_size <= 0 or len(text) <= self._chunk_size:
            return [text]
        return [text[i:i + self._chunk_size] for i in range(0, len(text), self._chunk_size)]

    async def generate_chat_completion(self, request: ChatRequest) -> ChatStream:
        model = self._resolve_model(request)
        start = time.perf_counter()
        self._record_request()
        await self._emit(MetricEventType.REQUEST, model)

        if self._error:
            error = ProviderError(self.name, self._error)
            self._record_error(error)
            await self._emit(
                MetricEventType.ERROR,
                model,
                error_type="provider_error",
                error_message=self._error,
                latency_ms=self._elapsed_ms(start),
            )
            raise error

        text = self._next_response(request)
        parts = self._split(text)
        prompt_tokens = estimate_tokens_from_string(request.text_content())
        completion_tokens = estimate_tokens_from_string(text)
        usage = Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
        chunks = [
            Chunk(
                id=f"{self.name}-{i}",
                choices=[ChunkChoice(index=0, delta=ChunkDelta(role="assistant", content=part))],
                done=i == len(parts) - 1,
                usage=usage if i == len(parts) - 1 else None,
            )
            for i, part in enumerate(parts)
        ]

        latency_ms = self._elapsed_ms(start)
        self._record_success(latency_ms, usage.total_tokens)
        await self._emit(
            MetricEventType.SUCCESS,
            model,
            latency_ms=latency_ms,
            tokens_used=usage.total_tokens,
            input_tokens=prompt_tokens,
            output_tokens=completion_tokens,
        )
        logger.debug(f"Static provider '{self.name}' serving {len(chunks)} chunk(s) for model '{model}'")
        return ListChatStream(chunks, delay=self._delay_s)
