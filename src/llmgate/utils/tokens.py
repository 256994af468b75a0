# src/llmgate/utils/tokens.py
"""
Cheap token estimation from byte lengths.

These estimates avoid a tokenizer dependency. They use an average of
roughly 4.7 bytes per token, computed with integer arithmetic, and are
meant for sizing decisions (context thresholds, routing), not billing.
"""

from typing import Iterable

from ..models import ChatMessage

BYTES_PER_TOKEN = 4.7

TOKEN_THRESHOLD_4K = 4096
TOKEN_THRESHOLD_8K = 8192
TOKEN_THRESHOLD_16K = 16384
TOKEN_THRESHOLD_32K = 32768
TOKEN_THRESHOLD_128K = 131072


def estimate_tokens_from_bytes(byte_count: int) -> int:
    """Estimate the number of tokens in ``byte_count`` bytes of text."""
    if byte_count <= 0:
        return 0
    return (byte_count * 10) // 47


def estimate_tokens_from_string(text: str) -> int:
    """Estimate tokens of a string using its UTF-8 length."""
    return estimate_tokens_from_bytes(len(text.encode("utf-8")))


def estimate_tokens_from_messages(messages: Iterable[ChatMessage]) -> int:
    """Sum of the estimates of every message's content."""
    return sum(estimate_tokens_from_string(m.content) for m in messages)


def byte_threshold_for_tokens(tokens: int) -> int:
    """Inverse of :func:`estimate_tokens_from_bytes` for threshold checks."""
    return int(tokens * BYTES_PER_TOKEN)
