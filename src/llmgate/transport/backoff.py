# src/llmgate/transport/backoff.py
"""
Exponential backoff used by the retrying HTTP client.
"""

from pydantic import BaseModel, Field

MAX_BACKOFF_EXPONENT_ATTEMPT = 30


class BackoffConfig(BaseModel):
    """Exponential backoff settings. Delays are in seconds."""

    base_delay: float = Field(default=1.0, ge=0, description="Delay before the first retry.")
    max_delay: float = Field(default=60.0, ge=0, description="Upper bound for any single delay.")
    multiplier: float = Field(default=2.0, description="Multiplier applied on top of the doubling.")
    max_attempts: int = Field(default=3, ge=0, description="Maximum number of retry attempts.")


def calculate_backoff(config: BackoffConfig, attempt: int) -> float:
    """
    Delay in seconds before retry number ``attempt`` (1-indexed).

    ``base_delay * multiplier * 2 ** (attempt - 1)``, capped at
    ``max_delay``. Attempts <= 0 return ``base_delay`` and attempts above 30
    are treated as 30.
    """
    if attempt <= 0:
        return config.base_delay

    attempt = min(attempt, MAX_BACKOFF_EXPONENT_ATTEMPT)
    delay = config.base_delay * float(1 << (attempt - 1)) * config.multiplier
    return min(delay, config.max_delay)
