# src/llmgate/observability/cost.py
"""
Pluggable cost calculation for token usage.

The metrics collector converts token counts to money through a
:class:`CostCalculator`. No pricing data ships with the library: the
default :class:`NullCostCalculator` reports zero cost and unknown pricing,
while :class:`StaticPricingCostCalculator` applies caller-supplied prices.

Pricing format for :class:`StaticPricingCostCalculator` (prices per 1K tokens)::

    {
        "openai": {
            "gpt-4o": {"input": 0.0025, "output": 0.01},
        },
        "ollama": {
            "*": {"input": 0.0, "output": 0.0},
        },
    }

Usage:
    >>> calc = StaticPricingCostCalculator({"openai": {"gpt-4o": {"input": 0.0025, "output": 0.01}}})
    >>> calc.calculate_cost("openai", "gpt-4o", 1000, 500).total_cost
    0.0075
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "USD"

WILDCARD_MODEL = "*"


class Cost(BaseModel):
    """Monetary cost of a single usage record."""

    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0
    currency: str = DEFAULT_CURRENCY


@runtime_checkable
class CostCalculator(Protocol):
    """Maps (provider, model, input tokens, output tokens) to a cost."""

    def calculate_cost(self, provider: str, model: str, input_tokens: int, output_tokens: int) -> Cost:
        ...

    def get_pricing(self, provider: str, model: str) -> Tuple[float, float, bool]:
        """Returns (input price per 1K, output price per 1K, known)."""
        ...


class NullCostCalculator:
    """Calculator used when no pricing data is configured."""

    def __init__(self, currency: str = DEFAULT_CURRENCY):
        self.currency = currency

    def calculate_cost(self, provider: str, model: str, input_tokens: int, output_tokens: int) -> Cost:
        return Cost(currency=self.currency)

    def get_pricing(self, provider: str, model: str) -> Tuple[float, float, bool]:
        return 0.0, 0.0, False


class StaticPricingCostCalculator:
    """
    Cost calculator backed by an in-memory price table.

    Lookups are case-insensitive. A model entry named ``"*"`` prices every
    model of that provider that has no explicit entry. Unknown models cost
    nothing and are reported as unknown.

    Args:
        pricing: ``{provider: {model: {"input": per_1k, "output": per_1k}}}``.
        currency: Currency tag applied to every computed cost.
    """

    def __init__(
        self,
        pricing: Optional[Mapping[str, Mapping[str, Mapping[str, float]]]] = None,
        currency: str = DEFAULT_CURRENCY,
    ):
        self.currency = currency
        self._lock = threading.Lock()
        self._pricing: Dict[str, Dict[str, Tuple[float, float]]] = {}
        for provider, models in (pricing or {}).items():
            for model, prices in models.items():
                self.set_pricing(provider, model, prices.get("input", 0.0), prices.get("output", 0.0))

    def set_pricing(self, provider: str, model: str, input_per_1k: float, output_per_1k: float) -> None:
        """Add or replace the price of one model."""
        with self._lock:
            self._pricing.setdefault(provider.lower(), {})[model.lower()] = (
                float(input_per_1k),
                float(output_per_1k),
            )

    def get_pricing(self, provider: str, model: str) -> Tuple[float, float, bool]:
        with self._lock:
            models = self._pricing.get(provider.lower())
            if models is None:
                return 0.0, 0.0, False
            prices = models.get(model.lower()) or models.get(WILDCARD_MODEL)
        if prices is None:
            return 0.0, 0.0, False
        return prices[0], prices[1], True

    def calculate_cost(self, provider: str, model: str, input_tokens: int, output_tokens: int) -> Cost:
        input_price, output_price, known = self.get_pricing(provider, model)
        if not known:
            logger.debug(f"No pricing for {provider}/{model}, reporting zero cost")
            return Cost(currency=self.currency)

        input_cost = input_tokens / 1000.0 * input_price
        output_cost = output_tokens / 1000.0 * output_price
        return Cost(
            input_cost=input_cost,
            output_cost=output_cost,
            total_cost=input_cost + output_cost,
            currency=self.currency,
        )
