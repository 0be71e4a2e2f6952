"""
Stateless helpers for token estimates, throughput and monetary cost.

Model prices are quoted in USD per million tokens; a pricing field in the
model catalog is either a bare number or a mapping keyed by currency
(``{"usd": 0.7, "vcu": 7}``).
"""

import math
from numbers import Real
from typing import Any, Dict, Optional, Tuple

CHARS_PER_TOKEN = 4
TOKENS_PER_PRICE_UNIT = 1_000_000


class MetricsCalculator:
    @staticmethod
    def estimate_tokens(text: Optional[str]) -> int:
        """Heuristic token count: one token per four characters, rounded up."""
        if not text:
            return 0
        return math.ceil(len(text) / CHARS_PER_TOKEN)

    @staticmethod
    def resolve_price(pricing_field: Any) -> Optional[float]:
        """
        Resolve the USD price from a pricing field.

        Returns None for anything that is not a non-negative number or a
        mapping with a numeric ``usd`` entry.
        """
        if isinstance(pricing_field, bool):
            return None
        if isinstance(pricing_field, Real):
            value = float(pricing_field)
        elif isinstance(pricing_field, dict):
            usd = pricing_field.get("usd")
            if isinstance(usd, bool) or not isinstance(usd, Real):
                return None
            value = float(usd)
        else:
            return None

        if math.isnan(value) or value < 0:
            return None
        return value

    @staticmethod
    def resolve_model_pricing(model: Optional[Dict[str, Any]]) -> Tuple[Optional[float], Optional[float]]:
        """Return (input_price, output_price) for a catalog entry; None where unknown."""
        if not isinstance(model, dict):
            return None, None
        model_spec = model.get("model_spec")
        if not isinstance(model_spec, dict):
            return None, None
        pricing = model_spec.get("pricing")
        if not isinstance(pricing, dict):
            return None, None
        return (
            MetricsCalculator.resolve_price(pricing.get("input")),
            MetricsCalculator.resolve_price(pricing.get("output")),
        )

    @staticmethod
    def compute_cost(
        input_tokens: Optional[int],
        output_tokens: Optional[int],
        input_price: Optional[float],
        output_price: Optional[float],
    ) -> Optional[float]:
        """
        Total cost in USD.

        None when neither price resolved, so an unknown cost is never shown as
        free. When at least one price resolved, a category whose price is
        missing contributes 0.
        """
        if input_price is None and output_price is None:
            return None
        if input_tokens is None and output_tokens is None:
            return None

        input_cost = (input_price or 0.0) * (input_tokens or 0) / TOKENS_PER_PRICE_UNIT
        output_cost = (output_price or 0.0) * (output_tokens or 0) / TOKENS_PER_PRICE_UNIT
        return input_cost + output_cost

    @staticmethod
    def tokens_per_second(tokens: int, elapsed_seconds: float) -> float:
        if elapsed_seconds <= 0:
            return 0.0
        return tokens / elapsed_seconds
