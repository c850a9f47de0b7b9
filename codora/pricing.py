"""
Pricing tables and cost math.

Prices are USD per 1K tokens. Costs are computed in Decimal and quantized
to 6 decimal places so ledger sums stay exact.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from codora.schemas import ModelPricing

logger = logging.getLogger("codora.pricing")

COST_QUANTUM = Decimal("0.000001")
_THOUSAND = Decimal("1000")


def _price(input_per_1k: str, output_per_1k: str) -> ModelPricing:
    return ModelPricing(Decimal(input_per_1k), Decimal(output_per_1k))


DEFAULT_PRICING: Dict[str, ModelPricing] = {
    # OpenAI
    "gpt-4o-mini": _price("0.00015", "0.0006"),
    "gpt-4o": _price("0.0025", "0.01"),
    "gpt-4-turbo": _price("0.01", "0.03"),
    "gpt-4": _price("0.03", "0.06"),
    "gpt-3.5-turbo": _price("0.0015", "0.002"),
    "gpt-3.5-turbo-16k": _price("0.003", "0.004"),
    # Anthropic
    "claude-3-haiku-20240307": _price("0.00025", "0.00125"),
    "claude-3-sonnet-20240229": _price("0.003", "0.015"),
    "claude-3-5-sonnet-20241022": _price("0.003", "0.015"),
    "claude-3-opus-20240229": _price("0.015", "0.075"),
}

_pricing: Dict[str, ModelPricing] = copy.deepcopy(DEFAULT_PRICING)


def _parse_pricing_env(var_name: str = "CODORA_PRICING_JSON") -> Optional[Dict[str, ModelPricing]]:
    value = os.getenv(var_name)
    if not value:
        return None
    try:
        parsed = json.loads(value)
        return {
            model: _price(str(rates["input"]), str(rates["output"]))
            for model, rates in parsed.items()
        }
    except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ArithmeticError):
        logger.warning("Ignoring malformed %s", var_name)
        return None


def get_pricing() -> Dict[str, ModelPricing]:
    """Return the active price table, with optional env override merged on top."""
    override = _parse_pricing_env()
    if override:
        merged = dict(_pricing)
        merged.update(override)
        return merged
    return _pricing


def set_pricing(pricing: Dict[str, Dict[str, float]]) -> None:
    """Replace price entries at runtime. Rates are per 1K tokens."""
    if not isinstance(pricing, dict) or not pricing:
        raise ValueError("pricing must be a non-empty dict")
    for model, rates in pricing.items():
        if not isinstance(rates, dict) or "input" not in rates or "output" not in rates:
            raise ValueError(f"pricing for {model} must include 'input' and 'output'")
    global _pricing
    updated = dict(_pricing)
    for model, rates in pricing.items():
        updated[model] = _price(str(rates["input"]), str(rates["output"]))
    _pricing = updated


def reset_pricing() -> None:
    """Restore the built-in price table."""
    global _pricing
    _pricing = copy.deepcopy(DEFAULT_PRICING)


def quantize_cost(cost: Decimal) -> Decimal:
    return cost.quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_cost(
    model: str,
    prompt_tokens: Optional[int] = None,
    completion_tokens: Optional[int] = None,
    total_tokens: Optional[int] = None,
    pricing: Optional[Dict[str, ModelPricing]] = None,
) -> Decimal:
    """
    Compute the cost of one call.

    Uses the input/output split when both counts are known, otherwise the
    blended rate over total_tokens. Unknown models cost nothing.

    Args:
        model: Model identifier
        prompt_tokens: Input tokens reported by the backend
        completion_tokens: Output tokens reported by the backend
        total_tokens: Total tokens, used when the split is unavailable
        pricing: Price table to use instead of the active one

    Returns:
        Cost in USD, quantized to 6 decimal places
    """
    table = pricing if pricing is not None else get_pricing()
    rates = table.get(model)
    if rates is None:
        logger.warning("No pricing for model %s; recording zero cost", model)
        return Decimal("0")

    if prompt_tokens is not None and completion_tokens is not None:
        cost = (Decimal(prompt_tokens) / _THOUSAND) * rates.input_per_1k
        cost += (Decimal(completion_tokens) / _THOUSAND) * rates.output_per_1k
    else:
        tokens = total_tokens or 0
        cost = (Decimal(tokens) / _THOUSAND) * rates.blended_per_1k

    return quantize_cost(cost)
