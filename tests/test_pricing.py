"""Tests for pricing tables and cost math."""

from decimal import Decimal

import pytest

from codora.pricing import (
    DEFAULT_PRICING,
    calculate_cost,
    get_pricing,
    quantize_cost,
    reset_pricing,
    set_pricing,
)


class TestCalculateCost:
    """Test cost computation."""

    def test_input_output_split(self):
        # 1000 in at 0.00015/1K + 500 out at 0.0006/1K
        cost = calculate_cost("gpt-4o-mini", prompt_tokens=1000, completion_tokens=500)
        assert cost == Decimal("0.000450")

    def test_blended_rate_without_split(self):
        # (0.003 + 0.015) / 2 per 1K
        cost = calculate_cost("claude-3-5-sonnet-20241022", total_tokens=2000)
        assert cost == Decimal("0.018000")

    def test_unknown_model_costs_nothing(self):
        assert calculate_cost("my-private-model", 100, 100) == Decimal("0")

    def test_quantized_to_six_places(self):
        cost = calculate_cost("gpt-4o-mini", prompt_tokens=1, completion_tokens=1)
        assert cost == Decimal("0.000001")
        assert cost.as_tuple().exponent == -6

    def test_round_half_up(self):
        assert quantize_cost(Decimal("0.0000005")) == Decimal("0.000001")
        assert quantize_cost(Decimal("0.00000049")) == Decimal("0")

    def test_explicit_table(self):
        table = {"tiny": DEFAULT_PRICING["gpt-4"]}
        assert calculate_cost("tiny", 1000, 0, pricing=table) == Decimal("0.03")


class TestPricingOverrides:
    """Test runtime and environment overrides."""

    def test_set_pricing_merges(self):
        set_pricing({"custom-model": {"input": 1.0, "output": 2.0}})

        table = get_pricing()
        assert table["custom-model"].input_per_1k == Decimal("1.0")
        assert "gpt-4o" in table
        assert calculate_cost("custom-model", 1000, 1000) == Decimal("3")

    def test_set_pricing_rejects_incomplete_entries(self):
        with pytest.raises(ValueError):
            set_pricing({"custom-model": {"input": 1.0}})

    def test_reset_pricing(self):
        set_pricing({"gpt-4o": {"input": 9, "output": 9}})
        reset_pricing()
        assert get_pricing()["gpt-4o"] == DEFAULT_PRICING["gpt-4o"]

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("CODORA_PRICING_JSON", '{"gpt-4o": {"input": 0.001, "output": 0.002}}')
        assert get_pricing()["gpt-4o"].output_per_1k == Decimal("0.002")

    def test_malformed_env_override_ignored(self, monkeypatch):
        monkeypatch.setenv("CODORA_PRICING_JSON", "not json")
        assert get_pricing()["gpt-4o"] == DEFAULT_PRICING["gpt-4o"]
