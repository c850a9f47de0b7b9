"""
Basic usage examples for Codora.

Runs offline: both tiers are served by mock providers.
"""

from decimal import Decimal

from codora import (
    BudgetConfig,
    BudgetExceededError,
    Gateway,
    GatewayConfig,
    MockProvider,
    Period,
    ResetMode,
    Tier,
)


def make_gateway(budget: str = "10") -> Gateway:
    config = GatewayConfig(budget=BudgetConfig(limit=Decimal(budget), period=Period.DAILY))
    return Gateway(
        config,
        providers={
            Tier.ECONOMY: MockProvider("An add function.", cost=Decimal("0.0002"), name="economy-mock"),
            Tier.PREMIUM: MockProvider("A detailed walkthrough.", cost=Decimal("0.02"), name="premium-mock"),
        },
    )


def example_basic():
    """Explain a small snippet."""
    print("=" * 60)
    print("Example 1: Basic Usage")
    print("=" * 60)

    gateway = make_gateway()
    result = gateway.explain_detailed(
        "def add(a, b):\n    return a + b",
        context="function",
        language="python",
    )

    print(f"Text: {result.text}")
    print(f"Tier: {result.tier.value}")
    print(f"Cost: ${result.cost:.6f}")
    print(f"Complexity: {result.complexity_score:.2f}")
    print()


def example_cache():
    """The second identical request is free."""
    print("=" * 60)
    print("Example 2: Response Cache")
    print("=" * 60)

    gateway = make_gateway()
    code = "const total = items.reduce((sum, item) => sum + item.price, 0);"

    first = gateway.explain_detailed(code, "expression", "javascript")
    second = gateway.explain_detailed(code, "expression", "javascript")

    print(f"First call cached: {first.cached} (${first.cost:.6f})")
    print(f"Second call cached: {second.cached} (${second.cost:.6f})")
    print(f"Hit rate: {gateway.get_cache_stats().hit_rate:.0%}")
    print()


def example_routing():
    """Preview which tier a snippet would go to."""
    print("=" * 60)
    print("Example 3: Routing Preview")
    print("=" * 60)

    gateway = make_gateway()
    snippets = [
        ("x = 1", "statement", "python"),
        (
            "impl<T: Clone> Cache<T> {\n"
            "    async fn get(&self) -> Result<T, Error> {\n"
            "        match self.inner.lock().await {\n"
            "            Ok(guard) => { if let Some(v) = guard.get() { return Ok(v.clone()); } }\n"
            "            Err(e) => { return Err(e.into()); }\n"
            "        }\n"
            "    }\n"
            "}",
            "concurrency and security critical cache",
            "rust",
        ),
    ]

    for code, context, language in snippets:
        decision = gateway.plan(code, context, language)
        print(f"{language:8} -> {decision.tier.value:8} {decision.why}")
    print()


def example_budget():
    """Requests are refused once the budget is spent."""
    print("=" * 60)
    print("Example 4: Budget Gate")
    print("=" * 60)

    gateway = make_gateway(budget="0.02")
    complex_code = "class A extends B {\n  async run() { try { await x(); } catch (e) {} }\n}"

    gateway.explain(complex_code, "security protocol", "typescript", tier=Tier.PREMIUM)
    try:
        gateway.explain("print('hi')", "statement", "python")
    except BudgetExceededError as e:
        print(f"Refused: {e}")

    archive_key = gateway.reset_budget(ResetMode.ARCHIVE)
    print(f"History archived to {archive_key}")
    print(f"Remaining after reset: ${gateway.get_usage_stats().budget_remaining}")
    print()


if __name__ == "__main__":
    example_basic()
    example_cache()
    example_routing()
    example_budget()
