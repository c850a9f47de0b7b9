"""
Codora - Cost-aware code explanations.

Simple usage:
    from codora import Gateway

    gateway = Gateway()
    text = gateway.explain("def add(a, b): return a + b", "function", "python")
    print(text)

Routing preview (no provider call):
    decision = gateway.plan(code, "class", "rust")
    print(decision.tier, decision.model, decision.why)

Budgets:
    stats = gateway.get_usage_stats()
    print(stats.budget_used, stats.budget_remaining)

    gateway.reset_budget(ResetMode.ARCHIVE)

Configuration is read from CODORA_* environment variables, or passed in:
    from codora import Gateway, GatewayConfig, TierConfig, Tier

    config = GatewayConfig(tiers={
        Tier.ECONOMY: TierConfig(provider="openai", model="gpt-4o-mini", api_key="sk-..."),
    })
    gateway = Gateway(config)
"""

from codora.cache import CacheStats, ResponseCache, compute_key
from codora.classifier import ComplexityBreakdown, ComplexityClassifier
from codora.config import (
    BudgetConfig,
    CacheConfig,
    GatewayConfig,
    RetryPolicy,
    TierConfig,
    load_config,
)
from codora.errors import (
    BudgetExceededError,
    CacheError,
    GatewayError,
    LedgerError,
    NoProviderConfiguredError,
    ProviderError,
)
from codora.gateway import Gateway, get_default_gateway
from codora.ledger import BudgetAlert, CostStats, DailyCost, UsageBreakdown, UsageLedger
from codora.models import CacheEntry, UsageRecord
from codora.pricing import calculate_cost, get_pricing, reset_pricing, set_pricing
from codora.providers import (
    AnthropicProvider,
    LLMProvider,
    LocalProvider,
    MockProvider,
    OpenAIProvider,
)
from codora.schemas import (
    AnalysisRequest,
    ExplainResult,
    Period,
    ProviderName,
    ResetMode,
    RoutingDecision,
    Tier,
)
from codora.storage import InMemoryStore, SQLiteStore
from codora.validation import ValidationError

__version__ = "0.3.0"

__all__ = [
    # Gateway
    "Gateway",
    "get_default_gateway",
    "ExplainResult",
    "RoutingDecision",
    "AnalysisRequest",
    # Config
    "GatewayConfig",
    "TierConfig",
    "CacheConfig",
    "BudgetConfig",
    "RetryPolicy",
    "load_config",
    # Enums
    "Tier",
    "Period",
    "ResetMode",
    "ProviderName",
    # Components
    "ResponseCache",
    "CacheStats",
    "CacheEntry",
    "compute_key",
    "UsageLedger",
    "UsageRecord",
    "CostStats",
    "BudgetAlert",
    "DailyCost",
    "UsageBreakdown",
    "ComplexityClassifier",
    "ComplexityBreakdown",
    # Providers
    "LLMProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "LocalProvider",
    "MockProvider",
    # Pricing
    "calculate_cost",
    "get_pricing",
    "set_pricing",
    "reset_pricing",
    # Storage
    "InMemoryStore",
    "SQLiteStore",
    # Errors
    "GatewayError",
    "NoProviderConfiguredError",
    "BudgetExceededError",
    "ProviderError",
    "CacheError",
    "LedgerError",
    "ValidationError",
]
