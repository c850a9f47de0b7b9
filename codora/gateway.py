"""
Gateway for Codora.

Single entry point for code explanations. For every request the gateway:
1. Checks that at least one tier has a configured provider
2. Serves the answer from the response cache when it can
3. Refuses the call if the rolling budget is exhausted
4. Picks the economy or premium tier from the complexity score
5. Calls the provider, records usage, stores the answer
"""

import asyncio
import dataclasses
import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Mapping, Optional

from codora.cache import CacheStats, ResponseCache, compute_key
from codora.classifier import ComplexityClassifier
from codora.config import GatewayConfig, load_config
from codora.errors import BudgetExceededError, NoProviderConfiguredError, ProviderError
from codora.ledger import BudgetAlert, CostStats, UsageLedger
from codora.metrics import GatewayMetrics
from codora.prompts import build_request
from codora.providers import LLMProvider, build_provider, generate_with_retry
from codora.schemas import AnalysisRequest, ExplainResult, ResetMode, RoutingDecision, Tier
from codora.storage import KeyValueStore, open_store
from codora.validation import parse_tier, validate_explain_request

logger = logging.getLogger("codora.gateway")


@dataclass(frozen=True)
class _Runtime:
    """Immutable snapshot of everything a request needs. Swapped whole on reconfigure."""
    config: GatewayConfig
    candidates: Mapping[Tier, LLMProvider]
    providers: Mapping[Tier, LLMProvider]
    models: Mapping[Tier, str]


class Gateway:
    """
    Cost-aware front door to the AI backends.

    Example:
        ```python
        gateway = Gateway()
        text = gateway.explain(
            "def add(a, b):\\n    return a + b",
            context="function",
            language="python",
        )
        print(gateway.get_usage_stats().budget_remaining)
        ```
    """

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        providers: Optional[Mapping[Tier, LLMProvider]] = None,
        store: Optional[KeyValueStore] = None,
        classifier=None,
        alert_callback: Optional[Callable[[BudgetAlert], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the gateway.

        Args:
            config: Settings. Read from the environment if not provided.
            providers: Adapters by tier, taking precedence over the ones
                the config would build. Useful for tests and custom backends.
            store: Key-value storage for cache and usage history.
                Defaults to SQLite at config.db_path, or in-memory.
            classifier: Object with score(code, context, language) -> float.
            alert_callback: Receives budget threshold alerts.
            clock: Returns the current UTC time. Injected by tests.
        """
        config = config or load_config()
        self._provider_overrides = dict(providers or {})
        self._store = store if store is not None else open_store(config.db_path)
        self._classifier = classifier or ComplexityClassifier()
        self._metrics = GatewayMetrics()

        self._cache = ResponseCache(
            store=self._store,
            max_entries=config.cache.max_entries,
            ttl=config.cache.ttl,
            clock=clock,
        )
        self._ledger = UsageLedger(
            store=self._store,
            budget_limit=config.budget.limit,
            budget_period=config.budget.period,
            retention=config.budget.retention,
            alert_callback=alert_callback,
            clock=clock,
        )

        self._config_lock = threading.Lock()
        self._inflight: dict[str, Future] = {}
        self._inflight_lock = threading.Lock()
        self._runtime = self._build_runtime(config)

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def config(self) -> GatewayConfig:
        return self._runtime.config

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def ledger(self) -> UsageLedger:
        return self._ledger

    def _build_runtime(self, config: GatewayConfig) -> _Runtime:
        candidates: dict[Tier, LLMProvider] = {}
        models: dict[Tier, str] = {}

        for tier in Tier:
            provider = self._provider_overrides.get(tier)
            tier_config = config.tiers.get(tier)
            if provider is None and tier_config is not None:
                provider = build_provider(tier_config, timeout=config.timeout_seconds)
            if provider is None:
                continue
            candidates[tier] = provider
            models[tier] = tier_config.model if tier_config else provider.default_model()

        configured = {}
        for tier, provider in candidates.items():
            if provider.is_configured():
                configured[tier] = provider
                logger.info("%s provider ready for %s tier (%s)", provider.name, tier.value, models[tier])
            else:
                logger.warning("%s provider for %s tier is missing credentials", provider.name, tier.value)

        return _Runtime(
            config=config,
            candidates=candidates,
            providers=configured,
            models=models,
        )

    def reconfigure(self, config: GatewayConfig) -> None:
        """
        Swap in a new configuration.

        Requests already running finish with the snapshot they started with.
        The storage location is fixed at construction; a changed db_path is
        logged and ignored.
        """
        runtime = self._build_runtime(config)
        with self._config_lock:
            if config.db_path != self._runtime.config.db_path:
                logger.warning(
                    "db_path change to %r ignored; storage is fixed until restart",
                    config.db_path,
                )
            self._cache.reconfigure(max_entries=config.cache.max_entries, ttl=config.cache.ttl)
            self._ledger.reconfigure(
                budget_limit=config.budget.limit,
                budget_period=config.budget.period,
                retention=config.budget.retention,
            )
            self._runtime = runtime
        logger.info("Gateway reconfigured (%d tier(s) available)", len(runtime.providers))

    def refresh(self) -> None:
        """Re-read configuration from the environment."""
        self.reconfigure(load_config())

    # =========================================================================
    # Explain
    # =========================================================================

    def explain(
        self,
        code: str,
        context: str = "",
        language: str = "plaintext",
        tier: Optional[Tier] = None,
    ) -> str:
        """
        Explain a code snippet.

        Args:
            code: Snippet to explain.
            context: What the snippet is, e.g. "function" or "class".
            language: Language tag, e.g. "python".
            tier: Force a tier instead of routing by complexity.

        Returns:
            Explanation text.

        Raises:
            NoProviderConfiguredError: No tier has usable credentials.
            BudgetExceededError: The budget period is exhausted.
            ProviderError: The backend call failed.
        """
        return self.explain_detailed(code, context, language, tier).text

    async def aexplain(
        self,
        code: str,
        context: str = "",
        language: str = "plaintext",
        tier: Optional[Tier] = None,
    ) -> str:
        """Awaitable explain(); the provider call runs in a worker thread."""
        return await asyncio.to_thread(self.explain, code, context, language, tier)

    def explain_detailed(
        self,
        code: str,
        context: str = "",
        language: str = "plaintext",
        tier: Optional[Tier] = None,
    ) -> ExplainResult:
        """Like explain(), but returns routing, cost and cache details."""
        validate_explain_request(code, context, language)
        tier = parse_tier(tier)
        runtime = self._runtime
        self._metrics.record_request()

        self._require_provider(runtime, tier)

        key = compute_key(code, context, language)
        caching = runtime.config.cache.enabled
        if caching:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Using cached explanation %s...", key[:8])
                self._metrics.record_cache_hit()
                return ExplainResult(text=cached, cached=True, cache_key=key)

        if caching and runtime.config.dedupe_inflight:
            return self._explain_shared(runtime, key, code, context, language, tier)
        return self._explain_uncached(runtime, key, code, context, language, tier)

    def handle(self, request: AnalysisRequest) -> ExplainResult:
        """Serve a prepared AnalysisRequest."""
        return self.explain_detailed(request.code, request.context, request.language, request.tier)

    def plan(
        self,
        code: str,
        context: str = "",
        language: str = "plaintext",
        tier: Optional[Tier] = None,
    ) -> RoutingDecision:
        """See which tier and model would serve a request, without calling it."""
        validate_explain_request(code, context, language)
        tier = parse_tier(tier)
        runtime = self._runtime
        self._require_provider(runtime, tier)
        return self._select(runtime, code, context, language, tier)

    def _require_provider(self, runtime: _Runtime, tier: Optional[Tier]) -> None:
        if not runtime.providers:
            self._metrics.record_error("no_provider")
            raise NoProviderConfiguredError()
        if tier is not None and tier not in runtime.providers:
            self._metrics.record_error("no_provider")
            raise NoProviderConfiguredError(f"No provider configured for the {tier.value} tier")

    def _explain_shared(
        self,
        runtime: _Runtime,
        key: str,
        code: str,
        context: str,
        language: str,
        tier: Optional[Tier],
    ) -> ExplainResult:
        # Concurrent identical misses wait on the first caller's future.
        with self._inflight_lock:
            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._inflight[key] = future

        if not leader:
            self._metrics.record_inflight_join()
            result = future.result()
            return dataclasses.replace(result, cached=True, cost=Decimal("0"), total_tokens=0)

        try:
            # A previous leader may have stored the answer since our lookup.
            cached = self._cache.get(key) if key in self._cache else None
            if cached is not None:
                self._metrics.record_cache_hit()
                result = ExplainResult(text=cached, cached=True, cache_key=key)
            else:
                result = self._explain_uncached(runtime, key, code, context, language, tier)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._inflight_lock:
                self._inflight.pop(key, None)

    def _explain_uncached(
        self,
        runtime: _Runtime,
        key: str,
        code: str,
        context: str,
        language: str,
        tier: Optional[Tier],
    ) -> ExplainResult:
        if not self._ledger.can_spend():
            spent = self._ledger.current_period_cost()
            self._metrics.record_error("budget_exceeded")
            logger.warning("Refusing request: budget exhausted (%s of %s)", spent, self._ledger.budget_limit)
            raise BudgetExceededError(self._ledger.budget_period.value, spent, self._ledger.budget_limit)

        decision = self._select(runtime, code, context, language, tier)
        provider = runtime.providers[decision.tier]
        request = build_request(
            code,
            context,
            language,
            model=decision.model,
            max_tokens=runtime.config.max_tokens,
            temperature=runtime.config.temperature,
        )

        started = time.monotonic()
        try:
            result = generate_with_retry(provider, request, runtime.config.retry)
        except ProviderError as e:
            self._metrics.record_error("provider")
            logger.error("Failed to generate explanation via %s: %s", provider.name, e)
            raise
        latency_ms = (time.monotonic() - started) * 1000
        self._metrics.record_provider_call(decision.tier.value, provider.name, latency_ms)

        try:
            self._ledger.record(
                result.cost,
                result.total_tokens,
                result.provider,
                result.model,
                kind="explanation",
            )
        except Exception:
            logger.exception("Failed to record usage for %s/%s", result.provider, result.model)

        if runtime.config.cache.enabled:
            self._cache.set(key, result.text)

        logger.info(
            "Explanation generated via %s/%s (%s tier) - cost $%.4f, %d tokens",
            result.provider, result.model, decision.tier.value, result.cost, result.total_tokens,
        )

        return ExplainResult(
            text=result.text,
            cached=False,
            tier=decision.tier,
            provider=result.provider,
            model=result.model,
            cost=result.cost,
            total_tokens=result.total_tokens,
            complexity_score=decision.complexity_score,
            cache_key=key,
        )

    def _select(
        self,
        runtime: _Runtime,
        code: str,
        context: str,
        language: str,
        override: Optional[Tier],
    ) -> RoutingDecision:
        threshold = runtime.config.complexity_threshold
        score = None

        if override is not None:
            tier = override
            why = f"Tier set explicitly to {tier.value}"
        elif len(runtime.providers) == 1:
            tier = next(iter(runtime.providers))
            why = f"Only the {tier.value} tier is configured"
        else:
            score = self._classifier.score(code, context, language)
            if score >= threshold:
                tier = Tier.PREMIUM
                why = f"Complexity {score:.2f} >= threshold {threshold:.2f}"
            else:
                tier = Tier.ECONOMY
                why = f"Complexity {score:.2f} < threshold {threshold:.2f}"

        return RoutingDecision(
            tier=tier,
            provider=runtime.providers[tier].name,
            model=runtime.models[tier],
            complexity_score=score,
            threshold=threshold,
            why=why,
        )

    # =========================================================================
    # Diagnostics & maintenance
    # =========================================================================

    def get_usage_stats(self) -> CostStats:
        return self._ledger.stats()

    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def get_provider_status(self) -> dict[str, dict]:
        """Per-tier provider, model and whether credentials are present."""
        runtime = self._runtime
        return {
            tier.value: {
                "provider": provider.name,
                "model": runtime.models[tier],
                "configured": tier in runtime.providers,
            }
            for tier, provider in runtime.candidates.items()
        }

    def get_metrics(self) -> dict:
        return self._metrics.get_stats()

    def clear_cache(self) -> None:
        self._cache.clear()

    def reset_budget(self, mode: Optional[ResetMode] = None) -> Optional[str]:
        """Reset usage history. Returns the archive key when archiving."""
        return self._ledger.reset(mode or self._runtime.config.budget.reset_mode)

    def close(self) -> None:
        close = getattr(self._store, "close", None)
        if close:
            close()


# Global instance for convenience
_default_gateway: Optional[Gateway] = None


def get_default_gateway() -> Gateway:
    """Get or create the default gateway from environment settings."""
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = Gateway()
    return _default_gateway
