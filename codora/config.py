"""Configuration for Codora.

Settings are read once into frozen dataclasses. Reconfiguring means
building a new GatewayConfig and handing it to Gateway.reconfigure().
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from codora.schemas import Period, ProviderName, ResetMode, Tier
from codora.validation import ValidationError, parse_amount, validate_threshold

DEFAULT_MODELS: Dict[str, Dict[str, str]] = {
    "economy": {"provider": "openai", "model": "gpt-4o-mini"},
    "premium": {"provider": "anthropic", "model": "claude-3-5-sonnet-20241022"},
}

PROVIDER_DEFAULT_MODELS: Dict[str, str] = {
    ProviderName.OPENAI.value: "gpt-4o-mini",
    ProviderName.ANTHROPIC.value: "claude-3-haiku-20240307",
    ProviderName.LOCAL.value: "llama2",
    ProviderName.MOCK.value: "mock-small",
}

_KEY_ENV_FALLBACKS = {
    ProviderName.OPENAI.value: "OPENAI_API_KEY",
    ProviderName.ANTHROPIC.value: "ANTHROPIC_API_KEY",
}


@dataclass(frozen=True)
class TierConfig:
    """Backend and model serving one tier."""
    provider: str
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None

    def __post_init__(self):
        try:
            ProviderName(self.provider)
        except ValueError:
            raise ValidationError(
                f"unknown provider {self.provider!r}; "
                f"expected one of {[p.value for p in ProviderName]}"
            ) from None
        if not self.model:
            raise ValidationError("tier model cannot be empty")


@dataclass(frozen=True)
class CacheConfig:
    enabled: bool = True
    max_entries: int = 1000
    ttl: timedelta = timedelta(days=7)

    def __post_init__(self):
        if self.max_entries < 1:
            raise ValidationError(f"cache max_entries must be >= 1, got {self.max_entries}")


@dataclass(frozen=True)
class BudgetConfig:
    limit: Decimal = Decimal("10")
    period: Period = Period.MONTHLY
    reset_mode: ResetMode = ResetMode.CLEAR
    retention: timedelta = timedelta(days=180)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for provider calls. Off by default."""
    max_retries: int = 0
    base_delay_ms: int = 100
    max_delay_ms: int = 10_000

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValidationError(f"max_retries cannot be negative, got {self.max_retries}")


@dataclass(frozen=True)
class GatewayConfig:
    """Everything the gateway reads at construction or reconfigure time."""
    tiers: Dict[Tier, TierConfig] = field(default_factory=dict)
    complexity_threshold: float = 0.6
    cache: CacheConfig = field(default_factory=CacheConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout_seconds: float = 30.0
    max_tokens: int = 1000
    temperature: float = 0.7
    dedupe_inflight: bool = True
    db_path: Optional[str] = None

    def __post_init__(self):
        validate_threshold(self.complexity_threshold)
        if self.timeout_seconds <= 0:
            raise ValidationError(f"timeout_seconds must be positive, got {self.timeout_seconds}")
        if self.max_tokens < 1:
            raise ValidationError(f"max_tokens must be positive, got {self.max_tokens}")


def _parse_json_env(env: Mapping[str, str], var_name: str) -> Dict[str, Any] | None:
    value = env.get(var_name)
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_number(env: Mapping[str, str], name: str, default, cast):
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number, got {value!r}") from None


def _load_tier(env: Mapping[str, str], tier: Tier) -> Optional[TierConfig]:
    prefix = f"CODORA_{tier.value.upper()}"
    defaults = DEFAULT_MODELS[tier.value]

    provider = env.get(f"{prefix}_PROVIDER", defaults["provider"]).strip().lower()
    if provider in ("", "none", "disabled"):
        return None

    model = env.get(f"{prefix}_MODEL")
    if not model:
        if provider == defaults["provider"]:
            model = defaults["model"]
        else:
            model = PROVIDER_DEFAULT_MODELS.get(provider, "")

    return TierConfig(
        provider=provider,
        model=model,
        api_key=_resolve_api_key(env, provider, env.get(f"{prefix}_API_KEY")),
        base_url=env.get(f"{prefix}_BASE_URL") or None,
    )


def _resolve_api_key(env: Mapping[str, str], provider: str, explicit: Optional[str]) -> Optional[str]:
    if explicit:
        return explicit
    fallback = _KEY_ENV_FALLBACKS.get(provider)
    if fallback:
        return env.get(fallback) or None
    return None


def load_config(env: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """
    Build a GatewayConfig from environment variables.

    Recognised variables (all optional):
        CODORA_ECONOMY_PROVIDER / _MODEL / _API_KEY / _BASE_URL
        CODORA_PREMIUM_PROVIDER / _MODEL / _API_KEY / _BASE_URL
        OPENAI_API_KEY, ANTHROPIC_API_KEY (fallback credentials)
        CODORA_COMPLEXITY_THRESHOLD, CODORA_BUDGET_LIMIT, CODORA_BUDGET_PERIOD,
        CODORA_BUDGET_RESET_MODE, CODORA_CACHE_ENABLED, CODORA_CACHE_MAX_ENTRIES,
        CODORA_CACHE_TTL_DAYS, CODORA_TIMEOUT_SECONDS, CODORA_MAX_RETRIES,
        CODORA_MAX_TOKENS, CODORA_TEMPERATURE, CODORA_DB_PATH,
        CODORA_TIERS_JSON ({"economy": {"provider": ..., "model": ...}, ...})

    Raises:
        ValidationError: If a value is malformed.
    """
    env = os.environ if env is None else env

    tiers: Dict[Tier, TierConfig] = {}
    for tier in Tier:
        loaded = _load_tier(env, tier)
        if loaded is not None:
            tiers[tier] = loaded

    overrides = _parse_json_env(env, "CODORA_TIERS_JSON")
    if overrides:
        for name, raw in overrides.items():
            try:
                tier = Tier(name)
                if raw is None:
                    tiers.pop(tier, None)
                    continue
                tiers[tier] = TierConfig(
                    provider=raw["provider"],
                    model=raw["model"],
                    api_key=_resolve_api_key(env, raw["provider"], raw.get("api_key")),
                    base_url=raw.get("base_url"),
                )
            except (KeyError, TypeError, ValueError) as e:
                if isinstance(e, ValidationError):
                    raise
                raise ValidationError(f"invalid CODORA_TIERS_JSON entry for {name!r}: {e}") from None

    try:
        period = Period(env.get("CODORA_BUDGET_PERIOD", Period.MONTHLY.value).lower())
        reset_mode = ResetMode(env.get("CODORA_BUDGET_RESET_MODE", ResetMode.CLEAR.value).lower())
    except ValueError as e:
        raise ValidationError(str(e)) from None

    return GatewayConfig(
        tiers=tiers,
        complexity_threshold=_get_number(env, "CODORA_COMPLEXITY_THRESHOLD", 0.6, float),
        cache=CacheConfig(
            enabled=_get_bool(env, "CODORA_CACHE_ENABLED", True),
            max_entries=_get_number(env, "CODORA_CACHE_MAX_ENTRIES", 1000, int),
            ttl=timedelta(days=_get_number(env, "CODORA_CACHE_TTL_DAYS", 7.0, float)),
        ),
        budget=BudgetConfig(
            limit=parse_amount(env.get("CODORA_BUDGET_LIMIT", "10"), "CODORA_BUDGET_LIMIT"),
            period=period,
            reset_mode=reset_mode,
        ),
        retry=RetryPolicy(max_retries=_get_number(env, "CODORA_MAX_RETRIES", 0, int)),
        timeout_seconds=_get_number(env, "CODORA_TIMEOUT_SECONDS", 30.0, float),
        max_tokens=_get_number(env, "CODORA_MAX_TOKENS", 1000, int),
        temperature=_get_number(env, "CODORA_TEMPERATURE", 0.7, float),
        db_path=env.get("CODORA_DB_PATH") or None,
    )
