"""
Data schemas for Codora.

Request, routing and result structures passed between the gateway,
the classifier and the provider adapters.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional


class Tier(str, Enum):
    """Backend tiers, distinguished by cost and capability."""
    ECONOMY = "economy"
    PREMIUM = "premium"


class Period(str, Enum):
    """Rolling budget windows."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def window(self) -> timedelta:
        return _PERIOD_WINDOWS[self]


_PERIOD_WINDOWS = {
    Period.DAILY: timedelta(days=1),
    Period.WEEKLY: timedelta(days=7),
    Period.MONTHLY: timedelta(days=30),
}


class ResetMode(str, Enum):
    """How a budget reset treats existing usage history."""
    CLEAR = "clear"
    ARCHIVE = "archive"


class ProviderName(str, Enum):
    """Supported backends."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"
    MOCK = "mock"


@dataclass
class AnalysisRequest:
    """
    A single explain request from the caller.

    Consumed once per call, never persisted.
    """
    code: str
    context: str = ""
    language: str = "plaintext"
    tier: Optional[Tier] = None


@dataclass
class Message:
    """One chat message sent to a backend."""
    role: str  # "system", "user" or "assistant"
    content: str


@dataclass
class ProviderRequest:
    """Backend-neutral request handed to a provider adapter."""
    messages: list[Message]
    model: Optional[str] = None
    max_tokens: int = 1000
    temperature: float = 0.7

    @property
    def system_prompt(self) -> Optional[str]:
        for message in self.messages:
            if message.role == "system":
                return message.content
        return None

    @property
    def chat_messages(self) -> list[Message]:
        return [m for m in self.messages if m.role != "system"]


@dataclass
class GenerationResult:
    """Normalized backend response."""
    text: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cost: Decimal
    model: str
    provider: str


@dataclass(frozen=True)
class ModelPricing:
    """Price per 1K tokens for one model, in USD."""
    input_per_1k: Decimal
    output_per_1k: Decimal

    @property
    def blended_per_1k(self) -> Decimal:
        """Mean of input and output rates, for backends that report only totals."""
        return (self.input_per_1k + self.output_per_1k) / 2


@dataclass(frozen=True)
class ProviderProfile:
    """Static description of a backend."""
    name: str
    models: tuple[str, ...]
    default_model: str
    pricing: dict[str, ModelPricing] = field(default_factory=dict)


@dataclass
class RoutingDecision:
    """
    Which tier and model a request goes to, and why.

    Produced by Gateway.plan() without touching the network.
    """
    tier: Tier
    provider: str
    model: str
    complexity_score: Optional[float]
    threshold: float
    why: str


@dataclass
class ExplainResult:
    """Outcome of a successful explain call."""
    text: str
    cached: bool
    tier: Optional[Tier] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    cost: Decimal = Decimal("0")
    total_tokens: int = 0
    complexity_score: Optional[float] = None
    cache_key: Optional[str] = None

    def __str__(self):
        return self.text
