"""
Error taxonomy for the Codora gateway.

NoProviderConfiguredError, BudgetExceededError and ProviderError reach the
caller. CacheError and LedgerError are raised and absorbed internally so a
storage fault never blocks a request.
"""

from decimal import Decimal
from typing import Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""
    pass


class NoProviderConfiguredError(GatewayError):
    """Raised when no backend has usable credentials."""

    def __init__(self, message: str = "No AI provider available. Configure API keys for at least one tier."):
        super().__init__(message)


class BudgetExceededError(GatewayError):
    """Raised when the rolling budget window is exhausted."""

    def __init__(self, period: str, spent: Decimal, limit: Decimal):
        self.period = period
        self.spent = spent
        self.limit = limit
        super().__init__(
            f"{period} budget exceeded: ${spent:.4f} spent of ${limit:.4f} limit. "
            f"Raise the limit or wait for the period to roll over."
        )


class ProviderError(GatewayError):
    """Raised when a backend call fails."""

    def __init__(self, provider: str, status: Optional[int], message: str):
        self.provider = provider
        self.status = status
        self.message = message
        status_text = status if status is not None else "network"
        super().__init__(f"{provider} request failed ({status_text}): {message}")

    @property
    def retryable(self) -> bool:
        """Network errors, rate limits and server errors are worth retrying."""
        if self.status is None:
            return True
        return self.status == 429 or self.status >= 500


class CacheError(GatewayError):
    """Internal cache storage fault."""
    pass


class LedgerError(GatewayError):
    """Internal usage ledger storage fault."""
    pass
