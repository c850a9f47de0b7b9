"""Persisted records: cache entries and usage records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any


def _parse_timestamp(value: str) -> datetime:
    timestamp = datetime.fromisoformat(value)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


@dataclass
class CacheEntry:
    """One cached response, keyed by its content-addressed key."""
    key: str
    value: str
    created_at: datetime
    last_accessed_at: datetime
    access_count: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "created_at": self.created_at.isoformat(),
            "last_accessed_at": self.last_accessed_at.isoformat(),
            "access_count": self.access_count,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> CacheEntry:
        return cls(
            key=key,
            value=str(data["value"]),
            created_at=_parse_timestamp(data["created_at"]),
            last_accessed_at=_parse_timestamp(data["last_accessed_at"]),
            access_count=int(data.get("access_count", 1)),
        )


@dataclass(frozen=True)
class UsageRecord:
    """A single billed request. Immutable once appended."""
    cost: Decimal
    tokens: int
    provider: str
    model: str
    request_kind: str = "explanation"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "cost": str(self.cost),
            "tokens": self.tokens,
            "provider": self.provider,
            "model": self.model,
            "request_kind": self.request_kind,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UsageRecord:
        return cls(
            cost=Decimal(str(data["cost"])),
            tokens=int(data["tokens"]),
            provider=data["provider"],
            model=data["model"],
            request_kind=data.get("request_kind", "explanation"),
            timestamp=_parse_timestamp(data["timestamp"]),
        )
