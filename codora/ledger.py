"""
Usage ledger for Codora.

"Never get surprised by an AI bill again."

Append-only record of billed requests with:
- Rolling-window spend (day/week/month)
- A hard budget gate checked before every billed call
- Threshold alerts at 80% and 100% of the budget
- Provider/model breakdowns, daily rollups and JSON export
- Clear or archive on reset
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from codora.errors import LedgerError
from codora.models import UsageRecord
from codora.schemas import Period, ResetMode
from codora.storage import InMemoryStore, KeyValueStore
from codora.validation import ValidationError, parse_amount

logger = logging.getLogger("codora.ledger")

HISTORY_KEY = "codora.usageHistory"
ARCHIVE_PREFIX = "codora.usageArchive."

DEFAULT_BUDGET_LIMIT = Decimal("10")
DEFAULT_RETENTION = timedelta(days=180)
MAX_RECORDS = 10_000
WARNING_RATIO = Decimal("0.8")


@dataclass
class UsageBreakdown:
    """Spend attributed to one provider or model."""
    name: str
    cost: Decimal
    requests: int


@dataclass
class DailyCost:
    """Spend on one UTC calendar day."""
    date: str
    cost: Decimal
    requests: int


@dataclass
class CostStats:
    """Aggregated usage. Derived on demand, never stored."""
    total_cost: Decimal
    total_tokens: int
    total_requests: int
    average_cost_per_request: Decimal
    average_tokens_per_request: float
    daily_cost: Decimal
    weekly_cost: Decimal
    monthly_cost: Decimal
    budget_limit: Decimal
    budget_period: Period
    budget_used: Decimal
    budget_remaining: Decimal
    by_provider: list[UsageBreakdown] = field(default_factory=list)
    by_model: list[UsageBreakdown] = field(default_factory=list)


@dataclass
class BudgetAlert:
    """Emitted after a record pushes spend past a threshold."""
    level: str  # "warning" or "exceeded"
    period: Period
    spent: Decimal
    limit: Decimal
    message: str


class UsageLedger:
    """
    Tracks spend and gates new requests against a rolling budget.

    Example:
        ```python
        ledger = UsageLedger(budget_limit=Decimal("5"), budget_period=Period.DAILY)

        if ledger.can_spend():
            result = provider.generate(request)
            ledger.record(result.cost, result.total_tokens, result.provider, result.model)

        print(ledger.stats().budget_remaining)
        ```
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        budget_limit=DEFAULT_BUDGET_LIMIT,
        budget_period: Period = Period.MONTHLY,
        retention: timedelta = DEFAULT_RETENTION,
        max_records: int = MAX_RECORDS,
        alert_callback: Optional[Callable[[BudgetAlert], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the ledger, load history and purge expired records.

        Args:
            store: Key-value backend for persistence. Defaults to in-memory.
            budget_limit: Spend cap per period, in USD.
            budget_period: Rolling window the cap applies to.
            retention: Records older than this are purged at startup.
            max_records: Most recent records kept when persisting.
            alert_callback: Called with a BudgetAlert when a threshold is hit.
            clock: Returns the current UTC time. Injected by tests.
        """
        self._store = store if store is not None else InMemoryStore()
        self._limit = parse_amount(budget_limit, "budget_limit")
        self._period = Period(budget_period)
        self._retention = retention
        self._max_records = max_records
        self._alert_callback = alert_callback
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        # Held across snapshot and write so an older snapshot never lands last.
        self._persist_lock = threading.RLock()
        self._records: list[UsageRecord] = []

        self._load()
        self._purge_expired()

    @property
    def budget_limit(self) -> Decimal:
        return self._limit

    @property
    def budget_period(self) -> Period:
        return self._period

    def __len__(self) -> int:
        return len(self._records)

    # =========================================================================
    # Recording
    # =========================================================================

    def record(
        self,
        cost,
        tokens: int,
        provider: str,
        model: str,
        kind: str = "explanation",
    ) -> UsageRecord:
        """
        Append a billed request.

        Args:
            cost: Cost in USD (Decimal, int, float or numeric string).
            tokens: Total tokens used.
            provider: Backend name.
            model: Model used.
            kind: Request category, e.g. "explanation".

        Returns:
            The appended UsageRecord.
        """
        amount = parse_amount(cost, "cost")
        if not isinstance(tokens, int) or tokens < 0:
            raise ValidationError(f"tokens must be a non-negative integer, got {tokens!r}")

        record = UsageRecord(
            cost=amount,
            tokens=tokens,
            provider=provider,
            model=model,
            request_kind=kind,
            timestamp=self._clock(),
        )

        with self._lock:
            self._records.append(record)

        self._persist()
        logger.info(
            "Usage recorded: %s/%s - $%.4f (%d tokens)",
            provider, model, amount, tokens,
        )
        self._check_thresholds()
        return record

    def _check_thresholds(self) -> None:
        if self._limit <= 0:
            return
        spent = self.current_period_cost()

        if spent >= self._limit:
            alert = BudgetAlert(
                level="exceeded",
                period=self._period,
                spent=spent,
                limit=self._limit,
                message=f"Budget limit (${self._limit}) reached: ${spent:.4f} spent this {self._period.value} period",
            )
            logger.warning(alert.message)
        elif spent >= self._limit * WARNING_RATIO:
            pct = int(spent / self._limit * 100)
            alert = BudgetAlert(
                level="warning",
                period=self._period,
                spent=spent,
                limit=self._limit,
                message=f"{pct}% of budget used (${spent:.2f}/${self._limit})",
            )
            logger.info(alert.message)
        else:
            return

        if self._alert_callback:
            try:
                self._alert_callback(alert)
            except Exception:
                logger.exception("Budget alert callback failed")

    # =========================================================================
    # Budget
    # =========================================================================

    def current_period_cost(self, period: Optional[Period] = None) -> Decimal:
        """Sum of costs with timestamps in [now - period, now]."""
        window = Period(period or self._period).window
        now = self._clock()
        return self._sum_since(now - window, now)

    def can_spend(self) -> bool:
        """True iff spend in the configured period is below the limit."""
        return self.current_period_cost() < self._limit

    def reconfigure(
        self,
        budget_limit=None,
        budget_period: Optional[Period] = None,
        retention: Optional[timedelta] = None,
    ) -> None:
        """Swap budget settings. A shorter retention purges immediately."""
        limit = parse_amount(budget_limit, "budget_limit") if budget_limit is not None else None
        with self._lock:
            if limit is not None:
                self._limit = limit
            if budget_period is not None:
                self._period = Period(budget_period)
            if retention is not None:
                self._retention = retention
        if retention is not None:
            self._purge_expired()

    def _sum_since(self, start: datetime, end: datetime) -> Decimal:
        with self._lock:
            records = list(self._records)
        return sum(
            (r.cost for r in records if start <= r.timestamp <= end),
            Decimal("0"),
        )

    # =========================================================================
    # Reports
    # =========================================================================

    def stats(self) -> CostStats:
        """Aggregate totals, rollups and breakdowns. Read-only."""
        with self._lock:
            records = list(self._records)
        now = self._clock()

        total_cost = sum((r.cost for r in records), Decimal("0"))
        total_tokens = sum(r.tokens for r in records)
        total_requests = len(records)

        def spend_in(period: Period) -> Decimal:
            start = now - period.window
            return sum(
                (r.cost for r in records if start <= r.timestamp <= now),
                Decimal("0"),
            )

        by_provider: dict[str, list] = defaultdict(lambda: [Decimal("0"), 0])
        by_model: dict[str, list] = defaultdict(lambda: [Decimal("0"), 0])
        for r in records:
            by_provider[r.provider][0] += r.cost
            by_provider[r.provider][1] += 1
            by_model[r.model][0] += r.cost
            by_model[r.model][1] += 1

        def ranked(groups: dict[str, list]) -> list[UsageBreakdown]:
            rows = [UsageBreakdown(name, cost, count) for name, (cost, count) in groups.items()]
            return sorted(rows, key=lambda b: b.cost, reverse=True)

        used = spend_in(self._period)
        return CostStats(
            total_cost=total_cost,
            total_tokens=total_tokens,
            total_requests=total_requests,
            average_cost_per_request=(
                total_cost / total_requests if total_requests > 0 else Decimal("0")
            ),
            average_tokens_per_request=(
                total_tokens / total_requests if total_requests > 0 else 0.0
            ),
            daily_cost=spend_in(Period.DAILY),
            weekly_cost=spend_in(Period.WEEKLY),
            monthly_cost=spend_in(Period.MONTHLY),
            budget_limit=self._limit,
            budget_period=self._period,
            budget_used=used,
            budget_remaining=max(Decimal("0"), self._limit - used),
            by_provider=ranked(by_provider),
            by_model=ranked(by_model),
        )

    def cost_breakdown(self, days: int = 30) -> list[DailyCost]:
        """Per-day spend over the last `days` days, oldest first."""
        now = self._clock()
        start = now - timedelta(days=days)
        with self._lock:
            records = [r for r in self._records if r.timestamp > start]

        daily: dict[str, list] = defaultdict(lambda: [Decimal("0"), 0])
        for r in records:
            date = r.timestamp.astimezone(timezone.utc).date().isoformat()
            daily[date][0] += r.cost
            daily[date][1] += 1

        return [
            DailyCost(date=date, cost=cost, requests=count)
            for date, (cost, count) in sorted(daily.items())
        ]

    def records(self) -> list[UsageRecord]:
        with self._lock:
            return list(self._records)

    def export_usage(self) -> str:
        """JSON document with summary and full history."""
        stats = self.stats()
        summary = {
            "total_cost": str(stats.total_cost),
            "total_tokens": stats.total_tokens,
            "total_requests": stats.total_requests,
            "daily_cost": str(stats.daily_cost),
            "weekly_cost": str(stats.weekly_cost),
            "monthly_cost": str(stats.monthly_cost),
            "budget_limit": str(stats.budget_limit),
            "budget_period": stats.budget_period.value,
            "budget_used": str(stats.budget_used),
            "budget_remaining": str(stats.budget_remaining),
            "by_provider": [
                {"provider": b.name, "cost": str(b.cost), "requests": b.requests}
                for b in stats.by_provider
            ],
            "by_model": [
                {"model": b.name, "cost": str(b.cost), "requests": b.requests}
                for b in stats.by_model
            ],
        }
        return json.dumps(
            {
                "generated_at": self._clock().isoformat(),
                "summary": summary,
                "detailed_history": [r.to_dict() for r in self.records()],
            },
            indent=2,
        )

    # =========================================================================
    # Reset & archives
    # =========================================================================

    def reset(self, mode: ResetMode = ResetMode.CLEAR) -> Optional[str]:
        """
        Reset the budget by emptying history.

        Args:
            mode: CLEAR wipes history. ARCHIVE saves it first.

        Returns:
            The archive key when archiving, else None.
        """
        mode = ResetMode(mode)
        archive_key = None
        with self._persist_lock:
            with self._lock:
                snapshot = [r.to_dict() for r in self._records]
                self._records = []

            if mode == ResetMode.ARCHIVE:
                stamp = int(self._clock().timestamp() * 1000)
                archive_key = f"{ARCHIVE_PREFIX}{stamp}"
                try:
                    self._store.set(archive_key, snapshot)
                    logger.info("Usage history archived to %s and budget reset", archive_key)
                except Exception:
                    logger.exception("Failed to archive usage history")
                    archive_key = None
            else:
                logger.info("Usage history cleared and budget reset")

            self._persist()
        return archive_key

    def list_archives(self) -> list[str]:
        try:
            return self._store.keys(ARCHIVE_PREFIX)
        except Exception:
            logger.exception("Failed to list usage archives")
            return []

    def load_archive(self, key: str) -> list[UsageRecord]:
        raw = self._store.get(key, []) or []
        return [UsageRecord.from_dict(item) for item in raw]

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load(self) -> None:
        try:
            raw = self._store.get(HISTORY_KEY, []) or []
            records = [UsageRecord.from_dict(item) for item in raw]
        except Exception:
            logger.exception("Failed to load usage history; starting empty")
            return
        with self._lock:
            self._records = records
        if records:
            logger.info("Loaded %d usage records from storage", len(records))

    def _purge_expired(self) -> None:
        cutoff = self._clock() - self._retention
        with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.timestamp > cutoff]
            removed = before - len(self._records)
        if removed:
            logger.info("Cleaned up %d usage records older than %d days", removed, self._retention.days)
            self._persist()

    def _persist(self) -> None:
        try:
            self._save()
        except LedgerError:
            logger.warning("Failed to save usage history", exc_info=True)

    def _save(self) -> None:
        with self._persist_lock:
            with self._lock:
                if len(self._records) > self._max_records:
                    self._records = self._records[-self._max_records:]
                data = [r.to_dict() for r in self._records]
            try:
                self._store.set(HISTORY_KEY, data)
            except Exception as e:
                raise LedgerError(f"usage history persistence failed: {e}") from e
