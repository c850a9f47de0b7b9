"""Tests for the usage ledger."""

import json
import threading
import time
from datetime import timedelta
from decimal import Decimal

import pytest

from codora.ledger import ARCHIVE_PREFIX, HISTORY_KEY, UsageLedger
from codora.models import UsageRecord
from codora.schemas import Period, ResetMode
from codora.storage import InMemoryStore
from codora.validation import ValidationError


class SlowFirstWriteStore(InMemoryStore):
    """Delays the first write of one key."""

    def __init__(self, slow_key, delay=0.3):
        super().__init__()
        self.slow_key = slow_key
        self.delay = delay
        self._slowed = False

    def set(self, key, value):
        if key == self.slow_key and not self._slowed:
            self._slowed = True
            time.sleep(self.delay)
        super().set(key, value)


class TestRecording:
    """Test appending usage records."""

    def setup_method(self):
        self.store = InMemoryStore()

    def test_record_returns_usage_record(self, clock):
        ledger = UsageLedger(self.store, clock=clock)

        record = ledger.record(Decimal("0.0015"), 300, "openai", "gpt-4o-mini")

        assert isinstance(record, UsageRecord)
        assert record.cost == Decimal("0.0015")
        assert record.timestamp == clock.now
        assert record.request_kind == "explanation"
        assert len(ledger) == 1

    def test_sum_is_exact(self, clock):
        ledger = UsageLedger(self.store, clock=clock)
        for _ in range(10):
            ledger.record(0.1, 10, "openai", "gpt-4o-mini")

        assert ledger.current_period_cost() == Decimal("1.0")
        assert ledger.stats().total_tokens == 100

    def test_negative_cost_rejected(self, clock):
        ledger = UsageLedger(self.store, clock=clock)
        with pytest.raises(ValidationError):
            ledger.record(Decimal("-1"), 10, "openai", "gpt-4o-mini")
        assert len(ledger) == 0

    def test_negative_tokens_rejected(self, clock):
        ledger = UsageLedger(self.store, clock=clock)
        with pytest.raises(ValidationError):
            ledger.record(Decimal("0.01"), -5, "openai", "gpt-4o-mini")

    def test_history_is_persisted(self, clock):
        ledger = UsageLedger(self.store, clock=clock)
        ledger.record(Decimal("0.25"), 100, "anthropic", "claude-3-haiku-20240307")

        raw = self.store.get(HISTORY_KEY)
        assert raw[0]["cost"] == "0.25"

        reloaded = UsageLedger(self.store, clock=clock)
        assert reloaded.current_period_cost() == Decimal("0.25")

    def test_history_capped_at_max_records(self, clock):
        ledger = UsageLedger(self.store, max_records=3, clock=clock)
        for i in range(5):
            ledger.record(Decimal(i), 1, "openai", "gpt-4o-mini")

        costs = [r.cost for r in ledger.records()]
        assert costs == [Decimal(2), Decimal(3), Decimal(4)]


class TestBudgetGate:
    """Test the rolling budget window."""

    def test_can_spend_flips_exactly_at_limit(self, clock):
        ledger = UsageLedger(budget_limit=Decimal("1.00"), clock=clock)

        ledger.record(Decimal("0.99"), 10, "openai", "gpt-4o")
        assert ledger.can_spend() is True

        ledger.record(Decimal("0.01"), 1, "openai", "gpt-4o")
        assert ledger.can_spend() is False

    def test_zero_budget_blocks_everything(self, clock):
        ledger = UsageLedger(budget_limit=0, clock=clock)
        assert ledger.can_spend() is False

    def test_window_start_is_inclusive(self, clock):
        ledger = UsageLedger(budget_period=Period.DAILY, clock=clock)
        ledger.record(Decimal("2"), 10, "openai", "gpt-4o")

        clock.advance(days=1)
        assert ledger.current_period_cost() == Decimal("2")

        clock.advance(seconds=1)
        assert ledger.current_period_cost() == Decimal("0")

    def test_windows(self, clock):
        ledger = UsageLedger(clock=clock)
        ledger.record(Decimal("1"), 1, "openai", "gpt-4o")
        clock.advance(days=3)
        ledger.record(Decimal("2"), 1, "openai", "gpt-4o")
        clock.advance(days=10)
        ledger.record(Decimal("4"), 1, "openai", "gpt-4o")

        assert ledger.current_period_cost(Period.DAILY) == Decimal("4")
        assert ledger.current_period_cost(Period.WEEKLY) == Decimal("4")
        assert ledger.current_period_cost(Period.MONTHLY) == Decimal("7")

    def test_spend_rolls_off(self, clock):
        ledger = UsageLedger(budget_limit=Decimal("1"), budget_period=Period.WEEKLY, clock=clock)
        ledger.record(Decimal("1"), 10, "openai", "gpt-4o")
        assert ledger.can_spend() is False

        clock.advance(days=8)
        assert ledger.can_spend() is True

    def test_reconfigure(self, clock):
        ledger = UsageLedger(budget_limit=Decimal("1"), clock=clock)
        ledger.record(Decimal("1"), 10, "openai", "gpt-4o")
        assert ledger.can_spend() is False

        ledger.reconfigure(budget_limit=Decimal("5"), budget_period=Period.DAILY)

        assert ledger.can_spend() is True
        assert ledger.budget_period == Period.DAILY


class TestAlerts:
    """Test threshold alerts."""

    def setup_method(self):
        self.alerts = []

    def test_warning_at_80_percent(self, clock):
        ledger = UsageLedger(budget_limit=Decimal("10"), alert_callback=self.alerts.append, clock=clock)

        ledger.record(Decimal("7.99"), 1, "openai", "gpt-4o")
        assert self.alerts == []

        ledger.record(Decimal("0.01"), 1, "openai", "gpt-4o")
        assert len(self.alerts) == 1
        assert self.alerts[0].level == "warning"

    def test_exceeded_at_limit(self, clock):
        ledger = UsageLedger(budget_limit=Decimal("1"), alert_callback=self.alerts.append, clock=clock)
        ledger.record(Decimal("1"), 1, "openai", "gpt-4o")

        assert self.alerts[-1].level == "exceeded"
        assert self.alerts[-1].spent == Decimal("1")
        assert self.alerts[-1].limit == Decimal("1")

    def test_failing_callback_does_not_break_record(self, clock):
        def boom(alert):
            raise RuntimeError("notifier down")

        ledger = UsageLedger(budget_limit=Decimal("1"), alert_callback=boom, clock=clock)
        ledger.record(Decimal("1"), 1, "openai", "gpt-4o")
        assert len(ledger) == 1


class TestReports:
    """Test stats, breakdowns and export."""

    def test_empty_stats(self, clock):
        stats = UsageLedger(clock=clock).stats()

        assert stats.total_requests == 0
        assert stats.average_cost_per_request == Decimal("0")
        assert stats.budget_remaining == Decimal("10")
        assert stats.by_provider == []

    def test_stats_breakdowns(self, clock):
        ledger = UsageLedger(budget_limit=Decimal("5"), clock=clock)
        ledger.record(Decimal("0.5"), 100, "openai", "gpt-4o-mini")
        ledger.record(Decimal("2"), 300, "anthropic", "claude-3-5-sonnet-20241022")
        ledger.record(Decimal("0.5"), 200, "openai", "gpt-4o-mini")

        stats = ledger.stats()
        assert stats.total_cost == Decimal("3")
        assert stats.total_requests == 3
        assert stats.average_cost_per_request == Decimal("1")
        assert stats.average_tokens_per_request == 200
        assert stats.budget_used == Decimal("3")
        assert stats.budget_remaining == Decimal("2")
        assert [b.name for b in stats.by_provider] == ["anthropic", "openai"]
        assert stats.by_provider[1].requests == 2
        assert stats.by_model[0].name == "claude-3-5-sonnet-20241022"

    def test_budget_remaining_never_negative(self, clock):
        ledger = UsageLedger(budget_limit=Decimal("1"), clock=clock)
        ledger.record(Decimal("3"), 1, "openai", "gpt-4o")
        assert ledger.stats().budget_remaining == Decimal("0")

    def test_cost_breakdown_by_day(self, clock):
        ledger = UsageLedger(clock=clock)
        ledger.record(Decimal("1"), 1, "openai", "gpt-4o")
        ledger.record(Decimal("2"), 1, "openai", "gpt-4o")
        clock.advance(days=1)
        ledger.record(Decimal("4"), 1, "openai", "gpt-4o")

        days = ledger.cost_breakdown(days=30)
        assert [d.date for d in days] == ["2024-06-01", "2024-06-02"]
        assert days[0].cost == Decimal("3")
        assert days[0].requests == 2

    def test_export_usage(self, clock):
        ledger = UsageLedger(clock=clock)
        ledger.record(Decimal("0.125"), 50, "openai", "gpt-4o-mini")

        data = json.loads(ledger.export_usage())
        assert data["summary"]["total_cost"] == "0.125"
        assert data["summary"]["budget_period"] == "monthly"
        assert len(data["detailed_history"]) == 1
        assert data["detailed_history"][0]["model"] == "gpt-4o-mini"


class TestResetAndRetention:
    """Test reset modes and retention purge."""

    def setup_method(self):
        self.store = InMemoryStore()

    def test_clear_reset(self, clock):
        ledger = UsageLedger(self.store, clock=clock)
        ledger.record(Decimal("1"), 1, "openai", "gpt-4o")

        assert ledger.reset(ResetMode.CLEAR) is None
        assert len(ledger) == 0
        assert ledger.list_archives() == []
        assert self.store.get(HISTORY_KEY) == []

    def test_archive_reset(self, clock):
        ledger = UsageLedger(self.store, clock=clock)
        ledger.record(Decimal("1"), 1, "openai", "gpt-4o")

        key = ledger.reset(ResetMode.ARCHIVE)

        assert key == f"{ARCHIVE_PREFIX}{int(clock.now.timestamp() * 1000)}"
        assert ledger.list_archives() == [key]
        archived = ledger.load_archive(key)
        assert archived[0].cost == Decimal("1")
        assert ledger.current_period_cost() == Decimal("0")

    def test_old_records_purged_on_load(self, clock):
        ledger = UsageLedger(self.store, clock=clock)
        ledger.record(Decimal("1"), 1, "openai", "gpt-4o")
        clock.advance(days=100)
        ledger.record(Decimal("2"), 1, "openai", "gpt-4o")

        clock.advance(days=81)
        reloaded = UsageLedger(self.store, retention=timedelta(days=180), clock=clock)

        assert [r.cost for r in reloaded.records()] == [Decimal("2")]

    def test_reconfigure_shorter_retention_purges(self, clock):
        ledger = UsageLedger(self.store, clock=clock)
        ledger.record(Decimal("1"), 1, "openai", "gpt-4o")
        clock.advance(days=20)
        ledger.record(Decimal("2"), 1, "openai", "gpt-4o")

        ledger.reconfigure(retention=timedelta(days=10))

        assert [r.cost for r in ledger.records()] == [Decimal("2")]
        assert len(self.store.get(HISTORY_KEY)) == 1


class TestConcurrentWrites:
    """Overlapping writers must not drop persisted records."""

    def test_concurrent_records_all_persisted(self, clock):
        store = SlowFirstWriteStore(HISTORY_KEY)
        ledger = UsageLedger(store, clock=clock)

        writer = threading.Thread(
            target=ledger.record, args=(Decimal("1"), 10, "openai", "gpt-4o-mini"),
        )
        writer.start()
        time.sleep(0.05)
        ledger.record(Decimal("2"), 20, "openai", "gpt-4o-mini")
        writer.join()

        reloaded = UsageLedger(store, clock=clock)
        assert len(reloaded) == 2
        assert reloaded.current_period_cost() == Decimal("3")

    def test_record_during_reset_is_kept(self, clock):
        store = InMemoryStore()
        ledger = UsageLedger(store, clock=clock)
        ledger.record(Decimal("1"), 10, "openai", "gpt-4o-mini")
        store_set = store.set
        slowed = []

        def slow_archive(key, value):
            if key.startswith(ARCHIVE_PREFIX) and not slowed:
                slowed.append(key)
                time.sleep(0.3)
            store_set(key, value)

        store.set = slow_archive
        resetter = threading.Thread(target=ledger.reset, args=(ResetMode.ARCHIVE,))
        resetter.start()
        time.sleep(0.05)
        ledger.record(Decimal("2"), 20, "openai", "gpt-4o-mini")
        resetter.join()

        reloaded = UsageLedger(store, clock=clock)
        assert [r.cost for r in reloaded.records()] == [Decimal("2")]
        assert [r.cost for r in ledger.load_archive(slowed[0])] == [Decimal("1")]
