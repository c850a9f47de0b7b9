"""Tests for the command-line interface."""

import json
import logging
from decimal import Decimal

from codora.cli import main
from codora.config import BudgetConfig, GatewayConfig
from codora.gateway import Gateway
from codora.providers import MockProvider
from codora.schemas import Tier
from codora.storage import InMemoryStore


class TestCLI:
    """Commands run against a gateway with mock providers."""

    def setup_method(self):
        self.provider = MockProvider("It adds two numbers.", cost=Decimal("0.002"))
        self.gateway = Gateway(
            GatewayConfig(budget=BudgetConfig(limit=Decimal("1"))),
            providers={Tier.ECONOMY: self.provider},
            store=InMemoryStore(),
        )

    def teardown_method(self):
        logger = logging.getLogger("codora")
        for handler in list(logger.handlers):
            if getattr(handler, "_codora", False):
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)

    def run(self, *argv):
        return main(list(argv), gateway=self.gateway)

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_explain(self, capsys):
        assert self.run("explain", "def add(a, b): return a + b", "-l", "python", "-c", "function") == 0
        assert "It adds two numbers." in capsys.readouterr().out
        assert self.provider.call_count == 1

    def test_explain_from_file(self, tmp_path, capsys):
        source = tmp_path / "utils.py"
        source.write_text("def add(a, b):\n    return a + b\n")

        assert self.run("--verbose", "explain", "--file", str(source), "-l", "python") == 0

        out = capsys.readouterr().out
        assert "Tier: economy" in out
        assert "Cost: $0.002000" in out

    def test_explain_budget_exceeded(self, capsys):
        self.gateway.ledger.record(Decimal("1"), 1, "openai", "gpt-4o")

        assert self.run("explain", "x = 1") == 1
        assert "budget exceeded" in capsys.readouterr().err

    def test_plan(self, capsys):
        assert self.run("plan", "x = 1", "-l", "python") == 0
        out = capsys.readouterr().out
        assert "Tier: economy" in out
        assert self.provider.call_count == 0

    def test_usage(self, capsys):
        self.run("explain", "x = 1")
        capsys.readouterr()

        assert self.run("usage", "--days", "7") == 0

        out = capsys.readouterr().out
        assert "Total Requests: 1" in out
        assert "BY PROVIDER" in out
        assert "DAILY" in out

    def test_cache_stats_and_clear(self, capsys):
        self.run("explain", "x = 1")
        capsys.readouterr()

        self.run("cache")
        assert "Entries: 1" in capsys.readouterr().out

        self.run("cache", "clear")
        assert len(self.gateway.cache) == 0

    def test_budget_reset_archive(self, capsys):
        self.run("explain", "x = 1")
        capsys.readouterr()

        assert self.run("budget", "reset", "--archive") == 0

        assert "archived to codora.usageArchive." in capsys.readouterr().out
        assert len(self.gateway.ledger) == 0

    def test_providers(self, capsys):
        self.run("providers")
        assert "ready" in capsys.readouterr().out

    def test_export(self, tmp_path):
        self.run("explain", "x = 1")
        output = tmp_path / "usage.json"

        assert self.run("export", "-o", str(output)) == 0

        data = json.loads(output.read_text())
        assert data["summary"]["total_requests"] == 1
