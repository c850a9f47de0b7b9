"""Shared fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from codora.pricing import reset_pricing


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _clean_pricing(monkeypatch):
    monkeypatch.delenv("CODORA_PRICING_JSON", raising=False)
    reset_pricing()
    yield
    reset_pricing()


WORKER_CLASS = "\n".join([
    "class Worker extends Base {",
    "  async run(items) {",
    "    try {",
    "      for await (const item of items) {",
    "        if (item.ok) { if (item.deep) { if (item.deeper) { await this.handle(item); } } }",
    "        else if (item.retry) { switch (item.kind) { case 'a': break; case 'b': break; } }",
    "      }",
    "    } catch (err) {",
    "      this.log(err);",
    "    }",
    "  }",
    "}",
])


@pytest.fixture
def complex_code():
    """TypeScript that scores well above the default premium threshold."""
    return "\n\n".join([WORKER_CLASS] * 4)
