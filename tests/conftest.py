import asyncio
import inspect
import pathlib
import sys
from datetime import date
from decimal import Decimal

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from transfer_indexer.providers.price_feed import DailyQuote  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class StubProvider:
    """In-memory price provider that records every call."""

    def __init__(
        self,
        quotes: dict[date, Decimal] | None = None,
        candles: list[DailyQuote] | None = None,
    ) -> None:
        self.quotes = dict(quotes or {})
        self.candles = list(candles or [])
        self.errors: list[Exception] = []
        self.quote_calls: list[date] = []
        self.range_calls = 0
        self.delay = 0.0

    async def quote(self, asset: str, day: date) -> Decimal | None:
        self.quote_calls.append(day)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        return self.quotes.get(day)

    async def daily_quotes(self, market: str) -> list[DailyQuote]:
        self.range_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        return list(self.candles)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.slept: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.now += seconds


@pytest.fixture()
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()
