import asyncio
import itertools

import httpx
import pytest
import respx

from stockchart.config import Settings
from stockchart.errors import CacheReadError, CacheWriteError

HISTORY_URL = "https://yahoo-finance15.p.rapidapi.com/api/v1/markets/stock/history"


def make_response(*points: tuple[int, float]) -> dict:
    """Build an upstream payload from (date_utc, close) pairs."""
    body = {}
    for date_utc, close in points:
        body[str(date_utc)] = {
            "date": "ignored",
            "date_utc": date_utc,
            "open": close - 1,
            "high": close + 2,
            "low": close - 2,
            "close": close,
            "volume": 1_000_000,
            "adjclose": close,
        }
    return {
        "meta": {"symbol": "NVDA", "currency": "USD", "processedTime": "2023-11-16T00:00:00Z"},
        "body": body,
    }


class BrokenTier:
    """Cache tier whose storage is unavailable."""

    name = "broken"

    def read(self, key):
        raise CacheReadError("tier unavailable")

    def write(self, key, payload):
        raise CacheWriteError("tier unavailable")


class RecordingSleep:
    """Stands in for asyncio.sleep; optionally holds the first call until released."""

    def __init__(self, hold_first: bool = False):
        self.calls: list[float] = []
        self.hold_first = hold_first
        self.released = None

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.hold_first and len(self.calls) == 1:
            if self.released is None:
                self.released = asyncio.Event()
            await self.released.wait()

    def release(self) -> None:
        if self.released is not None:
            self.released.set()


def advancing_clock(start: float = 1_700_200_000, step: float = 600):
    """Clock that moves past the cache duration on every read."""
    return itertools.count(start, step).__next__


@pytest.fixture
def config(monkeypatch, tmp_path) -> Settings:
    monkeypatch.setenv("RAPIDAPI_KEY", "test-key")
    monkeypatch.setenv("CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "3600")
    monkeypatch.delenv("HISTORY_URL", raising=False)
    monkeypatch.delenv("RAPIDAPI_HOST", raising=False)
    monkeypatch.delenv("STOCK_SYMBOL", raising=False)
    monkeypatch.delenv("DEFAULT_RANGE", raising=False)
    return Settings()


@pytest.fixture
def api_mock():
    with respx.mock(assert_all_called=False) as router:
        router.route(host="testserver").pass_through()
        yield router


def by_period(responses: dict[str, tuple[int, dict]]):
    """respx side effect answering (status, json) per requested period."""

    def _side_effect(request: httpx.Request) -> httpx.Response:
        status, payload = responses[request.url.params["period"]]
        return httpx.Response(status, json=payload)

    return _side_effect
