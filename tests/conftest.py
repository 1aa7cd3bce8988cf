"""Shared fixtures: fake providers, fixed clocks and chart payload builders."""

import os
from datetime import datetime
from typing import Callable, Dict, List

import pytest

os.environ.setdefault("MARKET_MOVES_LOG_FILE", "")

from market_moves.core.pacing import RequestPacer  # noqa: E402
from market_moves.models.datatypes import DailyRecord, Instrument, NewsItem, SymbolMetadata  # noqa: E402
from market_moves.pipeline.collector import BatchCollector  # noqa: E402
from market_moves.providers.base import NewsProvider, QuoteProvider  # noqa: E402

NOW = datetime(2024, 4, 15, 10, 0, 0)


def local_ts(day: str, hour: int = 12) -> int:
    """Unix timestamp of ``day`` at ``hour`` local time."""
    return int(datetime.strptime(day, "%Y-%m-%d").replace(hour=hour).timestamp())


def chart_payload(rows: List[tuple]) -> Dict:
    """Chart endpoint payload from ``(date, close)`` rows."""
    return {
        "chart": {
            "result": [
                {
                    "timestamp": [local_ts(day) for day, _ in rows],
                    "indicators": {
                        "quote": [
                            {
                                "close": [close for _, close in rows],
                                "open": [close for _, close in rows],
                            }
                        ]
                    },
                }
            ],
            "error": None,
        }
    }


def records(rows: List[tuple]) -> List[DailyRecord]:
    return [DailyRecord(date=day, close=close) for day, close in rows]


class FakeQuotes(QuoteProvider):
    """In-memory quote provider. Values are record lists or exceptions to raise."""

    def __init__(self, series: Dict[str, object]) -> None:
        self.series = series
        self.calls: List[tuple] = []

    async def fetch_series(self, symbol, start, end):
        self.calls.append((symbol, start, end))
        value = self.series.get(symbol, [])
        if isinstance(value, Exception):
            raise value
        return list(value)


class FakeNews(NewsProvider):
    def __init__(self, items: List[NewsItem]) -> None:
        self.items = items
        self.calls: List[tuple] = []

    async def fetch_market_news(self, from_date, to_date):
        self.calls.append((from_date, to_date))
        return list(self.items)

    async def fetch_symbol_news(self, symbol, from_date, to_date):
        return []


class FakeSymbols:
    """Stand-in for SymbolDirectory that confirms every symbol."""

    def __init__(self) -> None:
        self.validated: List[str] = []

    async def validate(self, symbol):
        self.validated.append(symbol)
        return SymbolMetadata(symbol=symbol.upper(), short_name=f"{symbol.upper()} Inc.", long_name=f"{symbol.upper()} Incorporated")

    async def search(self, query):
        return []


@pytest.fixture
def instruments() -> List[Instrument]:
    return [
        Instrument(id="sp500", name="S&P 500", symbol="^GSPC", unit="pt", news_symbol="SPY"),
        Instrument(id="kospi", name="KOSPI Composite", symbol="^KS11", unit="pt"),
        Instrument(id="nvidia", name="NVIDIA", symbol="NVDA", unit="USD", news_symbol="NVDA"),
    ]


@pytest.fixture
def no_sleep() -> Callable:
    """Async sleep replacement that records requested delays."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def make_collector(no_sleep) -> Callable[[QuoteProvider], BatchCollector]:
    def factory(quotes: QuoteProvider) -> BatchCollector:
        return BatchCollector(quotes, RequestPacer(0.5, sleep=no_sleep))
    return factory
