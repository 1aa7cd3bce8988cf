"""Market data integration via the Yahoo Finance chart endpoint."""

import json
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

import httpx

from market_moves.core.cache import TTLCache
from market_moves.core.errors import (
    DisallowedSymbol,
    MalformedResponse,
    RateLimited,
    ResponseTooLarge,
    Timeout,
    UpstreamHttpError,
    UpstreamUnavailable,
)
from market_moves.core.logger import logger
from market_moves.core.news_utils import timestamp_to_date
from market_moves.core.retry import with_retries
from market_moves.models.datatypes import DATE_FMT, DailyRecord
from market_moves.pipeline.validator import sanitize_date, sanitize_number
from market_moves.providers.base import QuoteProvider

CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MAX_RESPONSE_BYTES = 5 * 1024 * 1024
RATE_LIMIT_MARKER = b"Too Many Requests"
ONE_DAY_SECONDS = 86400
DEFAULT_CACHE_TTL = 60 * 60


class YahooChartProvider(QuoteProvider):
    """Yahoo Finance chart implementation of :class:`QuoteProvider`.

    Only symbols of the effective instrument list may be requested; the list is
    re-read through ``allowed_symbols`` on every call so runtime overrides apply
    immediately.

    Args:
        allowed_symbols: Returns the currently permitted provider symbols.
        client: Shared ``httpx.AsyncClient`` (created if not provided).
        cache: Result cache (1 hour TTL cache created if not provided).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        allowed_symbols: Callable[[], Iterable[str]],
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[TTLCache] = None,
        timeout: float = 15.0,
    ) -> None:
        self._allowed_symbols = allowed_symbols
        self.client = client or httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        self.cache = cache or TTLCache(DEFAULT_CACHE_TTL)
        self.timeout = timeout

    async def fetch_series(self, symbol: str, start: datetime, end: datetime) -> List[DailyRecord]:
        """
        Fetch the daily close series of ``symbol`` between ``start`` and ``end``.

        Args:
            symbol (str): Provider symbol, e.g. ``"^GSPC"``.
            start (datetime): Start of the range (local time).
            end (datetime): End of the range (local time).

        Returns:
            List[DailyRecord]: Records sorted by date; empty when the provider
            has no series for the symbol.

        Raises:
            DisallowedSymbol: If the symbol is not in the effective whitelist.
            FetchExhausted: If every retry attempt failed.
        """
        if symbol not in set(self._allowed_symbols()):
            raise DisallowedSymbol(symbol)

        cache_key = (symbol, start.strftime(DATE_FMT), end.strftime(DATE_FMT))
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Quote cache hit for {symbol} {cache_key[1]}..{cache_key[2]}")
            return list(cached)

        period1 = int(start.timestamp())
        period2 = int(end.timestamp())
        if period2 <= period1:
            period2 = period1 + ONE_DAY_SECONDS

        logger.info(f"Fetching chart for {symbol} from {cache_key[1]} to {cache_key[2]}")
        records = await self._fetch_chart(symbol, period1, period2)
        if not records:
            logger.warning(f"No series returned for {symbol}")

        self.cache.set(cache_key, records)
        return list(records)

    @with_retries(max_attempts=3, backoff_step=2.0)
    async def _fetch_chart(self, symbol: str, period1: int, period2: int) -> List[DailyRecord]:
        """One download-and-parse attempt; retried by the decorator."""
        url = CHART_URL.format(symbol=quote(symbol, safe=""))
        params = {"period1": period1, "period2": period2, "interval": "1d", "events": ""}
        status, body = await self._download(url, params)

        if status == 429 or RATE_LIMIT_MARKER in body:
            raise RateLimited("RATE_LIMITED")
        if status != 200:
            raise UpstreamHttpError(status)

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise MalformedResponse("Malformed provider response") from exc

        return parse_chart(payload)

    async def _download(self, url: str, params: Dict[str, Any]) -> tuple[int, bytes]:
        """Stream the response body, aborting once it exceeds ``MAX_RESPONSE_BYTES``."""
        try:
            async with self.client.stream("GET", url, params=params, timeout=self.timeout) as resp:
                body = bytearray()
                async for chunk in resp.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > MAX_RESPONSE_BYTES:
                        raise ResponseTooLarge(f"Response exceeded {MAX_RESPONSE_BYTES} bytes")
                return resp.status_code, bytes(body)
        except httpx.TimeoutException as exc:
            raise Timeout("TIMEOUT") from exc
        except httpx.TransportError as exc:
            raise UpstreamUnavailable(str(exc) or "Network error") from exc

    async def aclose(self) -> None:
        await self.client.aclose()


def parse_chart(payload: Any) -> List[DailyRecord]:
    """Convert a chart payload into date-sorted records.

    Entries whose timestamp or close cannot be sanitized are dropped. A payload
    without a result or timestamp array is a legitimate empty series. When two
    timestamps fall on the same local date the later one wins.
    """
    chart = _first(_get(_get(payload, "chart"), "result"))
    timestamps = _get(chart, "timestamp")
    if not isinstance(timestamps, list):
        return []

    quote_block = _first(_get(_get(chart, "indicators"), "quote")) or {}
    closes = _column(quote_block, "close")
    opens = _column(quote_block, "open")
    highs = _column(quote_block, "high")
    lows = _column(quote_block, "low")
    volumes = _column(quote_block, "volume")

    by_date: Dict[str, DailyRecord] = {}
    for i, ts in enumerate(timestamps):
        date_str = sanitize_date(timestamp_to_date(ts))
        if date_str is None:
            continue
        close = sanitize_number(_at(closes, i))
        if close is None:
            continue
        by_date[date_str] = DailyRecord(
            date=date_str,
            close=close,
            open=sanitize_number(_at(opens, i)),
            high=sanitize_number(_at(highs, i)),
            low=sanitize_number(_at(lows, i)),
            volume=sanitize_number(_at(volumes, i)),
        )

    return [by_date[d] for d in sorted(by_date)]


def _get(obj: Any, key: str) -> Any:
    return obj.get(key) if isinstance(obj, dict) else None


def _first(obj: Any) -> Any:
    return obj[0] if isinstance(obj, list) and obj else None


def _column(block: Any, key: str) -> List[Any]:
    values = _get(block, key)
    return values if isinstance(values, list) else []


def _at(values: List[Any], index: int) -> Any:
    return values[index] if index < len(values) else None
