"""News feed provider backed by Finnhub.

Lookup order for market news over a window:
  1. General market news (``/news?category=general``), filtered to the window
  2. Company news for each bellwether symbol, concatenated and deduplicated
  3. Empty list

Every provider problem (missing key, HTTP error, timeout, error-shaped JSON)
degrades to an empty list. Callers treat "no news" as a normal outcome.
"""

from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from market_moves.core.cache import TTLCache
from market_moves.core.logger import logger
from market_moves.core.news_utils import cap_window, clean_headline, dedupe_news, timestamp_to_date
from market_moves.models.datatypes import NewsItem
from market_moves.providers.base import NewsProvider

FINNHUB_BASE_URL = "https://finnhub.io/api/v1"
DEFAULT_BELLWETHERS = ("SPY", "AAPL", "MSFT", "NVDA")
DEFAULT_CACHE_TTL = 30 * 60


class FinnhubNewsProvider(NewsProvider):
    """Finnhub general-news and company-news provider.

    Args:
        api_key: Finnhub token. Empty disables the provider silently.
        client: Shared ``httpx.AsyncClient`` (created if not provided).
        cache: Result cache (30 minute TTL cache created if not provided).
        bellwethers: Symbols queried when general news is empty.
        timeout: Per-request timeout in seconds.
        today: Returns the current date; the window never extends past it.
    """

    def __init__(
        self,
        api_key: str,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[TTLCache] = None,
        bellwethers: Sequence[str] = DEFAULT_BELLWETHERS,
        timeout: float = 10.0,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.api_key = api_key
        self.client = client or httpx.AsyncClient()
        self.cache = cache or TTLCache(DEFAULT_CACHE_TTL)
        self.bellwethers = list(bellwethers)
        self.timeout = timeout
        self._today = today

    async def fetch_market_news(self, from_date: str, to_date: str) -> List[NewsItem]:
        """Return deduplicated market headlines for a ``YYYY-MM-DD`` window.

        Falls back to bellwether company news when the general feed has nothing
        inside the window.
        """
        if not self.api_key:
            logger.debug("FinnhubNewsProvider: no API key configured, skipping news")
            return []

        from_date, to_date = cap_window(from_date, to_date, self._today())
        cache_key = ("market", from_date, to_date)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return list(cached)

        raw = await self._call_api("/news", {"category": "general"}, scope="market")
        items = []
        if raw is not None:
            items = [
                item for item in _parse_items(raw)
                if from_date <= item.date <= to_date
            ]

        if not items:
            logger.info(
                f"FinnhubNewsProvider: no market news for {from_date}..{to_date}, "
                f"falling back to {self.bellwethers}"
            )
            for symbol in self.bellwethers:
                items.extend(await self.fetch_symbol_news(symbol, from_date, to_date))

        items = dedupe_news(items)
        if raw is not None or items:
            self.cache.set(cache_key, items)
        logger.info(f"FinnhubNewsProvider: {len(items)} market headlines for {from_date}..{to_date}")
        return list(items)

    async def fetch_symbol_news(self, symbol: str, from_date: str, to_date: str) -> List[NewsItem]:
        """Return company headlines for ``symbol`` in a ``YYYY-MM-DD`` window."""
        if not self.api_key:
            return []

        from_date, to_date = cap_window(from_date, to_date, self._today())
        cache_key = (f"symbol:{symbol}", from_date, to_date)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return list(cached)

        raw = await self._call_api(
            "/company-news",
            {"symbol": symbol, "from": from_date, "to": to_date},
            scope=symbol,
        )
        if raw is None:
            return []

        items = dedupe_news(_parse_items(raw))
        self.cache.set(cache_key, items)
        return list(items)

    async def _call_api(self, path: str, params: Dict[str, Any], scope: str) -> Optional[List[Any]]:
        """GET a Finnhub endpoint. Returns the item list, or None on any failure."""
        query = dict(params, token=self.api_key)
        try:
            resp = await self.client.get(f"{FINNHUB_BASE_URL}{path}", params=query, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.error(f"FinnhubNewsProvider: request failed for {scope}: {exc!r}")
            return None

        if resp.status_code != 200:
            logger.error(
                f"FinnhubNewsProvider: HTTP {resp.status_code} for {scope}: {resp.text[:200]}"
            )
            return None

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.error(f"FinnhubNewsProvider: malformed JSON for {scope}: {exc}")
            return None

        if not isinstance(payload, list):
            logger.warning(f"FinnhubNewsProvider: unexpected payload for {scope}: {str(payload)[:200]}")
            return None
        return payload


def _parse_items(raw: List[Any]) -> List[NewsItem]:
    """Normalize Finnhub articles, skipping entries without headline or timestamp."""
    items = []
    for article in raw:
        if not isinstance(article, dict):
            continue
        headline = clean_headline(article.get("headline"))
        day = timestamp_to_date(article.get("datetime"))
        if not headline or day is None:
            continue
        items.append(NewsItem(date=day, headline=headline))
    return items
