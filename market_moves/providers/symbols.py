"""Symbol search and validation.

Search pipeline for a free-text query:
  1. Yahoo Finance search endpoint with the raw query
  2. Known Korean name → English name / ticker fallbacks
  3. Korean → English machine translation (MyMemory), then search again

Validation confirms a symbol has recent daily data and resolves its display
names through yfinance.
"""

import asyncio
import json
import re
from typing import Any, Callable, Dict, List, Optional

import httpx
import yfinance as yf

from market_moves.core.errors import SymbolLookupError
from market_moves.core.logger import logger
from market_moves.models.datatypes import SymbolMetadata, SymbolSuggestion
from market_moves.providers.market import USER_AGENT

SEARCH_URL = "https://query1.finance.yahoo.com/v1/finance/search"
TRANSLATE_URL = "https://api.mymemory.translated.net/get"
MAX_SEARCH_BYTES = 512 * 1024
MIN_QUERY_LENGTH = 2

_HANGUL_RE = re.compile(r"[\uac00-\ud7a3]")
_INVISIBLE_RE = re.compile(r"[\u200b-\u200f\ufeff]")

# Normalized Korean name -> search terms tried in order
SEARCH_FALLBACK_KO: Dict[str, List[str]] = {
    "삼성전자": ["Samsung Electronics", "005930.KS"],
    "삼성": ["Samsung Electronics", "Samsung"],
    "현대자동차": ["Hyundai Motor", "005380.KS"],
    "현대차": ["Hyundai Motor", "005380.KS"],
    "sk하이닉스": ["SK Hynix", "000660.KS"],
    "엔비디아": ["NVIDIA"],
    "앤비디아": ["NVIDIA"],
    "애플": ["Apple", "AAPL"],
    "테슬라": ["Tesla", "TSLA"],
    "네이버": ["Naver", "035420.KS"],
    "카카오": ["Kakao", "035720.KS"],
    "기아": ["Kia", "000270.KS"],
    "lg에너지솔루션": ["LG Energy Solution"],
    "삼성바이오로직스": ["Samsung Biologics"],
    "kb금융": ["KB Financial"],
    "신한지주": ["Shinhan Financial"],
    "포스코홀딩스": ["POSCO Holdings"],
    "셀트리온": ["Celltrion"],
    "한국전력": ["Korea Electric Power"],
    "lg전자": ["LG Electronics"],
    "팔란티어": ["Palantir", "PLTR"],
}

# Substring -> search terms, used when no exact fallback key matches
_CONTAINS_FALLBACK_KO = [
    ("삼성전자", ["Samsung Electronics", "005930.KS"]),
    ("현대차", ["Hyundai Motor", "005380.KS"]),
    ("현대자동차", ["Hyundai Motor", "005380.KS"]),
    ("네이버", ["Naver", "035420.KS"]),
    ("카카오", ["Kakao", "035720.KS"]),
    ("엔비디아", ["NVIDIA"]),
    ("애플", ["Apple", "AAPL"]),
    ("테슬라", ["Tesla", "TSLA"]),
    ("알파벳", ["Alphabet", "GOOGL"]),
    ("마이크로소프트", ["Microsoft", "MSFT"]),
    ("아마존", ["Amazon", "AMZN"]),
    ("팔란티어", ["Palantir", "PLTR"]),
]


def normalize_query(query: Any) -> str:
    """Strip invisible characters and surrounding whitespace."""
    if not isinstance(query, str):
        return ""
    return _INVISIBLE_RE.sub("", query).strip()


def has_hangul(text: str) -> bool:
    return bool(_HANGUL_RE.search(text or ""))


def fallback_terms(query: str) -> List[str]:
    """Return alternative search terms for a (Korean) query, exact match first."""
    key = re.sub(r"\s+", "", query or "").lower()
    if not key:
        return []
    if key in SEARCH_FALLBACK_KO:
        return list(SEARCH_FALLBACK_KO[key])
    terms: List[str] = []
    for fragment, candidates in _CONTAINS_FALLBACK_KO:
        if fragment in key:
            terms.extend(t for t in candidates if t not in terms)
    return terms


def load_chart_metadata(symbol: str) -> SymbolMetadata:
    """Blocking yfinance lookup: confirm recent data exists and resolve names.

    Raises:
        SymbolLookupError: If yfinance has no recent daily data for the symbol.
    """
    ticker = yf.Ticker(symbol)
    hist = ticker.history(period="5d", interval="1d", timeout=10)
    if hist is None or hist.empty:
        raise SymbolLookupError(f"No data found for symbol: {symbol}")
    meta = ticker.history_metadata or {}
    short_name = meta.get("shortName") or meta.get("longName") or symbol
    long_name = meta.get("longName") or meta.get("shortName") or symbol
    return SymbolMetadata(symbol=meta.get("symbol") or symbol, short_name=short_name, long_name=long_name)


class SymbolDirectory:
    """Symbol search and validation against the quote provider.

    Args:
        client: Shared ``httpx.AsyncClient`` (created if not provided).
        metadata_loader: Blocking ``symbol -> SymbolMetadata`` lookup, run in a
            worker thread. Defaults to :func:`load_chart_metadata`.
        search_timeout: Timeout for search requests in seconds.
        translate_timeout: Timeout for translation requests in seconds.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        metadata_loader: Callable[[str], SymbolMetadata] = load_chart_metadata,
        search_timeout: float = 10.0,
        translate_timeout: float = 6.0,
    ) -> None:
        self.client = client or httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
        self._metadata_loader = metadata_loader
        self.search_timeout = search_timeout
        self.translate_timeout = translate_timeout

    async def search(self, query: str) -> List[SymbolSuggestion]:
        """Search symbols by name or code. Never raises; returns [] when nothing matches."""
        q = normalize_query(query)
        if len(q) < MIN_QUERY_LENGTH:
            return []

        suggestions = await self._search_once(q)
        if suggestions:
            return suggestions

        for term in fallback_terms(q):
            suggestions = await self._search_once(term)
            if suggestions:
                return suggestions

        if has_hangul(q):
            translated = await self.translate_ko_to_en(q)
            if translated:
                suggestions = await self._search_once(translated)
        return suggestions

    async def validate(self, symbol: str) -> SymbolMetadata:
        """Confirm ``symbol`` exists upstream and return its metadata.

        Raises:
            SymbolLookupError: If the symbol is empty or unknown upstream.
        """
        sym = normalize_query(symbol).upper()
        if not sym:
            raise SymbolLookupError("Symbol is required")
        try:
            return await asyncio.to_thread(self._metadata_loader, sym)
        except SymbolLookupError:
            raise
        except Exception as exc:
            logger.warning(f"SymbolDirectory: metadata lookup failed for {sym}: {exc}")
            raise SymbolLookupError(f"Could not verify symbol {sym}: {exc}") from exc

    async def translate_ko_to_en(self, text: str) -> Optional[str]:
        """Translate Korean text to English. Returns None on failure or no-op."""
        t = (text or "").strip()
        if not t or not has_hangul(t):
            return None
        try:
            resp = await self.client.get(
                TRANSLATE_URL,
                params={"q": t, "langpair": "ko|en"},
                timeout=self.translate_timeout,
            )
            resp.raise_for_status()
            translated = (resp.json().get("responseData") or {}).get("translatedText")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning(f"SymbolDirectory: translation failed for {t!r}: {exc}")
            return None
        if isinstance(translated, str) and translated.strip() and translated.strip() != t:
            return translated.strip()
        return None

    async def _search_once(self, query: str) -> List[SymbolSuggestion]:
        try:
            return await self._fetch_search(query)
        except (httpx.HTTPError, SymbolLookupError) as exc:
            logger.warning(f"SymbolDirectory: search failed for {query!r}: {exc}")
            return []

    async def _fetch_search(self, query: str) -> List[SymbolSuggestion]:
        params = {"q": query, "quotesCount": 15, "newsCount": 0}
        async with self.client.stream("GET", SEARCH_URL, params=params, timeout=self.search_timeout) as resp:
            if resp.status_code != 200:
                raise SymbolLookupError(f"HTTP {resp.status_code}")
            body = bytearray()
            async for chunk in resp.aiter_bytes():
                body.extend(chunk)
                if len(body) > MAX_SEARCH_BYTES:
                    raise SymbolLookupError("Search response too large")

        try:
            payload = json.loads(body)
        except ValueError:
            return []

        quotes = payload.get("quotes") if isinstance(payload, dict) else None
        suggestions = []
        for item in quotes or []:
            if not isinstance(item, dict):
                continue
            name = item.get("shortname") or item.get("longname")
            if not item.get("symbol") or not name:
                continue
            suggestions.append(
                SymbolSuggestion(
                    symbol=item["symbol"],
                    name=str(name).strip(),
                    exchange=item.get("exchDisp") or item.get("exchangeDisp") or item.get("exchange") or "",
                )
            )
        return suggestions

    async def aclose(self) -> None:
        await self.client.aclose()
