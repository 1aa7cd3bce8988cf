"""Market data service: the operations exposed to the presentation layer.

Flow for a period request (year, month):
  1. Validate the period (fails fast, no network)
  2. Snapshot store lookup; a hit without refresh returns immediately
  3. BatchCollector over the effective instruments for the month window
  4. Filter each series to the window, then put (new) or merge (refresh)
  5. For event queries: market news for the widened window → detect_events

Per-instrument fetch failures never abort a request; they are returned in the
``failures`` list of an otherwise successful envelope.
"""

import calendar
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from market_moves.core.cache import TTLCache
from market_moves.core.config import get_news_api_key, load_instruments
from market_moves.core.errors import DisallowedSymbol, UnknownInstrument
from market_moves.core.logger import logger
from market_moves.core.pacing import RequestPacer
from market_moves.models.datatypes import (
    DATE_FMT,
    ChartResult,
    DailyRecord,
    DateWindow,
    EventsResult,
    Instrument,
    MonthlyResult,
    RecentResult,
    SymbolMetadata,
    SymbolSuggestion,
)
from market_moves.pipeline.collector import BatchCollector
from market_moves.pipeline.events import DEFAULT_MAX_DISTANCE_DAYS, DEFAULT_THRESHOLD_PCT, detect_events
from market_moves.pipeline.validator import clamp_days, sanitize_date, validate_period
from market_moves.providers.base import NewsProvider, QuoteProvider
from market_moves.providers.market import YahooChartProvider
from market_moves.providers.news import DEFAULT_BELLWETHERS, FinnhubNewsProvider
from market_moves.providers.symbols import SymbolDirectory
from market_moves.storage.overrides import OverrideStore, effective_instruments
from market_moves.storage.snapshots import SnapshotStore

CACHE_FILENAME = "daily-cache.json"
OVERRIDES_FILENAME = "symbol-overrides.json"


class MarketDataService:
    """Owns the stores and providers and exposes the period/event/instrument operations.

    Args:
        base_instruments: Instruments from configuration.
        snapshots: Monthly snapshot store.
        overrides: Symbol override store.
        quotes: Quote provider (Yahoo chart provider if not provided).
        news: News provider (Finnhub without API key if not provided).
        symbols: Symbol directory (created if not provided).
        collector: Batch collector (built on ``quotes`` if not provided).
        clock: Returns the current local time.
        request_spacing: Seconds between instrument fetches.
        event_threshold: Minimum absolute % change for an event.
        news_window_days: Max distance between an event and its headline.
        quote_timeout: Per-request quote timeout in seconds.
        quote_cache_ttl: Lifetime of cached quote series in seconds.
    """

    def __init__(
        self,
        base_instruments: List[Instrument],
        snapshots: SnapshotStore,
        overrides: OverrideStore,
        quotes: Optional[QuoteProvider] = None,
        news: Optional[NewsProvider] = None,
        symbols: Optional[SymbolDirectory] = None,
        collector: Optional[BatchCollector] = None,
        clock: Callable[[], datetime] = datetime.now,
        request_spacing: float = 0.5,
        event_threshold: float = DEFAULT_THRESHOLD_PCT,
        news_window_days: int = DEFAULT_MAX_DISTANCE_DAYS,
        quote_timeout: float = 15.0,
        quote_cache_ttl: float = 60 * 60,
    ) -> None:
        self.base_instruments = list(base_instruments)
        self.snapshots = snapshots
        self.overrides = overrides
        self.quotes = quotes or YahooChartProvider(
            allowed_symbols=self.allowed_symbols,
            cache=TTLCache(quote_cache_ttl),
            timeout=quote_timeout,
        )
        self.news = news or FinnhubNewsProvider(api_key="")
        self.symbols = symbols or SymbolDirectory()
        self.collector = collector or BatchCollector(self.quotes, RequestPacer(request_spacing))
        self._clock = clock
        self.event_threshold = event_threshold
        self.news_window_days = news_window_days

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "MarketDataService":
        """Build a service from a parsed ``config.yaml`` and the environment."""
        data_dir = Path(config.get("data_dir", "data"))
        quotes_cfg = config.get("quotes") or {}
        news_cfg = config.get("news") or {}
        events_cfg = config.get("events") or {}

        news = FinnhubNewsProvider(
            api_key=get_news_api_key(),
            cache=TTLCache(news_cfg.get("cache_ttl_seconds", 30 * 60)),
            bellwethers=news_cfg.get("bellwether_symbols") or DEFAULT_BELLWETHERS,
            timeout=news_cfg.get("timeout_seconds", 10.0),
        )
        return cls(
            base_instruments=load_instruments(config),
            snapshots=SnapshotStore(data_dir / CACHE_FILENAME),
            overrides=OverrideStore(data_dir / OVERRIDES_FILENAME),
            news=news,
            request_spacing=quotes_cfg.get("request_spacing_seconds", 0.5),
            event_threshold=events_cfg.get("threshold_pct", DEFAULT_THRESHOLD_PCT),
            news_window_days=news_cfg.get("correlation_window_days", DEFAULT_MAX_DISTANCE_DAYS),
            quote_timeout=quotes_cfg.get("timeout_seconds", 15.0),
            quote_cache_ttl=quotes_cfg.get("cache_ttl_seconds", 60 * 60),
        )

    # ── lifecycle ─────────────────────────────────────────────────────────────

    def load(self) -> None:
        """Load persisted snapshots and overrides. Call once at startup."""
        self.snapshots.load()
        self.overrides.load()

    async def aclose(self) -> None:
        """Flush pending snapshot writes and close provider connections."""
        self.snapshots.flush()
        for provider in (self.quotes, self.news, self.symbols):
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()

    # ── instruments ───────────────────────────────────────────────────────────

    def list_instruments(self) -> List[Instrument]:
        return effective_instruments(self.base_instruments, self.overrides.as_dict())

    def allowed_symbols(self) -> Set[str]:
        return {item.symbol for item in self.list_instruments()}

    async def override_instrument(self, instrument_id: str, symbol: str, name: Optional[str] = None) -> List[Instrument]:
        """Point an instrument at another provider symbol after validating it upstream.

        Raises:
            UnknownInstrument: If ``instrument_id`` is not a base instrument.
            SymbolLookupError: If the symbol cannot be confirmed upstream.
        """
        self._require_base(instrument_id)
        meta = await self.symbols.validate(symbol)
        display = (name or "").strip() or meta.short_name or meta.long_name or meta.symbol
        self.overrides.set(instrument_id, meta.symbol, display)
        logger.info(f"MarketDataService: {instrument_id} now tracks {meta.symbol} ({display})")
        return self.list_instruments()

    def restore_instrument(self, instrument_id: str) -> List[Instrument]:
        """Remove an override, restoring the configured symbol."""
        self._require_base(instrument_id)
        if self.overrides.remove(instrument_id):
            logger.info(f"MarketDataService: {instrument_id} restored to its configured symbol")
        return self.list_instruments()

    async def search_symbols(self, query: str) -> List[SymbolSuggestion]:
        return await self.symbols.search(query)

    async def validate_symbol(self, symbol: str) -> SymbolMetadata:
        return await self.symbols.validate(symbol)

    # ── periods ───────────────────────────────────────────────────────────────

    async def get_monthly_data(self, year: Any, month: Any, force_refresh: bool = False) -> MonthlyResult:
        """Return a period's series from the store, fetching when missing or forced.

        Raises:
            InvalidPeriod: Before any network activity, for out-of-range input.
        """
        year, month = validate_period(year, month)
        cached = self.snapshots.get(year, month)
        if cached is not None and not force_refresh:
            logger.info(f"MarketDataService: snapshot hit for {cached.key}")
            return MonthlyResult(
                year=year,
                month=month,
                data={k: list(v) for k, v in cached.data.items()},
                failures=[],
                instruments=self.list_instruments(),
                from_cache=True,
                updated_at=cached.updated_at or None,
            )

        window = month_window(year, month, self._clock())
        instruments = self.list_instruments()
        raw, failures = await self.collector.fetch_all(instruments, window.start, window.end)
        results = {instrument_id: filter_to_window(records, window) for instrument_id, records in raw.items()}

        if force_refresh and cached is not None:
            snapshot = self.snapshots.merge(year, month, results)
        else:
            snapshot = self.snapshots.put(year, month, results)

        logger.info(
            f"MarketDataService: stored {snapshot.key} "
            f"({'merged' if force_refresh and cached is not None else 'fresh'}, {len(failures)} failures)"
        )
        return MonthlyResult(
            year=year,
            month=month,
            data={k: list(v) for k, v in snapshot.data.items()},
            failures=failures,
            instruments=instruments,
            updated_at=snapshot.updated_at,
        )

    async def refresh_monthly_data(self, year: Any, month: Any) -> MonthlyResult:
        return await self.get_monthly_data(year, month, force_refresh=True)

    async def get_events(self, year: Any, month: Any, force_refresh: bool = False) -> EventsResult:
        """Detect notable moves of a period and pair them with headlines.

        Without any news (for example when no API key is configured) the result
        is an empty event set, not an error.
        """
        monthly = await self.get_monthly_data(year, month, force_refresh=force_refresh)
        window = month_window(monthly.year, monthly.month, self._clock())

        news_from = (window.start - timedelta(days=self.news_window_days)).strftime(DATE_FMT)
        news_to = (window.end + timedelta(days=self.news_window_days)).strftime(DATE_FMT)
        news = await self.news.fetch_market_news(news_from, news_to)

        if not news:
            logger.info(f"MarketDataService: no news for {monthly.year}-{monthly.month:02d}, no events reported")
            events = {}
        else:
            events = detect_events(
                monthly.data,
                monthly.instruments,
                news,
                window=window,
                threshold=self.event_threshold,
                max_distance_days=self.news_window_days,
            )

        return EventsResult(year=monthly.year, month=monthly.month, events=events, failures=monthly.failures)

    async def get_recent_data(self, days: Any = 30) -> RecentResult:
        """Fetch the trailing ``days`` (1–365) up to yesterday. Not stored."""
        n = clamp_days(days)
        today = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        end = today - timedelta(seconds=1)
        start = today - timedelta(days=n)
        window = DateWindow(start=start, end=end)

        instruments = self.list_instruments()
        raw, failures = await self.collector.fetch_all(instruments, window.start, window.end)
        data = {instrument_id: filter_to_window(records, window) for instrument_id, records in raw.items()}
        return RecentResult(
            from_date=window.start_date,
            to_date=window.end_date,
            days=n,
            data=data,
            failures=failures,
            instruments=instruments,
        )

    async def get_chart(self, symbol_or_id: str, year: Any, month: Any) -> ChartResult:
        """Fetch one instrument's month, addressed by instrument id or provider symbol.

        Raises:
            InvalidPeriod: For out-of-range input.
            DisallowedSymbol: If it matches no effective instrument.
            QuoteSourceError: If fetching fails.
        """
        year, month = validate_period(year, month)
        instrument = next(
            (i for i in self.list_instruments() if symbol_or_id in (i.id, i.symbol)),
            None,
        )
        if instrument is None:
            raise DisallowedSymbol(symbol_or_id)

        window = month_window(year, month, self._clock())
        records = await self.quotes.fetch_series(instrument.symbol, window.start, window.end)
        return ChartResult(name=instrument.name, records=filter_to_window(records, window))

    def _require_base(self, instrument_id: str) -> None:
        if not any(item.id == instrument_id for item in self.base_instruments):
            raise UnknownInstrument(f"Unknown instrument: {instrument_id}")


# ── helpers ───────────────────────────────────────────────────────────────────

def month_window(year: int, month: int, now: datetime) -> DateWindow:
    """Fetch window of a period: the 1st until now (current month) or the month's last second."""
    start = datetime(year, month, 1)
    last_day = calendar.monthrange(year, month)[1]
    month_end = datetime(year, month, last_day, 23, 59, 59)
    is_current = (year, month) == (now.year, now.month)
    return DateWindow(start=start, end=now if is_current else month_end)


def filter_to_window(records: Iterable[DailyRecord], window: DateWindow) -> List[DailyRecord]:
    """Keep records with a valid date inside ``window``, sorted by date."""
    kept = [r for r in records if sanitize_date(r.date) and window.contains(r.date)]
    return sorted(kept, key=lambda r: r.date)
