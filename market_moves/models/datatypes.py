"""Data structures for the monthly market-moves pipeline."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from market_moves.pipeline.validator import sanitize_number

DATE_FMT = "%Y-%m-%d"


@dataclass(frozen=True)
class Instrument:
    """
    A tracked instrument as configured, or its effective view after overrides.

    ``news_symbol`` names the ticker used for news correlation; instruments
    without one never surface events.
    """
    id: str
    name: str
    symbol: str
    unit: str = ""
    news_symbol: Optional[str] = None
    overridden: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DailyRecord:
    """One trading day of an instrument. Only ``close`` is mandatory."""
    date: str  # YYYY-MM-DD
    close: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DailyRecord":
        """Build a record from its JSON form. Raises KeyError/TypeError if malformed."""
        if not isinstance(raw, dict):
            raise TypeError(f"record must be a mapping, got {type(raw).__name__}")
        date = raw["date"]
        close = raw["close"]
        if not isinstance(date, str) or isinstance(close, bool) or not isinstance(close, (int, float)):
            raise TypeError(f"invalid record: {raw!r}")
        close = sanitize_number(close)
        if close is None:
            raise TypeError(f"non-finite close: {raw!r}")
        return cls(
            date=date,
            close=close,
            open=sanitize_number(raw.get("open")),
            high=sanitize_number(raw.get("high")),
            low=sanitize_number(raw.get("low")),
            volume=sanitize_number(raw.get("volume")),
        )


SeriesMap = Dict[str, List[DailyRecord]]


@dataclass
class PeriodSnapshot:
    """All instrument series cached for one (year, month) period."""
    year: int
    month: int
    data: SeriesMap = field(default_factory=dict)
    updated_at: str = ""

    @property
    def key(self) -> str:
        return period_key(self.year, self.month)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "year": self.year,
            "month": self.month,
            "data": {
                instrument_id: [record.to_dict() for record in records]
                for instrument_id, records in self.data.items()
            },
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PeriodSnapshot":
        """Parse a persisted snapshot. Malformed records are skipped, not fatal."""
        data: SeriesMap = {}
        for instrument_id, records in (raw.get("data") or {}).items():
            parsed = []
            for item in records or []:
                try:
                    parsed.append(DailyRecord.from_dict(item))
                except (KeyError, TypeError):
                    continue
            data[instrument_id] = parsed
        return cls(
            year=int(raw["year"]),
            month=int(raw["month"]),
            data=data,
            updated_at=raw.get("updatedAt", ""),
        )


def period_key(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


@dataclass
class FetchFailure:
    """An instrument that could not be fetched during one request."""
    name: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NewsItem:
    """A dated headline. Equality on (date, headline) drives deduplication."""
    date: str  # YYYY-MM-DD
    headline: str


class EventType(str, Enum):
    RISE = "rise"
    FALL = "fall"


@dataclass
class Event:
    """
    A notable day-over-day move of one instrument.

    ``headline`` is the closest news item within the correlation window and
    ``annotation`` the sell-timing advisory; both may be absent.
    """
    date: str
    instrument_id: str
    instrument_name: str
    change_pct: float
    type: EventType
    headline: Optional[str] = None
    annotation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "id": self.instrument_id,
            "item": self.instrument_name,
            "change": round(self.change_pct, 2),
            "type": self.type.value,
            "headline": self.headline,
            "annotation": self.annotation,
        }


@dataclass(frozen=True)
class DateWindow:
    """Inclusive fetch window; dates compare as ``YYYY-MM-DD`` strings."""
    start: datetime
    end: datetime

    @property
    def start_date(self) -> str:
        return self.start.strftime(DATE_FMT)

    @property
    def end_date(self) -> str:
        return self.end.strftime(DATE_FMT)

    def contains(self, date: str) -> bool:
        return self.start_date <= date <= self.end_date


@dataclass(frozen=True)
class SymbolSuggestion:
    """One hit of a provider symbol search."""
    symbol: str
    name: str
    exchange: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SymbolMetadata:
    """Provider-confirmed identity of a symbol."""
    symbol: str
    short_name: str
    long_name: str


def _series_to_dict(data: SeriesMap) -> Dict[str, List[Dict[str, Any]]]:
    return {instrument_id: [r.to_dict() for r in records] for instrument_id, records in data.items()}


@dataclass
class MonthlyResult:
    """Envelope of a period read or refresh."""
    year: int
    month: int
    data: SeriesMap
    failures: List[FetchFailure]
    instruments: List[Instrument]
    from_cache: bool = False
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": True,
            "year": self.year,
            "month": self.month,
            "data": _series_to_dict(self.data),
            "items": [i.to_dict() for i in self.instruments],
            "failures": [f.to_dict() for f in self.failures],
        }
        if self.updated_at:
            out["updatedAt"] = self.updated_at
        return out


@dataclass
class EventsResult:
    """Envelope of an event query."""
    year: int
    month: int
    events: Dict[str, List[Event]]
    failures: List[FetchFailure]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "year": self.year,
            "month": self.month,
            "events": {day: [e.to_dict() for e in events] for day, events in self.events.items()},
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class RecentResult:
    """Envelope of a trailing-days read."""
    from_date: str
    to_date: str
    days: int
    data: SeriesMap
    failures: List[FetchFailure]
    instruments: List[Instrument]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "from": self.from_date,
            "to": self.to_date,
            "days": self.days,
            "data": _series_to_dict(self.data),
            "items": [i.to_dict() for i in self.instruments],
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class ChartResult:
    """One instrument's month of closes for charting."""
    name: str
    records: List[DailyRecord]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "symbol": self.name,
            "data": [{"date": r.date, "close": r.close, "open": r.open} for r in self.records],
        }
