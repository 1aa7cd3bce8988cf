"""Notable-move detection and news correlation.

Flow per instrument with a news symbol:
  1. Day-over-day % change on the date-sorted closes (pandas, vectorised)
  2. Keep moves with ``|change| >= threshold`` inside the requested window
  3. Attach the closest headline within ``max_distance_days`` (exact date first)
  4. Annotate with the sell-timing advisory

Sell-timing decision table (first match wins; all bounds inclusive):

  fall  change <= -7 and streak >= 2                 STRONG_SELL
        change <= -5 and streak >= 2                 SELL_TREND
        cumulative <= -5 and drop_from_high <= -5    STOP_LOSS
        streak >= 3                                  CAUTION_STREAK
        change <= -5                                 CAUTION_DROP
        cumulative <= -3                             REVIEW
        otherwise                                    VOLATILITY
  rise  change >= 7                                  PARTIAL_PROFIT
        drop_from_high >= -1 and change >= 5         TAKE_PROFIT
        otherwise                                    HOLD

``cumulative`` is the change from the period's first close, ``drop_from_high``
the distance below the running high and ``streak`` the number of consecutive
declines ending at the event date, all computed on closes up to the event.
"""

from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from market_moves.models.datatypes import DailyRecord, DateWindow, Event, EventType, Instrument, NewsItem

DEFAULT_THRESHOLD_PCT = 3.0
DEFAULT_MAX_DISTANCE_DAYS = 14

STRONG_SELL = "Strong sell signal: sharp drop extending a losing streak"
SELL_TREND = "Sell signal: downtrend confirmed"
STOP_LOSS = "Consider a stop-loss: down from both the period start and the high"
CAUTION_STREAK = "Caution: three or more consecutive declines"
CAUTION_DROP = "Caution: large single-day drop"
REVIEW = "Review position: period-to-date loss"
VOLATILITY = "Volatility notice: monitor the position"
PARTIAL_PROFIT = "Consider partial profit-taking"
TAKE_PROFIT = "Consider taking profits near the high"
HOLD = "Hold"


def change_frame(records: Sequence[DailyRecord]) -> pd.DataFrame:
    """Date-sorted frame with ``date``, ``close``, ``prev_close`` and ``change_pct`` columns."""
    frame = pd.DataFrame(
        {
            "date": [r.date for r in records],
            "close": pd.Series([r.close for r in records], dtype="float64"),
        }
    )
    frame = frame.sort_values("date", kind="stable").reset_index(drop=True)
    frame["prev_close"] = frame["close"].shift(1)
    frame["change_pct"] = (frame["close"] - frame["prev_close"]) / frame["prev_close"] * 100.0
    return frame


def find_candidates(records: Sequence[DailyRecord], threshold: float = DEFAULT_THRESHOLD_PCT) -> pd.DataFrame:
    """Rows of :func:`change_frame` whose absolute change meets ``threshold``."""
    if len(records) < 2:
        return change_frame([]).iloc[0:0]
    frame = change_frame(records)
    prev = frame["prev_close"]
    mask = prev.notna() & (prev != 0) & frame["close"].notna() & (frame["change_pct"].abs() >= threshold)
    return frame.loc[mask]


def classify(change_pct: float) -> EventType:
    return EventType.RISE if change_pct > 0 else EventType.FALL


def sell_timing_advice(
    records: Sequence[DailyRecord],
    event_date: str,
    change_pct: float,
    event_type: EventType,
) -> Optional[str]:
    """Return the sell-timing advisory for an event, or None without enough data."""
    frame = change_frame(records)
    frame = frame.loc[(frame["date"] <= event_date) & frame["close"].notna()]
    if len(frame) < 2 or frame["date"].iloc[-1] != event_date:
        return None

    closes = frame["close"]
    first = float(closes.iloc[0])
    last = float(closes.iloc[-1])
    high = float(closes.max())
    cumulative = (last - first) / first * 100.0 if first else 0.0
    drop_from_high = (last - high) / high * 100.0 if high else 0.0

    streak = 0
    for declined in reversed(closes.diff().lt(0).tolist()):
        if not declined:
            break
        streak += 1

    if event_type is EventType.FALL:
        if change_pct <= -7 and streak >= 2:
            return STRONG_SELL
        if change_pct <= -5 and streak >= 2:
            return SELL_TREND
        if cumulative <= -5 and drop_from_high <= -5:
            return STOP_LOSS
        if streak >= 3:
            return CAUTION_STREAK
        if change_pct <= -5:
            return CAUTION_DROP
        if cumulative <= -3:
            return REVIEW
        return VOLATILITY

    if change_pct >= 7:
        return PARTIAL_PROFIT
    if drop_from_high >= -1 and change_pct >= 5:
        return TAKE_PROFIT
    return HOLD


def find_closest_headline(
    news: Sequence[NewsItem],
    event_date: str,
    max_distance_days: int = DEFAULT_MAX_DISTANCE_DAYS,
) -> Optional[NewsItem]:
    """Closest-dated news item within ``max_distance_days`` of ``event_date``.

    An exact-date item always wins; equal distances prefer the earlier date,
    then the first item seen.
    """
    target = date.fromisoformat(event_date)
    best: Optional[NewsItem] = None
    best_key = None
    for item in news:
        try:
            day = date.fromisoformat(item.date)
        except (TypeError, ValueError):
            continue
        distance = abs((day - target).days)
        if distance > max_distance_days:
            continue
        key = (distance, day)
        if best_key is None or key < best_key:
            best, best_key = item, key
    return best


def detect_events(
    series_by_instrument: Mapping[str, Sequence[DailyRecord]],
    instruments: Sequence[Instrument],
    news: Sequence[NewsItem],
    window: Optional[DateWindow] = None,
    threshold: float = DEFAULT_THRESHOLD_PCT,
    max_distance_days: int = DEFAULT_MAX_DISTANCE_DAYS,
) -> Dict[str, List[Event]]:
    """Detect notable moves and pair them with headlines.

    Args:
        series_by_instrument: Instrument id → daily records.
        instruments: Effective instruments; order drives per-date event order.
        news: Candidate headlines for correlation.
        window: Only events dated inside it are reported (all when None).
        threshold: Minimum absolute % change, inclusive.
        max_distance_days: Largest allowed gap between event and headline.

    Returns:
        Dict[str, List[Event]]: Events grouped by date, dates ascending.
    """
    grouped: Dict[str, List[Event]] = {}
    for instrument in instruments:
        if not instrument.news_symbol:
            continue
        records = series_by_instrument.get(instrument.id) or []
        candidates = find_candidates(records, threshold)

        for row in candidates.itertuples(index=False):
            if window is not None and not window.contains(row.date):
                continue
            change = float(row.change_pct)
            event_type = classify(change)
            match = find_closest_headline(news, row.date, max_distance_days)
            grouped.setdefault(row.date, []).append(
                Event(
                    date=row.date,
                    instrument_id=instrument.id,
                    instrument_name=instrument.name,
                    change_pct=change,
                    type=event_type,
                    headline=match.headline if match else None,
                    annotation=sell_timing_advice(records, row.date, change, event_type),
                )
            )

    return {day: grouped[day] for day in sorted(grouped)}
