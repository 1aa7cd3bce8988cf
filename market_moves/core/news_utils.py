"""Utility helpers for news and quote parsing: headline cleanup, dedup, timestamps."""

import math
import re
from datetime import date, datetime
from typing import Any, Iterable, List, Optional, Tuple

from market_moves.models.datatypes import DATE_FMT, NewsItem

MAX_HEADLINE_LENGTH = 200

_WHITESPACE_RE = re.compile(r"\s+")


def clean_headline(raw: Any) -> str:
    """Collapse whitespace and truncate a headline to ``MAX_HEADLINE_LENGTH``.

    Examples:
        ``"  Fed  holds\\nrates "`` → ``"Fed holds rates"``

    Args:
        raw: Headline text from the provider; non-strings yield ``""``.

    Returns:
        str: The cleaned headline, possibly empty.
    """
    if not isinstance(raw, str):
        return ""
    text = _WHITESPACE_RE.sub(" ", raw).strip()
    if len(text) > MAX_HEADLINE_LENGTH:
        text = text[: MAX_HEADLINE_LENGTH - 1].rstrip() + "…"
    return text


def timestamp_to_date(ts: Any) -> Optional[str]:
    """Convert a unix timestamp (seconds) to a local ``YYYY-MM-DD`` date.

    Returns None for non-numeric, non-finite or out-of-range timestamps.
    """
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        return None
    if not math.isfinite(ts):
        return None
    try:
        return datetime.fromtimestamp(ts).strftime(DATE_FMT)
    except (OverflowError, OSError, ValueError):
        return None


def dedupe_news(items: Iterable[NewsItem]) -> List[NewsItem]:
    """Drop repeated (date, headline) pairs, keeping first-seen order."""
    seen = set()
    unique: List[NewsItem] = []
    for item in items:
        key = (item.date, item.headline)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def cap_window(from_date: str, to_date: str, today: date) -> Tuple[str, str]:
    """Cap a ``YYYY-MM-DD`` window so it never extends past ``today``.

    The lower bound is pulled down to the capped upper bound when needed, so the
    returned window is always non-inverted.
    """
    today_str = today.strftime(DATE_FMT)
    upper = min(to_date, today_str)
    lower = min(from_date, upper)
    return lower, upper
