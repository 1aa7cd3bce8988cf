"""Input validation and value sanitizing.

Checks applied before any network activity:
  1. Period (year, month) within 2000–2100 / 1–12
  2. Numeric values finite and within ±1e15
  3. Dates in fixed-width ``YYYY-MM-DD`` form that name a real calendar day
"""

import math
import re
from datetime import datetime
from typing import Any, Optional, Tuple

from market_moves.core.errors import InvalidPeriod

MIN_YEAR = 2000
MAX_YEAR = 2100
SAFE_NUM_MAX = 1e15
MIN_RECENT_DAYS = 1
MAX_RECENT_DAYS = 365

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_period(year: Any, month: Any) -> Tuple[int, int]:
    """Parse and range-check a requested period.

    Args:
        year: Year as int or numeric string.
        month: Month as int or numeric string.

    Returns:
        Tuple of ``(year, month)`` as ints.

    Raises:
        InvalidPeriod: If either value is not an integer or out of range.
    """
    try:
        y = int(year)
        m = int(month)
    except (TypeError, ValueError) as exc:
        raise InvalidPeriod(f"Invalid period {year!r}-{month!r}") from exc

    if not (MIN_YEAR <= y <= MAX_YEAR) or not (1 <= m <= 12):
        raise InvalidPeriod(
            f"Invalid period {y}-{m}: year must be {MIN_YEAR}-{MAX_YEAR}, month 1-12"
        )
    return y, m


def sanitize_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite number, or None for NaN/inf/huge/non-numeric input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or abs(number) > SAFE_NUM_MAX:
        return None
    return int(value) if isinstance(value, int) else number


def sanitize_date(value: Any) -> Optional[str]:
    """Return ``value`` if it is a valid ``YYYY-MM-DD`` date string, else None."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return None
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return None
    return value


def clamp_days(days: Any, default: int = 30) -> int:
    """Parse a day count, falling back to ``default`` and clamping to 1–365."""
    try:
        n = int(days)
    except (TypeError, ValueError):
        n = default
    return min(max(n, MIN_RECENT_DAYS), MAX_RECENT_DAYS)
