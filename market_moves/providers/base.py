"""Abstract base classes for data providers."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List

from market_moves.models.datatypes import DailyRecord, NewsItem


class QuoteProvider(ABC):
    """Abstract interface for fetching daily quote series."""

    @abstractmethod
    async def fetch_series(self, symbol: str, start: datetime, end: datetime) -> List[DailyRecord]:
        """
        Fetch the daily series of a symbol for a date range.

        Args:
            symbol (str): The provider symbol.
            start (datetime): Start of the range.
            end (datetime): End of the range.

        Returns:
            List[DailyRecord]: Records in chronological order, possibly empty.

        Raises:
            QuoteSourceError: If the symbol is not allowed or fetching fails.
        """
        pass


class NewsProvider(ABC):
    """Abstract interface for fetching dated headlines.

    Implementations never raise for provider trouble; they return an empty list.
    """

    @abstractmethod
    async def fetch_market_news(self, from_date: str, to_date: str) -> List[NewsItem]:
        """
        Fetch broad market headlines between two ``YYYY-MM-DD`` dates.

        Returns:
            List[NewsItem]: Deduplicated headlines, possibly empty.
        """
        pass

    @abstractmethod
    async def fetch_symbol_news(self, symbol: str, from_date: str, to_date: str) -> List[NewsItem]:
        """
        Fetch company headlines for one symbol between two ``YYYY-MM-DD`` dates.

        Returns:
            List[NewsItem]: Headlines, possibly empty.
        """
        pass
