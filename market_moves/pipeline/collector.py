"""Batch collector: sequential, paced quote fetches across the instrument set.

Instruments are fetched one at a time with a fixed spacing between requests.
A failure on one instrument is recorded and the batch moves on; its series is
reported as empty.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from market_moves.core.errors import QuoteSourceError, describe_failure
from market_moves.core.logger import logger
from market_moves.core.pacing import RequestPacer
from market_moves.models.datatypes import DailyRecord, FetchFailure, Instrument
from market_moves.providers.base import QuoteProvider


class BatchCollector:
    """Drives a :class:`QuoteProvider` over many instruments.

    Args:
        quotes: Provider used for each instrument.
        pacer: Request spacing (500 ms fixed delay if not provided).
    """

    def __init__(self, quotes: QuoteProvider, pacer: Optional[RequestPacer] = None) -> None:
        self.quotes = quotes
        self.pacer = pacer or RequestPacer(0.5)

    async def fetch_all(
        self,
        instruments: Iterable[Instrument],
        start: datetime,
        end: datetime,
    ) -> Tuple[Dict[str, List[DailyRecord]], List[FetchFailure]]:
        """Fetch every instrument's series for ``start``..``end``.

        Returns:
            Tuple of ``(results, failures)``: ``results`` maps instrument id to
            its records (``[]`` on failure), ``failures`` lists the instruments
            that could not be fetched with a readable reason.
        """
        results: Dict[str, List[DailyRecord]] = {}
        failures: List[FetchFailure] = []
        instruments = list(instruments)

        for instrument in instruments:
            await self.pacer.acquire()
            try:
                results[instrument.id] = await self.quotes.fetch_series(instrument.symbol, start, end)
            except QuoteSourceError as exc:
                reason = describe_failure(exc)
                logger.error(f"BatchCollector: {instrument.id} ({instrument.symbol}) failed: {reason}")
                results[instrument.id] = []
                failures.append(FetchFailure(name=instrument.name, reason=reason))

        logger.info(
            f"BatchCollector: {len(instruments) - len(failures)}/{len(instruments)} instruments fetched"
        )
        return results, failures
