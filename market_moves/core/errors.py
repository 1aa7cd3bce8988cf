"""Exception hierarchy for the market-moves pipeline.

All pipeline exceptions derive from :class:`MarketMovesError` so callers can
catch them uniformly. Quote provider failures share :class:`QuoteSourceError`,
which is what the batch collector converts into per-instrument failure records.
"""

from __future__ import annotations

from typing import Optional


class MarketMovesError(Exception):
    """Base class for all market-moves errors."""


class ConfigError(MarketMovesError):
    """Raised when configuration files or parameters are invalid."""


class InvalidPeriod(MarketMovesError):
    """Raised when a requested year/month is out of the supported range."""


class UnknownInstrument(MarketMovesError):
    """Raised when an instrument id is not part of the base configuration."""


class SymbolLookupError(MarketMovesError):
    """Raised when a provider symbol cannot be resolved upstream."""


class QuoteSourceError(MarketMovesError):
    """Raised when fetching a quote series fails."""


class DisallowedSymbol(QuoteSourceError):
    """Raised when a symbol is not in the effective instrument whitelist."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Symbol not allowed: {symbol}")
        self.symbol = symbol


class RateLimited(QuoteSourceError):
    """Raised when the provider answers 429 or flags the request as throttled."""


class UpstreamHttpError(QuoteSourceError):
    """Raised on any non-200 provider response."""

    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status}")
        self.status = status


class MalformedResponse(QuoteSourceError):
    """Raised when the provider body is not valid JSON."""


class ResponseTooLarge(QuoteSourceError):
    """Raised when the provider body exceeds the byte limit."""


class Timeout(QuoteSourceError):
    """Raised when the provider does not answer within the request timeout."""


class UpstreamUnavailable(QuoteSourceError):
    """Raised when the provider cannot be reached at all."""


class FetchExhausted(QuoteSourceError):
    """Raised once every retry attempt has failed.

    ``last_error`` keeps the failure of the final attempt so callers can report
    a meaningful reason.
    """

    def __init__(self, message: str, last_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.last_error = last_error


def describe_failure(exc: BaseException) -> str:
    """Return a user-facing reason for a fetch failure."""
    cause = exc.last_error if isinstance(exc, FetchExhausted) and exc.last_error else exc
    if isinstance(cause, RateLimited):
        return "Provider rate limit exceeded. Please try again shortly."
    if isinstance(cause, Timeout):
        return "Provider response timed out. Please try again shortly."
    if isinstance(cause, UpstreamUnavailable):
        return "Could not connect to the provider. Check the network connection."
    if isinstance(cause, ResponseTooLarge):
        return "Provider response was abnormally large."
    return str(cause) or cause.__class__.__name__


__all__ = [
    "MarketMovesError",
    "ConfigError",
    "InvalidPeriod",
    "UnknownInstrument",
    "SymbolLookupError",
    "QuoteSourceError",
    "DisallowedSymbol",
    "RateLimited",
    "UpstreamHttpError",
    "MalformedResponse",
    "ResponseTooLarge",
    "Timeout",
    "UpstreamUnavailable",
    "FetchExhausted",
    "describe_failure",
]
