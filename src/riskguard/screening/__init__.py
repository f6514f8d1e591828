"""
Sanctions and PEP screening providers.
"""

from riskguard.screening.base import (
    ListCategory,
    MatchType,
    NameScreener,
    ScreeningMatch,
    ScreeningProvider,
    ScreeningResult,
)
from riskguard.screening.http_provider import HttpScreeningProvider
from riskguard.screening.watchlist import (
    WatchlistChecker,
    WatchlistEntry,
    WatchlistSnapshot,
    WatchlistType,
)

__all__ = [
    "ListCategory",
    "MatchType",
    "NameScreener",
    "ScreeningMatch",
    "ScreeningProvider",
    "ScreeningResult",
    "HttpScreeningProvider",
    "WatchlistChecker",
    "WatchlistEntry",
    "WatchlistSnapshot",
    "WatchlistType",
]
