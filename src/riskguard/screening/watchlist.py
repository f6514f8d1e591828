"""
In-process sanctions and PEP screening.

Entries live in an immutable tuple that list refreshes replace as a whole.
A snapshot holds a reference to one tuple, so lookups against a snapshot
always see a complete list version.
"""

import asyncio
import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

import jellyfish

from riskguard.screening.base import (
    ListCategory,
    MatchType,
    ScreeningMatch,
    ScreeningResult,
)

logger = logging.getLogger(__name__)


class WatchlistType(str, Enum):
    """Types of watchlists."""

    SANCTIONS_UN = "sanctions_un"
    SANCTIONS_OFAC = "sanctions_ofac"
    SANCTIONS_EU = "sanctions_eu"
    SANCTIONS_LOCAL = "sanctions_local"
    PEP_DOMESTIC = "pep_domestic"
    PEP_FOREIGN = "pep_foreign"
    PEP_INTERNATIONAL_ORG = "pep_international_org"
    INTERNAL = "internal"

    @property
    def category(self) -> ListCategory:
        if self.value.startswith("sanctions_"):
            return ListCategory.SANCTIONS
        if self.value.startswith("pep_"):
            return ListCategory.PEP
        return ListCategory.OTHER


@dataclass(frozen=True)
class WatchlistEntry:
    """An entry on a watchlist."""

    id: str
    list_type: WatchlistType
    name: str
    aliases: tuple[str, ...] = ()
    pep_category: Optional[str] = None
    source: str = ""
    is_active: bool = True


HONORIFICS = frozenset({"mr", "mrs", "ms", "dr", "prof", "sir", "hon"})


def normalize_name(name: str) -> str:
    """Lowercase ASCII tokens without accents, punctuation or honorifics."""
    if not name:
        return ""

    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    tokens = re.sub(r"[^\w\s]", " ", stripped.lower()).split()
    return " ".join(t for t in tokens if t not in HONORIFICS)


def token_sort(name: str) -> str:
    return " ".join(sorted(name.split()))


def fuzzy_score(query: str, target: str) -> float:
    """
    Similarity of two normalized names in [0, 1].

    Tokens are sorted before comparing, so "petrov viktor" and
    "viktor petrov" are identical; what remains is the normalized
    Levenshtein similarity of the sorted strings.
    """
    if not query or not target:
        return 0.0

    a, b = token_sort(query), token_sort(target)
    if a == b:
        return 1.0

    distance = jellyfish.levenshtein_distance(a, b)
    return 1.0 - distance / max(len(a), len(b))


class WatchlistSnapshot:
    """Read-only view of one watchlist version."""

    def __init__(
        self,
        entries: tuple[WatchlistEntry, ...],
        version: str,
        min_fuzzy_score: float,
        check_aliases: bool = True,
    ):
        self._entries = entries
        self.version = version
        self.min_fuzzy_score = min_fuzzy_score
        self.check_aliases = check_aliases

    def __len__(self) -> int:
        return len(self._entries)

    def match(self, name: str) -> list[ScreeningMatch]:
        query = normalize_name(name)
        if not query:
            return []

        matches: list[ScreeningMatch] = []
        for entry in self._entries:
            if not entry.is_active:
                continue
            match = self._match_entry(query, entry)
            if match:
                matches.append(match)

        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    def _match_entry(self, query: str, entry: WatchlistEntry) -> Optional[ScreeningMatch]:
        target = normalize_name(entry.name)

        def build(match_type: MatchType, score: float) -> ScreeningMatch:
            return ScreeningMatch(
                list_name=entry.list_type.value,
                category=entry.list_type.category,
                entry_name=entry.name,
                match_type=match_type,
                score=score,
                pep_category=entry.pep_category,
            )

        if query == target:
            return build(MatchType.EXACT, 1.0)

        if self.check_aliases:
            for alias in entry.aliases:
                if query == normalize_name(alias):
                    return build(MatchType.ALIAS, 0.95)

        score = fuzzy_score(query, target)
        if score >= self.min_fuzzy_score:
            return build(MatchType.FUZZY, score)
        return None

    async def screen_name(self, name: str) -> ScreeningResult:
        return ScreeningResult(name=name, matches=self.match(name), list_version=self.version)


class WatchlistChecker:
    """
    Screening provider backed by in-memory watchlists.

    Usage:
        checker = WatchlistChecker()
        checker.load_entries(entries)
        snapshot = await checker.snapshot()
        result = await snapshot.screen_name("Jane Doe")
    """

    def __init__(
        self,
        min_fuzzy_score: float = 0.85,
        check_aliases: bool = True,
    ):
        self.min_fuzzy_score = min_fuzzy_score
        self.check_aliases = check_aliases
        self._entries: tuple[WatchlistEntry, ...] = ()
        self._version = 0
        self._updated_at: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def version(self) -> str:
        return str(self._version)

    def _publish(self, entries: tuple[WatchlistEntry, ...]) -> None:
        # Single reference assignment; snapshots keep the tuple they took
        self._entries = entries
        self._version += 1
        self._updated_at = datetime.utcnow()

    def add_entry(self, entry: WatchlistEntry) -> None:
        """Add an entry to a watchlist."""
        self._publish(self._entries + (entry,))

    def load_entries(self, entries: list[WatchlistEntry]) -> int:
        """Load multiple entries. Returns count loaded."""
        self._publish(self._entries + tuple(entries))
        return len(entries)

    async def refresh(self, entries: list[WatchlistEntry]) -> int:
        """Replace every list with a new version."""
        async with self._lock:
            self._publish(tuple(entries))
        logger.info(f"Watchlists refreshed to version {self._version} ({len(entries)} entries)")
        return len(entries)

    async def snapshot(self) -> WatchlistSnapshot:
        return WatchlistSnapshot(
            entries=self._entries,
            version=self.version,
            min_fuzzy_score=self.min_fuzzy_score,
            check_aliases=self.check_aliases,
        )

    def get_stats(self) -> dict[str, int]:
        stats: dict[str, int] = {}
        for entry in self._entries:
            stats[entry.list_type.value] = stats.get(entry.list_type.value, 0) + 1
        return stats
