"""
Screening provider contract.

The engine never reads sanctions or PEP lists directly. It asks a provider
for a snapshot at the start of an evaluation and sends every name lookup of
that evaluation to the same snapshot, so a list refresh happening meanwhile
is never half-visible.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable


class ListCategory(str, Enum):
    SANCTIONS = "sanctions"
    PEP = "pep"
    OTHER = "other"


class MatchType(str, Enum):
    """How the match was determined."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    ALIAS = "alias"


@dataclass
class ScreeningMatch:
    list_name: str
    category: ListCategory
    entry_name: str
    match_type: MatchType
    score: float
    pep_category: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "list_name": self.list_name,
            "category": self.category.value,
            "entry_name": self.entry_name,
            "match_type": self.match_type.value,
            "score": self.score,
            "pep_category": self.pep_category,
        }


@dataclass
class ScreeningResult:
    """Answer to one screen_name query."""

    name: str
    matches: list[ScreeningMatch] = field(default_factory=list)
    list_version: Optional[str] = None
    checked_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def matched(self) -> bool:
        return bool(self.matches)

    @property
    def matched_lists(self) -> list[str]:
        return sorted({m.list_name for m in self.matches})

    @property
    def match_type(self) -> Optional[MatchType]:
        best = self.best_match
        return best.match_type if best else None

    @property
    def confidence(self) -> float:
        best = self.best_match
        return best.score if best else 0.0

    @property
    def best_match(self) -> Optional[ScreeningMatch]:
        if not self.matches:
            return None
        return max(self.matches, key=lambda m: m.score)

    @property
    def sanctions_matches(self) -> list[ScreeningMatch]:
        return [m for m in self.matches if m.category == ListCategory.SANCTIONS]

    @property
    def pep_matches(self) -> list[ScreeningMatch]:
        return [m for m in self.matches if m.category == ListCategory.PEP]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "matched": self.matched,
            "matched_lists": self.matched_lists,
            "match_type": self.match_type.value if self.match_type else None,
            "confidence": self.confidence,
            "matches": [m.to_dict() for m in self.matches],
            "list_version": self.list_version,
            "checked_at": self.checked_at.isoformat(),
        }


@runtime_checkable
class NameScreener(Protocol):
    """A fixed view of the screening lists."""

    async def screen_name(self, name: str) -> ScreeningResult:
        ...


@runtime_checkable
class ScreeningProvider(Protocol):
    """Source of screening snapshots."""

    async def snapshot(self) -> NameScreener:
        ...
