"""
Record store contracts consumed by the engine.

The engine reads portfolio data and writes only the records it owns
(credit and market risk records, assessment snapshots). The in-memory
implementations serve tests and single-process deployments;
riskguard.db.repositories provides the SQLAlchemy-backed store.
"""

from typing import Optional, Protocol, runtime_checkable

from riskguard.exceptions import DependencyError
from riskguard.models.risk import CreditRiskRecord, MarketRiskRecord, Position, RiskAssessment


@runtime_checkable
class PortfolioSource(Protocol):
    """Read access to portfolio positions and return history."""

    async def get_positions(self, portfolio_id: str) -> list[Position]:
        ...

    async def get_returns(self, portfolio_id: str) -> list[float]:
        ...


@runtime_checkable
class RiskRecordStore(Protocol):
    """Write access for engine-owned records."""

    async def save_credit_record(self, record: CreditRiskRecord) -> None:
        ...

    async def save_market_record(self, record: MarketRiskRecord) -> None:
        ...

    async def save_assessment(self, assessment: RiskAssessment) -> None:
        ...

    async def latest_credit_record(self, borrower_id: str, facility_id: str) -> Optional[CreditRiskRecord]:
        ...


class InMemoryPortfolioSource:
    def __init__(self):
        self._positions: dict[str, list[Position]] = {}
        self._returns: dict[str, list[float]] = {}

    def add_portfolio(self, portfolio_id: str, positions: list[Position], returns: list[float]) -> None:
        self._positions[portfolio_id] = list(positions)
        self._returns[portfolio_id] = list(returns)

    async def get_positions(self, portfolio_id: str) -> list[Position]:
        if portfolio_id not in self._positions:
            raise DependencyError(f"Unknown portfolio {portfolio_id}", dependency="portfolio_source")
        return list(self._positions[portfolio_id])

    async def get_returns(self, portfolio_id: str) -> list[float]:
        if portfolio_id not in self._returns:
            raise DependencyError(f"Unknown portfolio {portfolio_id}", dependency="portfolio_source")
        return list(self._returns[portfolio_id])


class InMemoryRiskRecordStore:
    """Keeps every record; the latest credit record per facility is tracked."""

    def __init__(self):
        self.credit_records: list[CreditRiskRecord] = []
        self.market_records: list[MarketRiskRecord] = []
        self.assessments: list[RiskAssessment] = []

    async def save_credit_record(self, record: CreditRiskRecord) -> None:
        self.credit_records.append(record)

    async def save_market_record(self, record: MarketRiskRecord) -> None:
        self.market_records.append(record)

    async def save_assessment(self, assessment: RiskAssessment) -> None:
        self.assessments.append(assessment)

    async def latest_credit_record(self, borrower_id: str, facility_id: str) -> Optional[CreditRiskRecord]:
        matching = [
            r for r in self.credit_records
            if r.borrower_id == borrower_id and r.facility_id == facility_id
        ]
        if not matching:
            return None
        return max(matching, key=lambda r: r.calculated_at)

    def latest_market_record(self, portfolio_id: str) -> Optional[MarketRiskRecord]:
        matching = [r for r in self.market_records if r.portfolio_id == portfolio_id]
        if not matching:
            return None
        return max(matching, key=lambda r: r.calculated_at)
