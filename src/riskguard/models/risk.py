"""
Risk calculation inputs and engine-owned risk records.

CreditRiskRecord, MarketRiskRecord and RiskAssessment are written by the
engine; the parameter types are what callers hand to the quantitative
library.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4


class VaRMethod(str, Enum):
    """Interchangeable Value-at-Risk algorithms."""

    HISTORICAL = "historical"
    PARAMETRIC = "parametric"
    MONTE_CARLO = "monte_carlo"


class IFRS9Stage(int, Enum):
    PERFORMING = 1
    UNDERPERFORMING = 2
    CREDIT_IMPAIRED = 3


# Credit inputs


@dataclass
class FinancialMetrics:
    debt_to_equity: float
    current_ratio: float
    interest_coverage_ratio: float
    return_on_assets: float


@dataclass
class PaymentRecord:
    """One scheduled repayment of a facility."""

    date: datetime
    amount_due: float
    amount_paid: float
    days_past_due: int = 0

    @property
    def is_late(self) -> bool:
        return self.days_past_due > 0

    @property
    def is_partial(self) -> bool:
        return self.amount_paid < self.amount_due


@dataclass
class CreditRiskParams:
    borrower_id: str
    facility_id: str
    exposure_amount: float
    collateral_value: float
    financial_metrics: FinancialMetrics
    payment_history: list[PaymentRecord] = field(default_factory=list)
    credit_rating: Optional[str] = None
    credit_limit: Optional[float] = None
    undrawn_amount: float = 0.0
    credit_conversion_factor: float = 1.0
    maturity_date: Optional[datetime] = None


# Market inputs


@dataclass
class Position:
    asset_id: str
    quantity: float
    current_price: float
    asset_type: str

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price


@dataclass
class MarketRiskParams:
    portfolio_id: str
    returns: list[float]
    positions: list[Position] = field(default_factory=list)
    confidence_level: float = 0.95
    time_horizon: int = 1
    method: VaRMethod = VaRMethod.HISTORICAL


@dataclass
class StressScenario:
    """Named set of percentage shocks keyed by asset type or asset id."""

    name: str
    shocks: dict[str, float] = field(default_factory=dict)
    description: str = ""


# Results


@dataclass
class VaRResult:
    """Uniform result shape for every VaR method."""

    var: float
    expected_shortfall: float
    confidence: float
    method: VaRMethod
    time_horizon: int
    breakdown: dict[str, float] = field(default_factory=dict)
    portfolio_value: Optional[float] = None

    @property
    def var_percent(self) -> float:
        """VaR as a percentage of portfolio value (returns are fractional)."""
        return self.var * 100

    @property
    def var_amount(self) -> Optional[float]:
        if self.portfolio_value is None:
            return None
        return self.var * self.portfolio_value

    def to_dict(self) -> dict[str, Any]:
        return {
            "var": self.var,
            "expected_shortfall": self.expected_shortfall,
            "confidence": self.confidence,
            "method": self.method.value,
            "time_horizon": self.time_horizon,
            "breakdown": self.breakdown,
            "var_percent": self.var_percent,
            "var_amount": self.var_amount,
        }


@dataclass
class PositionLoss:
    asset_id: str
    asset_type: str
    market_value: float
    shock_percent: float
    loss: float


@dataclass
class StressTestResult:
    scenario: str
    total_loss: float
    portfolio_value: float
    new_value: float
    positions: list[PositionLoss] = field(default_factory=list)

    @property
    def loss_percent(self) -> float:
        if self.portfolio_value == 0:
            return 0.0
        return self.total_loss / self.portfolio_value * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "total_loss": self.total_loss,
            "portfolio_value": self.portfolio_value,
            "new_value": self.new_value,
            "loss_percent": self.loss_percent,
            "positions": [
                {
                    "asset_id": p.asset_id,
                    "asset_type": p.asset_type,
                    "market_value": p.market_value,
                    "shock_percent": p.shock_percent,
                    "loss": p.loss,
                }
                for p in self.positions
            ],
        }


@dataclass
class LiquidityResult:
    lcr: float
    nsfr: float
    lcr_minimum: float = 100.0
    nsfr_minimum: float = 100.0

    @property
    def lcr_compliant(self) -> bool:
        return self.lcr >= self.lcr_minimum

    @property
    def nsfr_compliant(self) -> bool:
        return self.nsfr >= self.nsfr_minimum

    @property
    def compliant(self) -> bool:
        return self.lcr_compliant and self.nsfr_compliant

    def to_dict(self) -> dict[str, Any]:
        return {
            "lcr": None if math.isinf(self.lcr) else self.lcr,
            "nsfr": None if math.isinf(self.nsfr) else self.nsfr,
            "lcr_unbounded": math.isinf(self.lcr),
            "nsfr_unbounded": math.isinf(self.nsfr),
            "lcr_compliant": self.lcr_compliant,
            "nsfr_compliant": self.nsfr_compliant,
        }


# Engine-owned records


@dataclass
class CreditRiskRecord:
    """One credit risk calculation for a (borrower, facility) pair."""

    borrower_id: str
    facility_id: str
    probability_of_default: float
    loss_given_default: float
    exposure_at_default: float
    expected_credit_loss: float
    stage: IFRS9Stage
    credit_rating: str = "Unrated"
    days_past_due: int = 0
    limit_utilization: float = 0.0
    watch_list: bool = False
    restructured: bool = False
    id: UUID = field(default_factory=uuid4)
    calculated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "borrower_id": self.borrower_id,
            "facility_id": self.facility_id,
            "probability_of_default": self.probability_of_default,
            "loss_given_default": self.loss_given_default,
            "exposure_at_default": self.exposure_at_default,
            "expected_credit_loss": self.expected_credit_loss,
            "stage": int(self.stage),
            "credit_rating": self.credit_rating,
            "days_past_due": self.days_past_due,
            "limit_utilization": self.limit_utilization,
            "watch_list": self.watch_list,
            "calculated_at": self.calculated_at.isoformat(),
        }


@dataclass
class MarketRiskRecord:
    """A VaR figure for (portfolio, method, horizon) with a validity window."""

    portfolio_id: str
    method: VaRMethod
    confidence: float
    time_horizon: int
    value: float
    expected_shortfall: float
    breakdown: dict[str, float] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    calculated_at: datetime = field(default_factory=datetime.utcnow)
    valid_until: Optional[datetime] = None

    def __post_init__(self):
        if self.valid_until is None:
            self.valid_until = self.calculated_at + timedelta(days=1)

    @classmethod
    def from_result(
        cls,
        portfolio_id: str,
        result: VaRResult,
        calculated_at: Optional[datetime] = None,
    ) -> "MarketRiskRecord":
        return cls(
            portfolio_id=portfolio_id,
            method=result.method,
            confidence=result.confidence,
            time_horizon=result.time_horizon,
            value=result.var,
            expected_shortfall=result.expected_shortfall,
            breakdown=dict(result.breakdown),
            calculated_at=calculated_at or datetime.utcnow(),
        )

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """Expired records must be recalculated before use."""
        return (now or datetime.utcnow()) >= self.valid_until

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "portfolio_id": self.portfolio_id,
            "method": self.method.value,
            "confidence": self.confidence,
            "time_horizon": self.time_horizon,
            "value": self.value,
            "expected_shortfall": self.expected_shortfall,
            "breakdown": self.breakdown,
            "calculated_at": self.calculated_at.isoformat(),
            "valid_until": self.valid_until.isoformat(),
        }


@dataclass
class RiskAssessment:
    """Snapshot stored by every periodic assessment of an entity."""

    entity_id: str
    entity_type: str
    score: float
    level: str
    market: Optional[VaRResult] = None
    credit: Optional[CreditRiskRecord] = None
    liquidity: Optional[LiquidityResult] = None
    stress_results: list[StressTestResult] = field(default_factory=list)
    factors: list[str] = field(default_factory=list)
    mitigation_measures: list[str] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    assessed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "score": self.score,
            "level": self.level,
            "market": self.market.to_dict() if self.market else None,
            "credit": self.credit.to_dict() if self.credit else None,
            "liquidity": self.liquidity.to_dict() if self.liquidity else None,
            "stress_results": [s.to_dict() for s in self.stress_results],
            "factors": self.factors,
            "mitigation_measures": self.mitigation_measures,
            "assessed_at": self.assessed_at.isoformat(),
        }
