"""
Risk aggregation.

Combines rule results and quantitative library results into one capped score,
a risk level and a reporting decision.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import numpy as np

from riskguard.config import Settings, settings as default_settings
from riskguard.exceptions import ValidationError
from riskguard.models.report import ReportType
from riskguard.models.risk import (
    CreditRiskRecord,
    IFRS9Stage,
    LiquidityResult,
    StressTestResult,
    VaRResult,
)
from riskguard.models.transaction import CheckStatus
from riskguard.monitoring.rules import RuleResult

logger = logging.getLogger(__name__)

MAX_SCORE = 100.0

# VaR % of portfolio value -> score, interpolated linearly
VAR_PERCENT_POINTS = [0.0, 1.0, 3.0, 6.0, 12.0]
VAR_SCORE_POINTS = [0.0, 31.0, 61.0, 86.0, 100.0]

STAGE_WEIGHTS = {
    IFRS9Stage.PERFORMING: 0.0,
    IFRS9Stage.UNDERPERFORMING: 30.0,
    IFRS9Stage.CREDIT_IMPAIRED: 60.0,
}

LIQUIDITY_BREACH_SCORE = 40.0
STRESS_ALERT_SCORE = 25.0
STRESS_HIGH_SCORE = 50.0


@dataclass
class LibraryResults:
    """Quantitative results attached to an entity or portfolio-linked transaction."""

    market: Optional[VaRResult] = None
    credit: Optional[CreditRiskRecord] = None
    liquidity: Optional[LiquidityResult] = None
    stress: list[StressTestResult] = field(default_factory=list)


@dataclass
class AggregationResult:
    score: float
    level: str
    requires_alert: bool
    requires_report: bool
    report_type: Optional[ReportType]
    factors: list[str] = field(default_factory=list)
    contributions: dict[str, float] = field(default_factory=dict)
    sanctions_match: bool = False
    screening_pending: bool = False
    rule_results: list[RuleResult] = field(default_factory=list)

    @property
    def mitigation_required(self) -> bool:
        return self.level in ("high", "critical")

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level,
            "requires_alert": self.requires_alert,
            "requires_report": self.requires_report,
            "report_type": self.report_type.value if self.report_type else None,
            "factors": self.factors,
            "contributions": self.contributions,
            "sanctions_match": self.sanctions_match,
            "screening_pending": self.screening_pending,
            "mitigation_required": self.mitigation_required,
        }


def highest_report_type(report_types: Sequence[Optional[ReportType]]) -> Optional[ReportType]:
    """Most severe requested report: SAR > CROSS_BORDER > CTR."""
    requested = [r for r in report_types if r is not None]
    if not requested:
        return None
    return max(requested, key=lambda r: r.rank)


class RiskAggregator:
    """
    Aggregate rule and library results into one decision.

    Usage:
        aggregator = RiskAggregator(settings)
        result = aggregator.aggregate(rule_results=results)
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        # Ordered high to low
        self.level_thresholds: list[tuple[float, str]] = [
            (self.settings.level_critical_min, "critical"),
            (self.settings.level_high_min, "high"),
            (self.settings.level_medium_min, "medium"),
        ]

    def level_for(self, score: float) -> str:
        for minimum, level in self.level_thresholds:
            if score >= minimum:
                return level
        return "low"

    def library_contributions(self, results: LibraryResults) -> dict[str, float]:
        """Translate quantitative results into additive scores."""
        contributions: dict[str, float] = {}

        if results.market is not None:
            contributions["market_var"] = float(
                np.interp(results.market.var_percent, VAR_PERCENT_POINTS, VAR_SCORE_POINTS)
            )

        if results.credit is not None:
            credit = results.credit
            contributions["credit_risk"] = (
                credit.probability_of_default * 100 + STAGE_WEIGHTS[IFRS9Stage(credit.stage)]
            )

        if results.liquidity is not None and not results.liquidity.compliant:
            contributions["liquidity_breach"] = LIQUIDITY_BREACH_SCORE

        if results.stress:
            worst = max(s.loss_percent for s in results.stress)
            if worst > self.settings.stress_loss_high_percent:
                contributions["stress_loss"] = STRESS_HIGH_SCORE
            elif worst > self.settings.stress_loss_alert_percent:
                contributions["stress_loss"] = STRESS_ALERT_SCORE

        return contributions

    def aggregate(
        self,
        library_results: Optional[LibraryResults] = None,
        rule_results: Sequence[RuleResult] = (),
    ) -> AggregationResult:
        """
        Combine results.

        Score is the capped sum of all contributions. An alert is required
        at the alert threshold, whenever a report is requested, and on any
        sanctions match.
        """
        contributions: dict[str, float] = {}
        factors: list[str] = []

        for result in rule_results:
            if result.risk_score < 0:
                raise ValidationError(f"Rule {result.rule_name} returned a negative score")
            if result.risk_score:
                contributions[result.rule_name] = float(result.risk_score)
            if result.triggered:
                factors.append(result.rule_name)

        if library_results is not None:
            for name, value in self.library_contributions(library_results).items():
                if value:
                    contributions[name] = value
                    factors.append(name)

        score = min(sum(contributions.values()), MAX_SCORE)

        sanctions_match = any(r.blocks_transaction for r in rule_results)
        screening_pending = any(
            r.status in (CheckStatus.PENDING, CheckStatus.ERROR) for r in rule_results
        )
        report_type = highest_report_type([r.report_type for r in rule_results if r.requires_reporting])
        requires_report = report_type is not None

        requires_alert = (
            score >= self.settings.alert_score_threshold
            or requires_report
            or sanctions_match
        )

        return AggregationResult(
            score=score,
            level=self.level_for(score),
            requires_alert=requires_alert,
            requires_report=requires_report,
            report_type=report_type,
            factors=factors,
            contributions=contributions,
            sanctions_match=sanctions_match,
            screening_pending=screening_pending,
            rule_results=list(rule_results),
        )
