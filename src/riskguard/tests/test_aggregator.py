"""
Tests for risk aggregation.

Tests:
- Capped additive scoring and level boundaries
- Report priority
- Alert requirement
- Quantitative library contributions
"""

import pytest

from riskguard.exceptions import ValidationError
from riskguard.models.report import ReportType
from riskguard.models.risk import (
    CreditRiskRecord,
    IFRS9Stage,
    LiquidityResult,
    StressTestResult,
    VaRMethod,
    VaRResult,
)
from riskguard.models.transaction import CheckStatus
from riskguard.monitoring.aggregator import LibraryResults, highest_report_type
from riskguard.monitoring.rules import RuleResult


def rule(name: str, score: float, **kwargs) -> RuleResult:
    return RuleResult(rule_name=name, triggered=score > 0, risk_score=score, **kwargs)


def var_result(var: float) -> VaRResult:
    return VaRResult(
        var=var,
        expected_shortfall=var * 1.2,
        confidence=0.95,
        method=VaRMethod.HISTORICAL,
        time_horizon=1,
    )


class TestScoring:
    """Tests for the additive score."""

    def test_sum_of_rule_scores(self, aggregator):
        result = aggregator.aggregate(rule_results=[rule("a", 20), rule("b", 15), rule("c", 0)])

        assert result.score == 35
        assert result.factors == ["a", "b"]
        assert result.contributions == {"a": 20.0, "b": 15.0}

    def test_score_capped_at_100(self, aggregator):
        result = aggregator.aggregate(rule_results=[rule("a", 100), rule("b", 45), rule("c", 40)])

        assert result.score == 100
        assert result.level == "critical"

    def test_negative_score_rejected(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.aggregate(rule_results=[rule("broken", -5)])

    @pytest.mark.parametrize(
        "score,level",
        [(0, "low"), (30, "low"), (31, "medium"), (60, "medium"), (61, "high"), (85, "high"), (86, "critical"), (100, "critical")],
    )
    def test_level_boundaries(self, aggregator, score, level):
        assert aggregator.aggregate(rule_results=[rule("x", score)]).level == level

    def test_empty_input_is_low(self, aggregator):
        result = aggregator.aggregate()

        assert result.score == 0
        assert result.level == "low"
        assert not result.requires_alert
        assert result.report_type is None


class TestReporting:
    """Tests for report selection and alert requirement."""

    def test_report_priority(self):
        """SAR outranks cross-border, which outranks CTR."""
        assert highest_report_type([ReportType.CTR, ReportType.SAR, ReportType.CROSS_BORDER]) == ReportType.SAR
        assert highest_report_type([ReportType.CTR, None, ReportType.CROSS_BORDER]) == ReportType.CROSS_BORDER
        assert highest_report_type([None, ReportType.CTR]) == ReportType.CTR
        assert highest_report_type([]) is None

    def test_only_requesting_rules_choose_report(self, aggregator):
        results = [
            rule("cash_threshold", 20, requires_reporting=True, report_type=ReportType.CTR),
            rule("stale", 0, report_type=ReportType.SAR),
        ]

        result = aggregator.aggregate(rule_results=results)

        assert result.report_type == ReportType.CTR

    def test_report_forces_alert_below_threshold(self, aggregator):
        """A requested report always needs an alert, even at a low score."""
        results = [rule("geographic_risk", 0, requires_reporting=True, report_type=ReportType.CROSS_BORDER)]

        result = aggregator.aggregate(rule_results=results)

        assert result.score == 0
        assert result.requires_report
        assert result.requires_alert

    def test_alert_threshold(self, aggregator):
        assert not aggregator.aggregate(rule_results=[rule("a", 49)]).requires_alert
        assert aggregator.aggregate(rule_results=[rule("a", 50)]).requires_alert

    def test_sanctions_match_flags(self, aggregator):
        blocked = rule(
            "sanctions_screening",
            100,
            requires_reporting=True,
            report_type=ReportType.SAR,
            blocks_transaction=True,
            status=CheckStatus.FAIL,
        )

        result = aggregator.aggregate(rule_results=[blocked])

        assert result.sanctions_match
        assert result.report_type == ReportType.SAR
        assert result.mitigation_required

    def test_pending_screening_flag(self, aggregator):
        pending = RuleResult(rule_name="sanctions_screening", status=CheckStatus.PENDING)

        result = aggregator.aggregate(rule_results=[pending])

        assert result.screening_pending
        assert not result.sanctions_match


class TestLibraryContributions:
    """Tests for quantitative results feeding the score."""

    @pytest.mark.parametrize(
        "var,expected",
        [(0.0, 0.0), (0.01, 31.0), (0.02, 46.0), (0.03, 61.0), (0.06, 86.0), (0.12, 100.0), (0.5, 100.0)],
    )
    def test_market_var_mapping(self, aggregator, var, expected):
        contributions = aggregator.library_contributions(LibraryResults(market=var_result(var)))

        assert contributions["market_var"] == pytest.approx(expected)

    def test_credit_contribution(self, aggregator):
        credit = CreditRiskRecord(
            borrower_id="B1",
            facility_id="F1",
            probability_of_default=0.2,
            loss_given_default=0.45,
            exposure_at_default=1000.0,
            expected_credit_loss=90.0,
            stage=IFRS9Stage.UNDERPERFORMING,
        )

        contributions = aggregator.library_contributions(LibraryResults(credit=credit))

        assert contributions["credit_risk"] == pytest.approx(50.0)

    def test_liquidity_breach(self, aggregator):
        breached = LibraryResults(liquidity=LiquidityResult(lcr=90.0, nsfr=120.0))
        healthy = LibraryResults(liquidity=LiquidityResult(lcr=float("inf"), nsfr=120.0))

        assert aggregator.library_contributions(breached) == {"liquidity_breach": 40.0}
        assert aggregator.library_contributions(healthy) == {}

    @pytest.mark.parametrize("loss,expected", [(10.0, None), (20.0, 25.0), (30.0, 50.0)])
    def test_stress_contribution(self, aggregator, loss, expected):
        stress = StressTestResult(scenario="s", total_loss=loss * 1000, portfolio_value=100_000.0, new_value=0.0)

        contributions = aggregator.library_contributions(LibraryResults(stress=[stress]))

        assert contributions.get("stress_loss") == expected

    def test_combined_with_rules(self, aggregator):
        library = LibraryResults(market=var_result(0.03), liquidity=LiquidityResult(lcr=80.0, nsfr=80.0))

        result = aggregator.aggregate(library_results=library, rule_results=[rule("round_number", 10)])

        assert result.score == pytest.approx(100.0)
        assert result.factors == ["round_number", "market_var", "liquidity_breach"]
        assert result.requires_alert
