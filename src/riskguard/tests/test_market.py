"""
Tests for market and liquidity risk.

Tests:
- Historical, parametric and Monte Carlo VaR
- Expected Shortfall ordering
- Stress scenarios
- LCR/NSFR sentinels
"""

import math

import numpy as np
import pytest
from scipy import stats

from riskguard.exceptions import ValidationError
from riskguard.models.risk import Position, StressScenario, VaRMethod
from riskguard.quant.liquidity import lcr, liquidity_position, nsfr
from riskguard.quant.market import (
    DEFAULT_STRESS_SCENARIOS,
    parametric_var,
    portfolio_returns,
    portfolio_risk_level,
    stress_test,
    suggest_mitigation_measures,
    value_at_risk,
)


@pytest.fixture
def daily_returns() -> np.ndarray:
    """252 seeded daily returns."""
    rng = np.random.default_rng(2024)
    return rng.normal(0.0005, 0.012, 252)


@pytest.fixture
def positions() -> list[Position]:
    return [
        Position(asset_id="AAPL", quantity=100, current_price=200.0, asset_type="EQUITY"),
        Position(asset_id="UST10", quantity=50, current_price=400.0, asset_type="BOND"),
        Position(asset_id="GOLD", quantity=10, current_price=1000.0, asset_type="COMMODITY"),
    ]


class TestValueAtRisk:
    """Tests for the three VaR methods."""

    def test_historical_equals_fifth_percentile(self, daily_returns):
        """Historical VaR at 95% is the 5th percentile of the exact series."""
        result = value_at_risk(daily_returns, confidence=0.95, method=VaRMethod.HISTORICAL)

        assert result.var == abs(np.percentile(daily_returns, 5))
        assert result.method == VaRMethod.HISTORICAL

    def test_historical_is_deterministic(self, daily_returns):
        """Same series, same answer."""
        first = value_at_risk(daily_returns, 0.95, "historical")
        second = value_at_risk(daily_returns, 0.95, "historical")

        assert first.var == second.var
        assert first.expected_shortfall == second.expected_shortfall

    @pytest.mark.parametrize("method", list(VaRMethod))
    @pytest.mark.parametrize("confidence", [0.9, 0.95, 0.99])
    def test_var_non_negative_and_es_dominates(self, daily_returns, method, confidence):
        """var >= 0 and expected_shortfall >= var for every method."""
        result = value_at_risk(daily_returns, confidence, method, seed=7)

        assert result.var >= 0
        assert result.expected_shortfall >= result.var

    @pytest.mark.parametrize("method", list(VaRMethod))
    def test_uniform_result_shape(self, daily_returns, positions, method):
        """All methods return the same fields, including the breakdown."""
        result = value_at_risk(daily_returns, 0.95, method, time_horizon=10, positions=positions, seed=1)

        assert result.confidence == 0.95
        assert result.time_horizon == 10
        assert set(result.breakdown) == {"EQUITY", "BOND", "COMMODITY"}
        assert sum(result.breakdown.values()) == pytest.approx(result.var * 50_000.0)
        assert result.portfolio_value == 50_000.0

    def test_parametric_formula(self, daily_returns):
        """Parametric VaR = |mu + z * sigma * sqrt(h)|."""
        mu = daily_returns.mean()
        sigma = daily_returns.std(ddof=1)
        z = stats.norm.ppf(0.05)

        var, _ = parametric_var(daily_returns, 0.95, time_horizon=4)

        assert var == pytest.approx(abs(mu + z * sigma * 2.0))

    def test_horizon_scaling(self, daily_returns):
        """Historical VaR scales with the square root of the horizon."""
        one_day = value_at_risk(daily_returns, 0.95, "historical", time_horizon=1)
        ten_day = value_at_risk(daily_returns, 0.95, "historical", time_horizon=10)

        assert ten_day.var == pytest.approx(one_day.var * math.sqrt(10))

    def test_monte_carlo_reproducible_with_seed(self, daily_returns):
        """A seed makes Monte Carlo VaR repeatable."""
        first = value_at_risk(daily_returns, 0.99, "monte_carlo", seed=123)
        second = value_at_risk(daily_returns, 0.99, "monte_carlo", seed=123)

        assert first.var == second.var

    def test_monte_carlo_requires_enough_samples(self, daily_returns):
        """Fewer than 10,000 simulations are rejected."""
        with pytest.raises(ValidationError):
            value_at_risk(daily_returns, 0.95, "monte_carlo", simulations=5_000)

    @pytest.mark.parametrize("confidence", [0.0, 1.0, 1.5, -0.1])
    def test_rejects_confidence_outside_unit_interval(self, daily_returns, confidence):
        with pytest.raises(ValidationError):
            value_at_risk(daily_returns, confidence)

    def test_rejects_bad_series(self):
        """Too-short or non-finite series are rejected."""
        with pytest.raises(ValidationError):
            value_at_risk([0.01])
        with pytest.raises(ValidationError):
            value_at_risk([0.01, float("nan"), -0.02])

    def test_rejects_unknown_method(self, daily_returns):
        with pytest.raises(ValidationError):
            value_at_risk(daily_returns, 0.95, "garch")

    def test_portfolio_returns(self):
        """Simple returns from a price series."""
        returns = portfolio_returns([100.0, 110.0, 99.0])

        assert returns == pytest.approx([0.1, -0.1])


class TestRiskLevelAndMitigation:
    """Tests for VaR-based level and measures."""

    @pytest.mark.parametrize(
        "var_percent,level",
        [(0.5, "low"), (1.0, "medium"), (2.9, "medium"), (3.0, "high"), (5.9, "high"), (6.0, "critical")],
    )
    def test_portfolio_risk_level(self, var_percent, level):
        assert portfolio_risk_level(var_percent) == level

    def test_mitigation_on_limit_breach(self, daily_returns, positions):
        """Breaching the VaR limit suggests reducing positions and hedging."""
        result = value_at_risk(daily_returns, 0.95, positions=positions)

        measures = suggest_mitigation_measures(result, var_limit=1.0)

        assert "Consider reducing position sizes" in measures
        assert "Implement hedging strategies" in measures


class TestStressTest:
    """Tests for scenario shocks."""

    def test_market_crash_losses(self, positions):
        """Asset-type shocks apply; negative shocks are losses."""
        crash = DEFAULT_STRESS_SCENARIOS[0]

        result = stress_test(positions, crash)

        # 30% of 20,000 + 10% of 20,000 + 25% of 10,000
        assert result.total_loss == pytest.approx(6_000 + 2_000 + 2_500)
        assert result.portfolio_value == 50_000.0
        assert result.new_value == pytest.approx(39_500.0)
        assert result.loss_percent == pytest.approx(21.0)

    def test_unmatched_assets_unshocked(self, positions):
        """Assets without a matching key get a 0% shock."""
        scenario = StressScenario(name="Equity only", shocks={"EQUITY": -50.0})

        result = stress_test(positions, scenario)

        by_asset = {p.asset_id: p for p in result.positions}
        assert by_asset["AAPL"].loss == pytest.approx(10_000.0)
        assert by_asset["UST10"].shock_percent == 0.0
        assert by_asset["GOLD"].loss == 0.0

    def test_asset_id_overrides_asset_type(self, positions):
        scenario = StressScenario(name="Single name", shocks={"EQUITY": -10.0, "AAPL": -40.0})

        result = stress_test(positions, scenario)

        assert result.positions[0].shock_percent == -40.0

    def test_rejects_impossible_shock(self, positions):
        """A price cannot fall more than 100%."""
        with pytest.raises(ValidationError):
            stress_test(positions, StressScenario(name="Bad", shocks={"EQUITY": -150.0}))


class TestLiquidity:
    """Tests for LCR and NSFR."""

    def test_lcr_zero_outflows_is_infinite_and_compliant(self):
        """lcr(1,000,000, 0) is +inf and compliant, not an exception."""
        assert lcr(1_000_000, 0) == math.inf

        position = liquidity_position(1_000_000, 0, 500, 400)

        assert position.lcr_compliant
        assert position.to_dict()["lcr_unbounded"] is True

    def test_ratios(self):
        assert lcr(120, 100) == pytest.approx(120.0)
        assert nsfr(90, 100) == pytest.approx(90.0)

    def test_nsfr_breach(self):
        position = liquidity_position(150, 100, 90, 100)

        assert position.lcr_compliant
        assert not position.nsfr_compliant
        assert not position.compliant

    def test_rejects_negative_inputs(self):
        with pytest.raises(ValidationError):
            lcr(-1, 100)
        with pytest.raises(ValidationError):
            nsfr(100, float("inf"))
