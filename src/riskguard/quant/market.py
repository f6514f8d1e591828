"""
Market risk: Value at Risk, Expected Shortfall and stress testing.

Returns are fractional period returns (0.01 == +1%). VaR and ES are
reported as positive loss fractions; multiply by portfolio value for money
amounts. All three VaR methods take the same inputs and produce the same
VaRResult so callers can switch methods without branching.
"""

import logging
import math
from typing import Optional, Sequence, Union

import numpy as np
from scipy import stats

from riskguard.exceptions import ComputationError, ValidationError
from riskguard.models.risk import (
    Position,
    PositionLoss,
    StressScenario,
    StressTestResult,
    VaRMethod,
    VaRResult,
)

logger = logging.getLogger(__name__)

MIN_SIMULATIONS = 10_000

DEFAULT_STRESS_SCENARIOS: list[StressScenario] = [
    StressScenario(
        name="Market Crash",
        shocks={"EQUITY": -30.0, "BOND": -10.0, "COMMODITY": -25.0},
        description="Broad equity sell-off with commodity contagion",
    ),
    StressScenario(
        name="Interest Rate Shock",
        shocks={"BOND": -15.0, "EQUITY": -10.0, "REAL_ESTATE": -20.0},
        description="Sharp parallel rise in rates",
    ),
    StressScenario(
        name="Credit Crisis",
        shocks={"CREDIT": -40.0, "EQUITY": -20.0, "BOND": -8.0},
        description="Spread blow-out and funding stress",
    ),
]

# VaR as percent of portfolio value -> level, checked in order
VAR_LEVEL_BANDS: list[tuple[float, str]] = [
    (1.0, "low"),
    (3.0, "medium"),
    (6.0, "high"),
]


def _validate_returns(returns: Union[Sequence[float], np.ndarray]) -> np.ndarray:
    try:
        series = np.asarray(returns, dtype=float)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"returns must be numeric: {e}")
    if series.ndim != 1:
        raise ValidationError("returns must be a one-dimensional series")
    if series.size < 2:
        raise ValidationError("at least two return observations are required")
    if not np.all(np.isfinite(series)):
        raise ValidationError("returns must not contain NaN or infinite values")
    return series


def _validate_confidence(confidence: float) -> None:
    if confidence is None or not 0 < confidence < 1:
        raise ValidationError(f"confidence must be within (0, 1), got {confidence}")


def _validate_horizon(time_horizon: int) -> None:
    if time_horizon is None or time_horizon < 1:
        raise ValidationError(f"time_horizon must be at least 1, got {time_horizon}")


def _empirical_tail(series: np.ndarray, confidence: float) -> tuple[float, float]:
    """Return (quantile, mean of observations at or below it)."""
    # Rounded so 0.95 reads the 5th percentile, not 5.000000000000004
    percentile = round((1 - confidence) * 100, 10)
    quantile = float(np.percentile(series, percentile))
    tail = series[series <= quantile]
    if tail.size == 0:
        raise ComputationError("empty tail when computing expected shortfall")
    return quantile, float(tail.mean())


def _finalise(var: float, es: float) -> tuple[float, float]:
    if not (math.isfinite(var) and math.isfinite(es)):
        raise ComputationError(f"non-finite VaR/ES ({var}, {es})")
    # Tail loss is never below the quantile loss
    return var, max(es, var)


def historical_var(
    returns: Union[Sequence[float], np.ndarray],
    confidence: float,
    time_horizon: int = 1,
) -> tuple[float, float]:
    """Empirical (1 - confidence) quantile of the return series."""
    series = _validate_returns(returns)
    _validate_confidence(confidence)
    _validate_horizon(time_horizon)

    scale = math.sqrt(time_horizon)
    quantile, tail_mean = _empirical_tail(series, confidence)
    return _finalise(abs(quantile) * scale, abs(tail_mean) * scale)


def parametric_var(
    returns: Union[Sequence[float], np.ndarray],
    confidence: float,
    time_horizon: int = 1,
) -> tuple[float, float]:
    """
    Variance-covariance VaR assuming normally distributed returns.

    VaR = |mu + z * sigma * sqrt(h)|
    ES  = |mu - sigma * sqrt(h) * pdf(z) / (1 - confidence)|
    """
    series = _validate_returns(returns)
    _validate_confidence(confidence)
    _validate_horizon(time_horizon)

    mu = float(series.mean())
    sigma = float(series.std(ddof=1))
    z = float(stats.norm.ppf(1 - confidence))
    scaled_sigma = sigma * math.sqrt(time_horizon)

    var = abs(mu + z * scaled_sigma)
    es = abs(mu - scaled_sigma * float(stats.norm.pdf(z)) / (1 - confidence))
    return _finalise(var, es)


def monte_carlo_var(
    returns: Union[Sequence[float], np.ndarray],
    confidence: float,
    time_horizon: int = 1,
    simulations: int = MIN_SIMULATIONS,
    seed: Optional[int] = None,
) -> tuple[float, float]:
    """Simulate normal returns with the series' moments, then read the empirical tail."""
    series = _validate_returns(returns)
    _validate_confidence(confidence)
    _validate_horizon(time_horizon)
    if simulations < MIN_SIMULATIONS:
        raise ValidationError(f"simulations must be at least {MIN_SIMULATIONS}, got {simulations}")

    rng = np.random.default_rng(seed)
    simulated = rng.normal(float(series.mean()), float(series.std(ddof=1)), simulations)
    return historical_var(simulated, confidence, time_horizon)


def var_breakdown(positions: list[Position], var: float) -> tuple[dict[str, float], float]:
    """
    Split VaR across asset types in proportion to market value.

    Returns:
        Tuple of (VaR amount per asset type, total portfolio value)
    """
    values: dict[str, float] = {}
    for position in positions:
        if position.quantity < 0 or position.current_price < 0:
            raise ValidationError(f"Position {position.asset_id} has a negative quantity or price")
        values[position.asset_type] = values.get(position.asset_type, 0.0) + position.market_value

    total = sum(values.values())
    if total <= 0:
        raise ValidationError("portfolio value must be positive to split VaR")

    return {asset_type: var * value for asset_type, value in values.items()}, total


def value_at_risk(
    returns: Union[Sequence[float], np.ndarray],
    confidence: float = 0.95,
    method: Union[VaRMethod, str] = VaRMethod.HISTORICAL,
    time_horizon: int = 1,
    positions: Optional[list[Position]] = None,
    simulations: int = MIN_SIMULATIONS,
    seed: Optional[int] = None,
) -> VaRResult:
    """
    Compute VaR and Expected Shortfall with the chosen method.

    Args:
        returns: Historical period returns
        confidence: Confidence level within (0, 1)
        method: historical, parametric or monte_carlo
        time_horizon: Holding period in days (square-root-of-time scaling)
        positions: Optional positions for the per-asset-type breakdown
        simulations: Monte Carlo sample size (>= 10,000)
        seed: Monte Carlo seed for reproducible runs

    Returns:
        VaRResult with positive var and expected_shortfall >= var
    """
    try:
        method = VaRMethod(method)
    except ValueError:
        raise ValidationError(f"Unsupported VaR method: {method}")

    if method == VaRMethod.HISTORICAL:
        var, es = historical_var(returns, confidence, time_horizon)
    elif method == VaRMethod.PARAMETRIC:
        var, es = parametric_var(returns, confidence, time_horizon)
    else:
        var, es = monte_carlo_var(returns, confidence, time_horizon, simulations, seed)

    breakdown: dict[str, float] = {}
    portfolio_value = None
    if positions:
        breakdown, portfolio_value = var_breakdown(positions, var)

    return VaRResult(
        var=var,
        expected_shortfall=es,
        confidence=confidence,
        method=method,
        time_horizon=time_horizon,
        breakdown=breakdown,
        portfolio_value=portfolio_value,
    )


def portfolio_returns(prices: Union[Sequence[float], np.ndarray]) -> np.ndarray:
    """Simple period returns from a price series."""
    series = np.asarray(prices, dtype=float)
    if series.ndim != 1 or series.size < 3:
        raise ValidationError("at least three prices are required")
    if not np.all(np.isfinite(series)) or np.any(series <= 0):
        raise ValidationError("prices must be finite and positive")
    return np.diff(series) / series[:-1]


def stress_test(positions: list[Position], scenario: StressScenario) -> StressTestResult:
    """
    Apply percentage shocks to positions.

    A shock keyed by asset id wins over one keyed by asset type; positions
    matching neither are left unshocked. Negative shocks are price falls and
    produce positive losses.
    """
    losses: list[PositionLoss] = []
    total_value = 0.0
    total_loss = 0.0

    for key, shock in scenario.shocks.items():
        if not math.isfinite(shock) or shock < -100:
            raise ValidationError(f"Shock {key}={shock} in {scenario.name} is out of range")

    for position in positions:
        value = position.market_value
        if value < 0:
            raise ValidationError(f"Position {position.asset_id} has negative market value")
        shock = scenario.shocks.get(position.asset_id, scenario.shocks.get(position.asset_type, 0.0))
        loss = -value * shock / 100
        losses.append(PositionLoss(
            asset_id=position.asset_id,
            asset_type=position.asset_type,
            market_value=value,
            shock_percent=shock,
            loss=loss,
        ))
        total_value += value
        total_loss += loss

    return StressTestResult(
        scenario=scenario.name,
        total_loss=total_loss,
        portfolio_value=total_value,
        new_value=total_value - total_loss,
        positions=losses,
    )


def portfolio_risk_level(var_percent: float) -> str:
    """Risk level of a portfolio from VaR as percent of its value."""
    for ceiling, level in VAR_LEVEL_BANDS:
        if var_percent < ceiling:
            return level
    return "critical"


def suggest_mitigation_measures(result: VaRResult, var_limit: float) -> list[str]:
    """Standard mitigation suggestions for a VaR result."""
    measures = ["Regular portfolio rebalancing"]

    exposure = result.var_amount if result.var_amount is not None else result.var
    if exposure > var_limit:
        measures.append("Consider reducing position sizes")
        measures.append("Implement hedging strategies")

    if result.expected_shortfall > result.var * 1.5:
        measures.append("Review tail risk exposure")
        measures.append("Diversify across asset classes")

    return measures
