"""
Quantitative risk library.

Pure functions without I/O. Out-of-domain input raises ValidationError
before anything is computed.
"""

from riskguard.quant.credit import (
    DEFAULT_PD_MODEL,
    PDModelConfig,
    calculate_credit_risk,
    expected_credit_loss,
    exposure_at_default,
    ifrs9_stage,
    loss_given_default,
    probability_of_default,
)
from riskguard.quant.liquidity import lcr, liquidity_position, nsfr
from riskguard.quant.market import (
    DEFAULT_STRESS_SCENARIOS,
    portfolio_returns,
    portfolio_risk_level,
    stress_test,
    suggest_mitigation_measures,
    value_at_risk,
)

__all__ = [
    "DEFAULT_PD_MODEL",
    "PDModelConfig",
    "calculate_credit_risk",
    "expected_credit_loss",
    "exposure_at_default",
    "ifrs9_stage",
    "loss_given_default",
    "probability_of_default",
    "lcr",
    "liquidity_position",
    "nsfr",
    "DEFAULT_STRESS_SCENARIOS",
    "portfolio_returns",
    "portfolio_risk_level",
    "stress_test",
    "suggest_mitigation_measures",
    "value_at_risk",
]
