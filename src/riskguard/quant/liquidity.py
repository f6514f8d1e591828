"""
Basel III liquidity ratios.

Both ratios are percentages. A zero denominator means there is nothing to
cover, which is reported as math.inf and treated as compliant.
"""

import math

from riskguard.exceptions import ValidationError
from riskguard.models.risk import LiquidityResult


def _ratio(name: str, numerator: float, denominator: float) -> float:
    for label, value in ((f"{name} numerator", numerator), (f"{name} denominator", denominator)):
        if value is None or not math.isfinite(value):
            raise ValidationError(f"{label} must be a finite number, got {value!r}")
        if value < 0:
            raise ValidationError(f"{label} must not be negative, got {value}")
    if denominator == 0:
        return math.inf
    return numerator / denominator * 100


def lcr(hqla: float, net_outflows: float) -> float:
    """Liquidity Coverage Ratio: HQLA / 30-day net cash outflows x 100."""
    return _ratio("LCR", hqla, net_outflows)


def nsfr(available_funding: float, required_funding: float) -> float:
    """Net Stable Funding Ratio: available / required stable funding x 100."""
    return _ratio("NSFR", available_funding, required_funding)


def liquidity_position(
    hqla: float,
    net_outflows: float,
    available_funding: float,
    required_funding: float,
    lcr_minimum: float = 100.0,
    nsfr_minimum: float = 100.0,
) -> LiquidityResult:
    return LiquidityResult(
        lcr=lcr(hqla, net_outflows),
        nsfr=nsfr(available_funding, required_funding),
        lcr_minimum=lcr_minimum,
        nsfr_minimum=nsfr_minimum,
    )
