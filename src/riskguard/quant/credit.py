"""
Credit risk: PD, LGD, EAD, ECL and IFRS 9 staging.

PD model:
    score = 0.6 * financial_score + 0.3 * payment_score + 0.1 * rating_score
    pd    = 1 / (1 + exp(steepness * (score - midpoint)))

All three component scores live on a 0 (worst) to 10 (best) scale, so with
the default steepness 1.0 and midpoint 5.0 a score of 0 gives PD ~0.9933 and
a score of 10 gives PD ~0.0067. PD is then clamped into [0.0001, 0.9999].
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from riskguard.exceptions import ComputationError, ValidationError
from riskguard.models.risk import (
    CreditRiskParams,
    CreditRiskRecord,
    FinancialMetrics,
    IFRS9Stage,
    PaymentRecord,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PDModelConfig:
    """Constants of the PD scorecard."""

    financial_weight: float = 0.6
    payment_weight: float = 0.3
    rating_weight: float = 0.1
    steepness: float = 1.0
    midpoint: float = 5.0
    pd_floor: float = 0.0001
    pd_cap: float = 0.9999
    neutral_score: float = 5.0


DEFAULT_PD_MODEL = PDModelConfig()

RATING_SCORES: dict[str, float] = {
    "AAA": 10, "AA+": 9.5, "AA": 9, "AA-": 8.5,
    "A+": 8, "A": 7.5, "A-": 7,
    "BBB+": 6.5, "BBB": 6, "BBB-": 5.5,
    "BB+": 5, "BB": 4.5, "BB-": 4,
    "B+": 3.5, "B": 3, "B-": 2.5,
    "CCC+": 2, "CCC": 1.5, "CCC-": 1,
    "CC": 0.5, "C": 0.25, "D": 0,
}

# Collateral coverage floor -> LGD, checked in order
LGD_STEPS: list[tuple[float, float]] = [
    (1.0, 0.10),
    (0.8, 0.25),
    (0.5, 0.45),
]
UNSECURED_LGD = 0.65

STAGE_3_DPD = 90
STAGE_2_DPD = 30
STAGE_2_PD = 0.02

# Limit assumed when the facility has none recorded
DEFAULT_LIMIT_HEADROOM = 1.2


def _require_finite(name: str, value: float) -> None:
    if value is None or not math.isfinite(value):
        raise ValidationError(f"{name} must be a finite number, got {value!r}")


def financial_score(metrics: FinancialMetrics) -> float:
    """Score financial ratios on a 0-10 scale (10 = strongest)."""
    for name in ("debt_to_equity", "current_ratio", "interest_coverage_ratio", "return_on_assets"):
        _require_finite(name, getattr(metrics, name))

    score = 5.0

    if metrics.debt_to_equity > 2:
        score -= 2
    elif metrics.debt_to_equity > 1:
        score -= 1
    elif metrics.debt_to_equity < 0.5:
        score += 1

    if metrics.current_ratio < 1:
        score -= 2
    elif 1.5 <= metrics.current_ratio <= 2:
        score += 1

    if metrics.interest_coverage_ratio < 2:
        score -= 2
    elif metrics.interest_coverage_ratio > 5:
        score += 1

    if metrics.return_on_assets < 0.02:
        score -= 1
    elif metrics.return_on_assets > 0.10:
        score += 1

    return max(0.0, min(10.0, score))


def payment_score(history: list[PaymentRecord]) -> float:
    """Score repayment behaviour on a 0-10 scale. No history is neutral."""
    if not history:
        return DEFAULT_PD_MODEL.neutral_score

    score = 10.0
    late = 0
    for payment in history:
        if payment.days_past_due < 0:
            raise ValidationError("days_past_due must not be negative")
        if payment.is_late:
            late += 1
            if payment.days_past_due > 90:
                score -= 3
            elif payment.days_past_due > 30:
                score -= 2
            else:
                score -= 1
        if payment.is_partial:
            score -= 1

    if late / len(history) > 0.3:
        score -= 2

    return max(0.0, min(10.0, score))


def rating_score(credit_rating: Optional[str]) -> float:
    """Map an agency rating to 0-10. Unrated or unknown ratings are neutral."""
    if not credit_rating:
        return DEFAULT_PD_MODEL.neutral_score
    return float(RATING_SCORES.get(credit_rating.strip().upper(), DEFAULT_PD_MODEL.neutral_score))


def probability_of_default(
    metrics: FinancialMetrics,
    payment_history: list[PaymentRecord],
    credit_rating: Optional[str] = None,
    config: PDModelConfig = DEFAULT_PD_MODEL,
) -> float:
    """
    Estimate the one-year probability of default.

    Returns:
        PD within [config.pd_floor, config.pd_cap]
    """
    blended = (
        financial_score(metrics) * config.financial_weight
        + payment_score(payment_history) * config.payment_weight
        + rating_score(credit_rating) * config.rating_weight
    )

    pd = 1.0 / (1.0 + math.exp(config.steepness * (blended - config.midpoint)))
    if not math.isfinite(pd):
        raise ComputationError(f"PD transform produced {pd} for score {blended}")

    return min(max(pd, config.pd_floor), config.pd_cap)


def loss_given_default(collateral_value: float, exposure: float) -> float:
    """Step function of collateral coverage."""
    _require_finite("collateral_value", collateral_value)
    _require_finite("exposure", exposure)
    if exposure <= 0:
        raise ValidationError(f"exposure must be positive, got {exposure}")
    if collateral_value < 0:
        raise ValidationError(f"collateral_value must not be negative, got {collateral_value}")

    coverage = collateral_value / exposure
    for floor, lgd in LGD_STEPS:
        if coverage >= floor:
            return lgd
    return UNSECURED_LGD


def exposure_at_default(
    drawn: float,
    undrawn: float = 0.0,
    credit_conversion_factor: float = 1.0,
) -> float:
    """Drawn balance plus the converted share of undrawn commitments."""
    _require_finite("drawn", drawn)
    _require_finite("undrawn", undrawn)
    if drawn < 0 or undrawn < 0:
        raise ValidationError("drawn and undrawn amounts must not be negative")
    if not 0 <= credit_conversion_factor <= 1:
        raise ValidationError("credit_conversion_factor must be within [0, 1]")
    return drawn + undrawn * credit_conversion_factor


def expected_credit_loss(pd: float, lgd: float, ead: float) -> float:
    """ECL = PD x LGD x EAD."""
    _require_finite("pd", pd)
    _require_finite("lgd", lgd)
    _require_finite("ead", ead)
    if not 0 < pd < 1:
        raise ValidationError(f"pd must be within (0, 1), got {pd}")
    if not 0 <= lgd <= 1:
        raise ValidationError(f"lgd must be within [0, 1], got {lgd}")
    if ead < 0:
        raise ValidationError(f"ead must not be negative, got {ead}")
    return pd * lgd * ead


def ifrs9_stage(days_past_due: int, pd: float) -> IFRS9Stage:
    """IFRS 9 impairment stage from delinquency and PD."""
    if days_past_due < 0:
        raise ValidationError("days_past_due must not be negative")
    if days_past_due > STAGE_3_DPD:
        return IFRS9Stage.CREDIT_IMPAIRED
    if days_past_due > STAGE_2_DPD or pd > STAGE_2_PD:
        return IFRS9Stage.UNDERPERFORMING
    return IFRS9Stage.PERFORMING


def current_days_past_due(history: list[PaymentRecord]) -> int:
    """Delinquency of the most recent scheduled payment."""
    if not history:
        return 0
    return max(history, key=lambda p: p.date).days_past_due


def is_watch_listed(metrics: FinancialMetrics) -> bool:
    return (
        metrics.debt_to_equity > 3
        or metrics.current_ratio < 1
        or metrics.interest_coverage_ratio < 2
    )


def calculate_credit_risk(
    params: CreditRiskParams,
    config: PDModelConfig = DEFAULT_PD_MODEL,
) -> CreditRiskRecord:
    """Run the full credit model for one facility."""
    pd = probability_of_default(
        params.financial_metrics,
        params.payment_history,
        params.credit_rating,
        config=config,
    )
    lgd = loss_given_default(params.collateral_value, params.exposure_amount)
    ead = exposure_at_default(
        params.exposure_amount,
        params.undrawn_amount,
        params.credit_conversion_factor,
    )
    ecl = expected_credit_loss(pd, lgd, ead)
    dpd = current_days_past_due(params.payment_history)
    stage = ifrs9_stage(dpd, pd)

    limit = params.credit_limit
    if limit is None:
        limit = params.exposure_amount * DEFAULT_LIMIT_HEADROOM
    if limit <= 0:
        raise ValidationError(f"credit_limit must be positive, got {limit}")

    record = CreditRiskRecord(
        borrower_id=params.borrower_id,
        facility_id=params.facility_id,
        probability_of_default=pd,
        loss_given_default=lgd,
        exposure_at_default=ead,
        expected_credit_loss=ecl,
        stage=stage,
        credit_rating=params.credit_rating or "Unrated",
        days_past_due=dpd,
        limit_utilization=params.exposure_amount / limit,
        watch_list=is_watch_listed(params.financial_metrics),
    )

    logger.debug(
        f"Credit risk {params.borrower_id}/{params.facility_id}: "
        f"pd={pd:.4f} lgd={lgd:.2f} ead={ead:.2f} ecl={ecl:.2f} stage={int(stage)}"
    )
    return record
