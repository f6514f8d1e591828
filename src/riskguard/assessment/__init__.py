"""
Periodic (batch) risk assessment.
"""

from riskguard.assessment.scheduler import (
    AssessmentBatchResult,
    AssessmentEntity,
    AssessmentJob,
    LiquidityInputs,
    PeriodicAssessmentDriver,
)

__all__ = [
    "AssessmentBatchResult",
    "AssessmentEntity",
    "AssessmentJob",
    "LiquidityInputs",
    "PeriodicAssessmentDriver",
]
