"""
Database module for engine-owned records.
"""

from riskguard.db.orm import Base, CreditRiskRow, MarketRiskRow, RiskAlertRow, RiskAssessmentRow
from riskguard.db.repositories import RiskRecordRepository, SqlAlertSink
from riskguard.db.session import create_session_factory

__all__ = [
    "Base",
    "CreditRiskRow",
    "MarketRiskRow",
    "RiskAlertRow",
    "RiskAssessmentRow",
    "RiskRecordRepository",
    "SqlAlertSink",
    "create_session_factory",
]
