"""
Domain records consumed and produced by the monitoring engine.
"""

from riskguard.models.alert import (
    AlertCategory,
    AlertSeverity,
    AlertStatus,
    RiskAlert,
)
from riskguard.models.customer import (
    AMLStatus,
    Customer,
    CustomerType,
    ExpectedProfile,
    KYCStatus,
    PEPCategory,
    PEPStatus,
    RiskProfile,
    SanctionsScreening,
    SanctionsStatus,
)
from riskguard.models.report import (
    ComplianceReport,
    ReportStatus,
    ReportType,
)
from riskguard.models.risk import (
    CreditRiskParams,
    CreditRiskRecord,
    FinancialMetrics,
    IFRS9Stage,
    LiquidityResult,
    MarketRiskParams,
    MarketRiskRecord,
    PaymentRecord,
    Position,
    PositionLoss,
    RiskAssessment,
    StressScenario,
    StressTestResult,
    VaRMethod,
    VaRResult,
)
from riskguard.models.transaction import (
    CheckResult,
    CheckStatus,
    ComplianceChecks,
    Counterparty,
    Transaction,
    TransactionRiskAssessment,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    # Alerts
    "AlertCategory",
    "AlertSeverity",
    "AlertStatus",
    "RiskAlert",
    # Customers
    "AMLStatus",
    "Customer",
    "CustomerType",
    "ExpectedProfile",
    "KYCStatus",
    "PEPCategory",
    "PEPStatus",
    "RiskProfile",
    "SanctionsScreening",
    "SanctionsStatus",
    # Reports
    "ComplianceReport",
    "ReportStatus",
    "ReportType",
    # Risk
    "CreditRiskParams",
    "CreditRiskRecord",
    "FinancialMetrics",
    "IFRS9Stage",
    "LiquidityResult",
    "MarketRiskParams",
    "MarketRiskRecord",
    "PaymentRecord",
    "Position",
    "PositionLoss",
    "RiskAssessment",
    "StressScenario",
    "StressTestResult",
    "VaRMethod",
    "VaRResult",
    # Transactions
    "CheckResult",
    "CheckStatus",
    "ComplianceChecks",
    "Counterparty",
    "Transaction",
    "TransactionRiskAssessment",
    "TransactionStatus",
    "TransactionType",
]
