"""
Transaction records and the risk/compliance sub-records the engine owns.

Financial fields are fixed once a transaction is completed. The engine only
writes the risk assessment, the compliance checks, the report references and
the status change that screening forces.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from riskguard.exceptions import ValidationError


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    PAYMENT = "payment"
    WIRE = "wire"
    EXCHANGE = "exchange"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    UNDER_REVIEW = "under_review"
    BLOCKED = "blocked"
    FAILED = "failed"


class CheckStatus(str, Enum):
    """Outcome of one compliance check."""

    PASS = "pass"
    FAIL = "fail"
    PENDING = "pending"
    ERROR = "error"


@dataclass
class Counterparty:
    name: str = ""
    country: Optional[str] = None
    bank_name: Optional[str] = None
    bank_code: Optional[str] = None
    account: Optional[str] = None


@dataclass
class CheckResult:
    """One entry of the compliance-check sub-record."""

    status: CheckStatus = CheckStatus.PENDING
    matched_lists: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    checked_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "matched_lists": self.matched_lists,
            "details": self.details,
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
        }


@dataclass
class ComplianceChecks:
    sanctions_screening: CheckResult = field(default_factory=CheckResult)
    pep_screening: CheckResult = field(default_factory=CheckResult)
    threshold_check: CheckResult = field(default_factory=CheckResult)
    pattern_analysis: CheckResult = field(default_factory=CheckResult)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sanctions_screening": self.sanctions_screening.to_dict(),
            "pep_screening": self.pep_screening.to_dict(),
            "threshold_check": self.threshold_check.to_dict(),
            "pattern_analysis": self.pattern_analysis.to_dict(),
        }


@dataclass
class TransactionRiskAssessment:
    """Risk sub-record written back after evaluation."""

    overall: float = 0.0
    aml: float = 0.0
    cft: float = 0.0
    sanctions: float = 0.0
    level: str = "low"
    factors: list[str] = field(default_factory=list)
    assessed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall,
            "aml": self.aml,
            "cft": self.cft,
            "sanctions": self.sanctions,
            "level": self.level,
            "factors": self.factors,
            "assessed_at": self.assessed_at.isoformat() if self.assessed_at else None,
        }


@dataclass
class Transaction:
    """A financial event for one customer."""

    customer_id: UUID
    amount: Decimal
    transaction_type: TransactionType
    id: UUID = field(default_factory=uuid4)
    currency: str = "USD"
    usd_equivalent: Optional[Decimal] = None
    counterparty: Counterparty = field(default_factory=Counterparty)
    channel: str = "branch"
    value_date: datetime = field(default_factory=datetime.utcnow)
    booking_date: Optional[datetime] = None
    reporting_date: Optional[datetime] = None
    status: TransactionStatus = TransactionStatus.PENDING
    portfolio_id: Optional[str] = None

    risk_assessment: TransactionRiskAssessment = field(default_factory=TransactionRiskAssessment)
    compliance_checks: ComplianceChecks = field(default_factory=ComplianceChecks)
    report_references: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            self.amount = Decimal(str(self.amount))
        if self.amount < 0:
            raise ValidationError(f"Transaction amount must not be negative: {self.amount}")
        if self.usd_equivalent is None:
            self.usd_equivalent = self.amount
        elif not isinstance(self.usd_equivalent, Decimal):
            self.usd_equivalent = Decimal(str(self.usd_equivalent))
        if self.booking_date is None:
            self.booking_date = self.value_date

    @property
    def is_cash(self) -> bool:
        return self.transaction_type in (TransactionType.DEPOSIT, TransactionType.WITHDRAWAL)

    @property
    def auto_approvable(self) -> bool:
        """Only a transaction whose sanctions screening passed can be auto-approved."""
        return (
            self.compliance_checks.sanctions_screening.status == CheckStatus.PASS
            and self.status not in (TransactionStatus.BLOCKED, TransactionStatus.UNDER_REVIEW)
        )

    def enforce_screening_status(self) -> None:
        """Apply the status a sanctions check outcome forces."""
        sanctions = self.compliance_checks.sanctions_screening.status
        if sanctions == CheckStatus.FAIL:
            self.status = TransactionStatus.BLOCKED
        elif sanctions in (CheckStatus.PENDING, CheckStatus.ERROR):
            if self.status != TransactionStatus.BLOCKED:
                self.status = TransactionStatus.UNDER_REVIEW

    def record_report(self, report_type: str, reference: str) -> None:
        self.report_references[report_type] = reference

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "customer_id": str(self.customer_id),
            "amount": str(self.amount),
            "currency": self.currency,
            "usd_equivalent": str(self.usd_equivalent),
            "transaction_type": self.transaction_type.value,
            "counterparty": {
                "name": self.counterparty.name,
                "country": self.counterparty.country,
                "bank_name": self.counterparty.bank_name,
                "bank_code": self.counterparty.bank_code,
            },
            "channel": self.channel,
            "value_date": self.value_date.isoformat(),
            "booking_date": self.booking_date.isoformat() if self.booking_date else None,
            "status": self.status.value,
            "risk_assessment": self.risk_assessment.to_dict(),
            "compliance_checks": self.compliance_checks.to_dict(),
            "report_references": self.report_references,
        }
