"""
Customer records as read by the engine.

Customers are owned by onboarding and admin workflows; the engine only reads
them. They are soft-deactivated, never deleted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from riskguard.exceptions import ValidationError


class CustomerType(str, Enum):
    """Customer classification."""

    INDIVIDUAL = "individual"
    CORPORATE = "corporate"


class KYCStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    EXPIRED = "expired"
    REJECTED = "rejected"


class AMLStatus(str, Enum):
    CLEAR = "clear"
    UNDER_REVIEW = "under_review"
    FLAGGED = "flagged"
    BLOCKED = "blocked"


class PEPCategory(str, Enum):
    """Politically exposed person categories."""

    DOMESTIC = "domestic"
    FOREIGN = "foreign"
    INTERNATIONAL_ORG = "international_org"
    FAMILY = "family"
    CLOSE_ASSOCIATE = "close_associate"


class SanctionsStatus(str, Enum):
    CLEAR = "clear"
    MATCH = "match"
    POTENTIAL = "potential"


@dataclass
class RiskProfile:
    """Declared risk profile of a customer."""

    level: str = "low"
    score: float = 0.0
    factors: list[str] = field(default_factory=list)
    last_assessment: Optional[datetime] = None
    next_review: Optional[datetime] = None

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ValidationError(
                f"Risk profile score must be within [0, 100], got {self.score}"
            )
        if (
            self.last_assessment
            and self.next_review
            and self.next_review < self.last_assessment
        ):
            raise ValidationError("next_review must not precede last_assessment")

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "score": self.score,
            "factors": self.factors,
            "last_assessment": self.last_assessment.isoformat() if self.last_assessment else None,
            "next_review": self.next_review.isoformat() if self.next_review else None,
        }


@dataclass
class PEPStatus:
    is_pep: bool = False
    category: Optional[PEPCategory] = None
    last_checked: Optional[datetime] = None


@dataclass
class SanctionsScreening:
    status: SanctionsStatus = SanctionsStatus.CLEAR
    matched_lists: list[str] = field(default_factory=list)
    last_checked: Optional[datetime] = None


@dataclass
class ExpectedProfile:
    """What the customer declared at onboarding about their activity."""

    monthly_turnover: Optional[Decimal] = None
    transaction_types: list[str] = field(default_factory=list)
    countries: list[str] = field(default_factory=list)
    average_transaction_size: Optional[Decimal] = None


@dataclass
class Customer:
    """A bank customer, individual or corporate."""

    name: str
    id: UUID = field(default_factory=uuid4)
    customer_type: CustomerType = CustomerType.INDIVIDUAL
    risk_profile: RiskProfile = field(default_factory=RiskProfile)
    kyc_status: KYCStatus = KYCStatus.PENDING
    aml_status: AMLStatus = AMLStatus.CLEAR
    pep_status: PEPStatus = field(default_factory=PEPStatus)
    sanctions_screening: SanctionsScreening = field(default_factory=SanctionsScreening)
    expected_profile: ExpectedProfile = field(default_factory=ExpectedProfile)
    country: Optional[str] = None
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.utcnow)

    def deactivate(self) -> None:
        """Soft-deactivate the customer."""
        self.is_active = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "customer_type": self.customer_type.value,
            "risk_profile": self.risk_profile.to_dict(),
            "kyc_status": self.kyc_status.value,
            "aml_status": self.aml_status.value,
            "pep_status": {
                "is_pep": self.pep_status.is_pep,
                "category": self.pep_status.category.value if self.pep_status.category else None,
            },
            "sanctions_screening": {
                "status": self.sanctions_screening.status.value,
                "matched_lists": self.sanctions_screening.matched_lists,
            },
            "country": self.country,
            "is_active": self.is_active,
        }
