"""
Regulatory compliance reports (SAR, CTR, cross-border).

A report is editable while in draft. Submission freezes it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from riskguard.exceptions import ValidationError


class ReportType(str, Enum):
    """Report types, declared in ascending severity."""

    CTR = "ctr"
    CROSS_BORDER = "cross_border"
    SAR = "sar"

    @property
    def rank(self) -> int:
        return REPORT_TYPE_RANK[self]


# Total order used when several rules ask for different reports
REPORT_TYPE_RANK: dict[ReportType, int] = {
    ReportType.CTR: 1,
    ReportType.CROSS_BORDER: 2,
    ReportType.SAR: 3,
}


class ReportStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"


_FROZEN_FIELDS = {
    "report_type",
    "subject_id",
    "subject_name",
    "transaction_ids",
    "total_amount",
    "currency",
    "suspicion_grounds",
    "summary",
    "narrative",
}


@dataclass
class ComplianceReport:
    report_type: ReportType
    subject_id: str
    subject_name: str = ""
    transaction_ids: list[str] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    currency: str = "USD"
    suspicion_grounds: list[str] = field(default_factory=list)
    summary: str = ""
    narrative: str = ""
    id: UUID = field(default_factory=uuid4)
    status: ReportStatus = ReportStatus.DRAFT
    created_at: datetime = field(default_factory=datetime.utcnow)
    submitted_at: Optional[datetime] = None
    external_reference: Optional[str] = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _FROZEN_FIELDS and getattr(self, "status", None) == ReportStatus.SUBMITTED:
            raise ValidationError(f"Report {self.id} is submitted and cannot be modified")
        super().__setattr__(name, value)

    @property
    def reference(self) -> str:
        prefix = {
            ReportType.SAR: "SAR",
            ReportType.CTR: "CTR",
            ReportType.CROSS_BORDER: "CBR",
        }[self.report_type]
        return f"{prefix}-{self.created_at.strftime('%Y%m%d')}-{self.id.hex[:8].upper()}"

    def add_ground(self, ground: str) -> None:
        if self.status == ReportStatus.SUBMITTED:
            raise ValidationError(f"Report {self.id} is submitted and cannot be modified")
        if ground not in self.suspicion_grounds:
            self.suspicion_grounds.append(ground)

    def submit(self) -> None:
        if self.status == ReportStatus.SUBMITTED:
            raise ValidationError(f"Report {self.id} was already submitted")
        if not self.transaction_ids:
            raise ValidationError("Report must reference at least one transaction")
        self.submitted_at = datetime.utcnow()
        self.external_reference = self.reference
        self.status = ReportStatus.SUBMITTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "reference": self.reference,
            "report_type": self.report_type.value,
            "status": self.status.value,
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "transaction_ids": self.transaction_ids,
            "total_amount": str(self.total_amount),
            "currency": self.currency,
            "suspicion_grounds": self.suspicion_grounds,
            "summary": self.summary,
            "narrative": self.narrative,
            "created_at": self.created_at.isoformat(),
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "external_reference": self.external_reference,
        }
