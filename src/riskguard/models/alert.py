"""
Risk alerts raised by the alert trigger.

Status machine: active -> acknowledged -> resolved | dismissed.
An active alert may also be resolved or dismissed directly.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from riskguard.exceptions import ValidationError


class AlertCategory(str, Enum):
    MARKET = "market"
    CREDIT = "credit"
    LIQUIDITY = "liquidity"
    AML = "aml"
    OPERATIONAL = "operational"


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


ALLOWED_TRANSITIONS: dict[AlertStatus, set[AlertStatus]] = {
    AlertStatus.ACTIVE: {AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED, AlertStatus.DISMISSED},
    AlertStatus.ACKNOWLEDGED: {AlertStatus.RESOLVED, AlertStatus.DISMISSED},
    AlertStatus.RESOLVED: set(),
    AlertStatus.DISMISSED: set(),
}


@dataclass
class RiskAlert:
    """An alert about one entity and one risk category."""

    entity_id: str
    entity_type: str
    category: AlertCategory
    severity: AlertSeverity
    metric: str
    message: str
    threshold: Optional[float] = None
    actual_value: Optional[float] = None
    dedup_key: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: datetime = field(default_factory=datetime.utcnow)
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    notes: str = ""

    @property
    def is_open(self) -> bool:
        """Open alerts count towards de-duplication."""
        return self.status in (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED)

    def _transition(self, target: AlertStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise ValidationError(
                f"Alert {self.id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target

    def acknowledge(self, user_id: str, notes: str = "") -> None:
        """Acknowledge the alert."""
        self._transition(AlertStatus.ACKNOWLEDGED)
        self.acknowledged_by = user_id
        self.acknowledged_at = datetime.utcnow()
        if notes:
            self.notes = notes

    def resolve(self, user_id: str, notes: str = "") -> None:
        self._transition(AlertStatus.RESOLVED)
        self.resolved_by = user_id
        self.resolved_at = datetime.utcnow()
        if notes:
            self.notes = notes

    def dismiss(self, user_id: str, notes: str = "") -> None:
        self._transition(AlertStatus.DISMISSED)
        self.resolved_by = user_id
        self.resolved_at = datetime.utcnow()
        if notes:
            self.notes = notes

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": str(self.id),
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "category": self.category.value,
            "severity": self.severity.value,
            "metric": self.metric,
            "message": self.message,
            "threshold": self.threshold,
            "actual_value": self.actual_value,
            "dedup_key": self.dedup_key,
            "details": self.details,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "acknowledged_by": self.acknowledged_by,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "notes": self.notes,
        }
