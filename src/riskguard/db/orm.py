"""
SQLAlchemy models for the records the engine owns.

- Risk alerts, looked up by de-duplication key and creation time
- Credit risk records per (borrower, facility) and calculation run
- Market risk records per (portfolio, method, horizon) with validity
- Periodic risk assessment snapshots

Customer, transaction and portfolio tables belong to other services and are
not mapped here.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Float, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class RiskAlertRow(Base):
    """
    Alert raised by the alert trigger.

    De-duplication is a sliding window, so several open alerts may share a
    key over time and the key index is not unique. Writers serialize per key
    with a transaction-scoped advisory lock instead (see SqlAlertSink).
    """

    __tablename__ = "risk_alerts"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)  # 'critical', 'high', 'medium', 'low'
    metric: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    threshold: Mapped[Optional[float]] = mapped_column(Float)
    actual_value: Mapped[Optional[float]] = mapped_column(Float)

    dedup_key: Mapped[str] = mapped_column(String(400), nullable=False)
    details: Mapped[dict] = mapped_column(JSONB, default=dict)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(100))
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(100))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'acknowledged', 'resolved', 'dismissed')",
            name="ck_risk_alerts_status",
        ),
        Index(
            "idx_risk_alerts_open_dedup_key",
            "dedup_key",
            "created_at",
            postgresql_where=text("status IN ('active', 'acknowledged')"),
        ),
        Index("idx_risk_alerts_entity", "entity_id", "category"),
        Index("idx_risk_alerts_status", "status"),
    )


class CreditRiskRow(Base):
    __tablename__ = "credit_risk_records"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id: Mapped[str] = mapped_column(String(100), nullable=False)
    facility_id: Mapped[str] = mapped_column(String(100), nullable=False)

    probability_of_default: Mapped[float] = mapped_column(Float, nullable=False)
    loss_given_default: Mapped[float] = mapped_column(Float, nullable=False)
    exposure_at_default: Mapped[float] = mapped_column(Float, nullable=False)
    expected_credit_loss: Mapped[float] = mapped_column(Float, nullable=False)
    stage: Mapped[int] = mapped_column(Integer, nullable=False)

    credit_rating: Mapped[str] = mapped_column(String(20), default="Unrated")
    days_past_due: Mapped[int] = mapped_column(Integer, default=0)
    limit_utilization: Mapped[float] = mapped_column(Float, default=0.0)
    watch_list: Mapped[bool] = mapped_column(Boolean, default=False)

    calculated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("probability_of_default > 0 AND probability_of_default < 1", name="ck_credit_pd"),
        CheckConstraint("loss_given_default >= 0 AND loss_given_default <= 1", name="ck_credit_lgd"),
        CheckConstraint("exposure_at_default >= 0 AND expected_credit_loss >= 0", name="ck_credit_amounts"),
        CheckConstraint("stage IN (1, 2, 3)", name="ck_credit_stage"),
        Index("idx_credit_facility", "borrower_id", "facility_id", "calculated_at"),
    )


class MarketRiskRow(Base):
    __tablename__ = "market_risk_records"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    portfolio_id: Mapped[str] = mapped_column(String(100), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    time_horizon: Mapped[int] = mapped_column(Integer, nullable=False)

    value: Mapped[float] = mapped_column(Float, nullable=False)
    expected_shortfall: Mapped[float] = mapped_column(Float, nullable=False)
    breakdown: Mapped[dict] = mapped_column(JSONB, default=dict)

    calculated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    valid_until: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("confidence > 0 AND confidence < 1", name="ck_market_confidence"),
        Index("idx_market_portfolio", "portfolio_id", "method", "time_horizon"),
    )


class RiskAssessmentRow(Base):
    """Snapshot written by every periodic assessment."""

    __tablename__ = "risk_assessments"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    factors: Mapped[list] = mapped_column(JSONB, default=list)
    mitigation_measures: Mapped[list] = mapped_column(JSONB, default=list)

    # Full snapshot including market, credit, liquidity and stress results
    payload: Mapped[dict] = mapped_column(JSONB, default=dict)

    assessed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= 100", name="ck_assessment_score"),
        Index("idx_assessments_entity", "entity_id", "assessed_at"),
    )
