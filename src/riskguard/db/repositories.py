"""
Database repositories for engine-owned records.

SqlAlertSink implements the AlertSink contract and RiskRecordRepository the
RiskRecordStore contract on top of an AsyncSession. Committing is left to
the caller that owns the session.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from riskguard.db.orm import CreditRiskRow, MarketRiskRow, RiskAlertRow, RiskAssessmentRow
from riskguard.exceptions import DependencyError
from riskguard.models.alert import AlertCategory, AlertSeverity, AlertStatus, RiskAlert
from riskguard.models.risk import (
    CreditRiskRecord,
    IFRS9Stage,
    MarketRiskRecord,
    RiskAssessment,
    VaRMethod,
)

logger = logging.getLogger(__name__)

OPEN_STATUSES = (AlertStatus.ACTIVE.value, AlertStatus.ACKNOWLEDGED.value)

# Held until the surrounding transaction ends
KEY_LOCK = text("SELECT pg_advisory_xact_lock(hashtext(:key))")


def alert_to_row(alert: RiskAlert) -> RiskAlertRow:
    return RiskAlertRow(
        id=alert.id,
        entity_id=alert.entity_id,
        entity_type=alert.entity_type,
        category=alert.category.value,
        severity=alert.severity.value,
        metric=alert.metric,
        message=alert.message,
        threshold=alert.threshold,
        actual_value=alert.actual_value,
        dedup_key=alert.dedup_key,
        details=alert.details,
        status=alert.status.value,
        acknowledged_by=alert.acknowledged_by,
        acknowledged_at=alert.acknowledged_at,
        resolved_by=alert.resolved_by,
        resolved_at=alert.resolved_at,
        notes=alert.notes,
        created_at=alert.created_at,
    )


def row_to_alert(row: RiskAlertRow) -> RiskAlert:
    return RiskAlert(
        id=row.id,
        entity_id=row.entity_id,
        entity_type=row.entity_type,
        category=AlertCategory(row.category),
        severity=AlertSeverity(row.severity),
        metric=row.metric,
        message=row.message,
        threshold=row.threshold,
        actual_value=row.actual_value,
        dedup_key=row.dedup_key,
        details=dict(row.details or {}),
        status=AlertStatus(row.status),
        acknowledged_by=row.acknowledged_by,
        acknowledged_at=row.acknowledged_at,
        resolved_by=row.resolved_by,
        resolved_at=row.resolved_at,
        notes=row.notes or "",
        created_at=row.created_at,
    )


class SqlAlertSink:
    """Alert sink backed by the risk_alerts table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get_open_row(
        self, dedup_key: str, since: Optional[datetime] = None
    ) -> Optional[RiskAlertRow]:
        stmt = select(RiskAlertRow).where(
            RiskAlertRow.dedup_key == dedup_key,
            RiskAlertRow.status.in_(OPEN_STATUSES),
        )
        if since is not None:
            stmt = stmt.where(RiskAlertRow.created_at >= since)
        stmt = stmt.order_by(RiskAlertRow.created_at.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_alert(self, dedup_key: str, since: Optional[datetime] = None) -> Optional[RiskAlert]:
        row = await self._get_open_row(dedup_key, since)
        return row_to_alert(row) if row else None

    async def create_alert(self, alert: RiskAlert) -> UUID:
        """Create an alert unconditionally."""
        self.session.add(alert_to_row(alert))
        await self.session.flush()
        return alert.id

    async def create_alert_if_absent(self, alert: RiskAlert, since: datetime) -> tuple[RiskAlert, bool]:
        """
        Insert the alert unless an open one with its key was created since.

        The advisory lock on the key serializes lookup and insert across
        processes until the caller commits or rolls back.
        """
        await self.session.execute(KEY_LOCK, {"key": alert.dedup_key})

        existing = await self._get_open_row(alert.dedup_key, since)
        if existing is not None:
            logger.debug(f"Open alert {existing.id} already holds {alert.dedup_key}")
            return row_to_alert(existing), False

        self.session.add(alert_to_row(alert))
        await self.session.flush()
        return alert, True

    async def update_status(self, alert: RiskAlert) -> None:
        """Persist a status transition made on the domain alert."""
        result = await self.session.execute(
            select(RiskAlertRow).where(RiskAlertRow.id == alert.id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise DependencyError(f"Alert {alert.id} not found", dependency="alert_sink")

        row.status = alert.status.value
        row.acknowledged_by = alert.acknowledged_by
        row.acknowledged_at = alert.acknowledged_at
        row.resolved_by = alert.resolved_by
        row.resolved_at = alert.resolved_at
        row.notes = alert.notes
        await self.session.flush()

    async def list_open(self, entity_id: Optional[str] = None, limit: int = 50) -> list[RiskAlert]:
        stmt = select(RiskAlertRow).where(RiskAlertRow.status.in_(OPEN_STATUSES))
        if entity_id:
            stmt = stmt.where(RiskAlertRow.entity_id == entity_id)
        stmt = stmt.order_by(RiskAlertRow.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return [row_to_alert(row) for row in result.scalars().all()]


class RiskRecordRepository:
    """Stores credit and market risk records and assessment snapshots."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_credit_record(self, record: CreditRiskRecord) -> None:
        self.session.add(
            CreditRiskRow(
                id=record.id,
                borrower_id=record.borrower_id,
                facility_id=record.facility_id,
                probability_of_default=record.probability_of_default,
                loss_given_default=record.loss_given_default,
                exposure_at_default=record.exposure_at_default,
                expected_credit_loss=record.expected_credit_loss,
                stage=int(record.stage),
                credit_rating=record.credit_rating,
                days_past_due=record.days_past_due,
                limit_utilization=record.limit_utilization,
                watch_list=record.watch_list,
                calculated_at=record.calculated_at,
            )
        )
        await self.session.flush()

    async def save_market_record(self, record: MarketRiskRecord) -> None:
        self.session.add(
            MarketRiskRow(
                id=record.id,
                portfolio_id=record.portfolio_id,
                method=record.method.value,
                confidence=record.confidence,
                time_horizon=record.time_horizon,
                value=record.value,
                expected_shortfall=record.expected_shortfall,
                breakdown=record.breakdown,
                calculated_at=record.calculated_at,
                valid_until=record.valid_until,
            )
        )
        await self.session.flush()

    async def save_assessment(self, assessment: RiskAssessment) -> None:
        self.session.add(
            RiskAssessmentRow(
                id=assessment.id,
                entity_id=assessment.entity_id,
                entity_type=assessment.entity_type,
                score=assessment.score,
                level=assessment.level,
                factors=assessment.factors,
                mitigation_measures=assessment.mitigation_measures,
                payload=assessment.to_dict(),
                assessed_at=assessment.assessed_at,
            )
        )
        await self.session.flush()

    async def latest_credit_record(self, borrower_id: str, facility_id: str) -> Optional[CreditRiskRecord]:
        result = await self.session.execute(
            select(CreditRiskRow)
            .where(
                CreditRiskRow.borrower_id == borrower_id,
                CreditRiskRow.facility_id == facility_id,
            )
            .order_by(CreditRiskRow.calculated_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return CreditRiskRecord(
            id=row.id,
            borrower_id=row.borrower_id,
            facility_id=row.facility_id,
            probability_of_default=row.probability_of_default,
            loss_given_default=row.loss_given_default,
            exposure_at_default=row.exposure_at_default,
            expected_credit_loss=row.expected_credit_loss,
            stage=IFRS9Stage(row.stage),
            credit_rating=row.credit_rating,
            days_past_due=row.days_past_due,
            limit_utilization=row.limit_utilization,
            watch_list=row.watch_list,
            calculated_at=row.calculated_at,
        )

    async def latest_market_record(
        self,
        portfolio_id: str,
        method: Optional[VaRMethod] = None,
    ) -> Optional[MarketRiskRecord]:
        stmt = select(MarketRiskRow).where(MarketRiskRow.portfolio_id == portfolio_id)
        if method:
            stmt = stmt.where(MarketRiskRow.method == method.value)
        stmt = stmt.order_by(MarketRiskRow.calculated_at.desc()).limit(1)

        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return MarketRiskRecord(
            id=row.id,
            portfolio_id=row.portfolio_id,
            method=VaRMethod(row.method),
            confidence=row.confidence,
            time_horizon=row.time_horizon,
            value=row.value,
            expected_shortfall=row.expected_shortfall,
            breakdown=dict(row.breakdown or {}),
            calculated_at=row.calculated_at,
            valid_until=row.valid_until,
        )
