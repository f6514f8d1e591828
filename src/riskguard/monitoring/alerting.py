"""
Alert and report trigger.

Turns aggregation results and metric breaches into alerts, and dispatches
regulatory report requests. The de-duplication key is (entity, category,
metric), and at most one open alert per key may be created within a sliding
window of `alert_dedup_window_seconds`.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Optional, Protocol, Sequence, TypeVar, runtime_checkable
from uuid import UUID

from riskguard.concurrency import KeyedLocks
from riskguard.config import Settings, settings as default_settings
from riskguard.exceptions import DependencyError, ValidationError
from riskguard.models.alert import AlertCategory, AlertSeverity, AlertStatus, RiskAlert
from riskguard.models.customer import Customer
from riskguard.models.report import ReportType
from riskguard.models.risk import CreditRiskRecord, LiquidityResult, StressTestResult, VaRResult
from riskguard.models.transaction import Transaction
from riskguard.monitoring.aggregator import AggregationResult
from riskguard.reporting import ReportGenerator, suspicion_grounds

logger = logging.getLogger(__name__)

T = TypeVar("T")

SANCTIONS_METRIC = "sanctions_match"
SCORE_METRIC = "aggregate_score"

LEVEL_SEVERITY = {
    "low": AlertSeverity.LOW,
    "medium": AlertSeverity.MEDIUM,
    "high": AlertSeverity.HIGH,
    "critical": AlertSeverity.CRITICAL,
}


def utc_naive(at: Optional[datetime]) -> datetime:
    """Naive UTC timestamp, the form alerts are stored in."""
    if at is None:
        return datetime.utcnow()
    if at.tzinfo is not None:
        return at.astimezone(timezone.utc).replace(tzinfo=None)
    return at


@runtime_checkable
class AlertSink(Protocol):
    """External alert store."""

    async def create_alert_if_absent(self, alert: RiskAlert, since: datetime) -> tuple[RiskAlert, bool]:
        """Store alert unless an open alert with its dedup key was created at or after since.

        Returns the stored or existing alert and whether it was created.
        """
        ...

    async def create_alert(self, alert: RiskAlert) -> UUID:
        ...

    async def get_active_alert(self, dedup_key: str, since: Optional[datetime] = None) -> Optional[RiskAlert]:
        ...


class InMemoryAlertStore:
    """
    In-process alert sink.

    The check and the insert of create_alert_if_absent run without an await
    in between, so they are atomic on the event loop.
    """

    def __init__(self):
        self._alerts: dict[UUID, RiskAlert] = {}

    async def create_alert_if_absent(self, alert: RiskAlert, since: datetime) -> tuple[RiskAlert, bool]:
        existing = self._find_open(alert.dedup_key, since)
        if existing is not None:
            return existing, False
        self._alerts[alert.id] = alert
        return alert, True

    async def create_alert(self, alert: RiskAlert) -> UUID:
        self._alerts[alert.id] = alert
        return alert.id

    async def get_active_alert(self, dedup_key: str, since: Optional[datetime] = None) -> Optional[RiskAlert]:
        return self._find_open(dedup_key, since)

    def _find_open(self, dedup_key: str, since: Optional[datetime] = None) -> Optional[RiskAlert]:
        """Newest open alert for the key, optionally no older than since."""
        candidates = [
            a for a in self._alerts.values()
            if a.dedup_key == dedup_key and a.is_open and (since is None or a.created_at >= since)
        ]
        return max(candidates, key=lambda a: a.created_at, default=None)

    def get_alert(self, alert_id: UUID) -> Optional[RiskAlert]:
        """Get an alert by ID."""
        return self._alerts.get(alert_id)

    def get_alerts(
        self,
        entity_id: Optional[str] = None,
        category: Optional[AlertCategory] = None,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
        limit: int = 50,
    ) -> list[RiskAlert]:
        """Get alerts with optional filtering, newest first."""
        alerts = list(self._alerts.values())

        if entity_id:
            alerts = [a for a in alerts if a.entity_id == entity_id]
        if category:
            alerts = [a for a in alerts if a.category == category]
        if severity:
            alerts = [a for a in alerts if a.severity == severity]
        if status:
            alerts = [a for a in alerts if a.status == status]

        alerts.sort(key=lambda a: a.created_at, reverse=True)
        return alerts[:limit]

    def acknowledge_alert(self, alert_id: UUID, user_id: str, notes: str = "") -> Optional[RiskAlert]:
        alert = self._alerts.get(alert_id)
        if alert:
            alert.acknowledge(user_id, notes)
            logger.info(f"Alert {alert_id} acknowledged by {user_id}")
        return alert

    def get_stats(self) -> dict[str, Any]:
        """Get alert statistics."""
        by_category: dict[str, int] = {}
        by_severity: dict[str, int] = {}
        by_status: dict[str, int] = {}

        for alert in self._alerts.values():
            by_category[alert.category.value] = by_category.get(alert.category.value, 0) + 1
            by_severity[alert.severity.value] = by_severity.get(alert.severity.value, 0) + 1
            by_status[alert.status.value] = by_status.get(alert.status.value, 0) + 1

        return {
            "total": len(self._alerts),
            "open": sum(1 for a in self._alerts.values() if a.is_open),
            "by_category": by_category,
            "by_severity": by_severity,
            "by_status": by_status,
        }

    def __len__(self) -> int:
        return len(self._alerts)


@dataclass
class TriggerOutcome:
    """What the trigger did for one aggregation result."""

    alert: Optional[RiskAlert] = None
    alert_created: bool = False
    report_type: Optional[ReportType] = None
    report_reference: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert": self.alert.to_dict() if self.alert else None,
            "alert_created": self.alert_created,
            "report_type": self.report_type.value if self.report_type else None,
            "report_reference": self.report_reference,
        }


class AlertReportTrigger:
    """
    Emit alerts and report requests for results that cross a threshold.

    Usage:
        trigger = AlertReportTrigger(settings, InMemoryAlertStore(), ComplianceReportGenerator())
        outcome = await trigger.process(str(customer.id), "customer", result,
                                        transaction=txn, customer=customer)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        sink: Optional[AlertSink] = None,
        report_generator: Optional[ReportGenerator] = None,
    ):
        self.settings = settings or default_settings
        self.sink = sink if sink is not None else InMemoryAlertStore()
        self.report_generator = report_generator
        self._locks = KeyedLocks()
        self._stats = {"alerts_created": 0, "alerts_deduplicated": 0, "reports_requested": 0}

    @staticmethod
    def dedup_key(entity_id: str, category: AlertCategory, metric: str) -> str:
        return f"{entity_id}:{category.value}:{metric}"

    @staticmethod
    def result_metric(result: AggregationResult) -> str:
        """
        Metric an aggregation alert is keyed on.

        A sanctions match has its own metric so it is never folded into an
        earlier alert for the same customer. Otherwise the sorted names of
        the rules that fired identify the alert.
        """
        if result.sanctions_match:
            return SANCTIONS_METRIC
        fired = sorted({r.rule_name for r in result.rule_results if r.triggered})
        return "+".join(fired) if fired else SCORE_METRIC

    def window_start(self, at: datetime) -> datetime:
        return at - timedelta(seconds=self.settings.alert_dedup_window_seconds)

    async def _call(self, awaitable: Awaitable[T], dependency: str) -> T:
        timeout = self.settings.persistence_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise DependencyError(f"{dependency} timed out after {timeout}s", dependency=dependency)

    async def raise_alert(self, alert: RiskAlert) -> tuple[RiskAlert, bool]:
        """
        Store alert unless an open one with the same key was created within
        the de-duplication window ending at the alert's creation time.

        The per-key lock makes check-then-create one logical operation
        within this process; the sink's conditional create covers other
        processes sharing the store.
        """
        if not alert.dedup_key:
            raise ValidationError("Alert has no de-duplication key")

        async with self._locks.hold(alert.dedup_key):
            stored, created = await self._call(
                self.sink.create_alert_if_absent(alert, self.window_start(alert.created_at)),
                "alert_sink",
            )

        if created:
            self._stats["alerts_created"] += 1
            logger.info(
                f"Generated {stored.severity.value} {stored.category.value} alert "
                f"for {stored.entity_type} {stored.entity_id}: {stored.metric}"
            )
        else:
            self._stats["alerts_deduplicated"] += 1
            logger.debug(f"Duplicate alert {alert.dedup_key}, keeping {stored.id}")
        return stored, created

    async def process(
        self,
        entity_id: str,
        entity_type: str,
        result: AggregationResult,
        transaction: Optional[Transaction] = None,
        customer: Optional[Customer] = None,
        category: AlertCategory = AlertCategory.AML,
        now: Optional[datetime] = None,
    ) -> TriggerOutcome:
        """Raise the alert and request the report an aggregation result calls for."""
        outcome = TriggerOutcome()
        if not result.requires_alert:
            return outcome

        now = utc_naive(now)
        metric = self.result_metric(result)
        severity = AlertSeverity.CRITICAL if result.sanctions_match else LEVEL_SEVERITY[result.level]

        if result.sanctions_match:
            message = f"Sanctions match for {entity_type} {entity_id}"
        else:
            message = f"{result.level.capitalize()} risk score {result.score:.0f} for {entity_type} {entity_id}"

        details: dict[str, Any] = {"factors": result.factors, "contributions": result.contributions}
        if transaction is not None:
            details["transaction_id"] = str(transaction.id)
        if result.report_type is not None:
            details["report_type"] = result.report_type.value

        alert = RiskAlert(
            entity_id=entity_id,
            entity_type=entity_type,
            category=category,
            severity=severity,
            metric=metric,
            message=message,
            threshold=float(self.settings.alert_score_threshold),
            actual_value=result.score,
            dedup_key=self.dedup_key(entity_id, category, metric),
            details=details,
            created_at=now,
        )
        outcome.alert, outcome.alert_created = await self.raise_alert(alert)

        if result.requires_report and result.report_type is not None:
            outcome.report_type = result.report_type
            outcome.report_reference = await self.request_report(result, transaction, customer)

        return outcome

    async def request_report(
        self,
        result: AggregationResult,
        transaction: Optional[Transaction],
        customer: Optional[Customer],
    ) -> Optional[str]:
        """
        Delegate report generation and record the reference on the transaction.

        A transaction that already carries a reference of the requested type
        is not reported again.
        """
        report_type = result.report_type
        if self.report_generator is None:
            logger.warning(f"{report_type.value.upper()} required but no report generator is configured")
            return None
        if transaction is None or customer is None:
            raise ValidationError(f"{report_type.value.upper()} requires a transaction and its customer")

        existing = transaction.report_references.get(report_type.value)
        if existing:
            logger.debug(f"Transaction {transaction.id} already reported as {existing}")
            return existing

        if report_type == ReportType.SAR:
            grounds = suspicion_grounds(result.factors)
            request = self.report_generator.generate_sar(customer, [transaction], grounds)
        elif report_type == ReportType.CTR:
            request = self.report_generator.generate_ctr(transaction, customer)
        else:
            request = self.report_generator.generate_cross_border_report(transaction, customer)

        reference = await self._call(request, "report_generator")
        transaction.record_report(report_type.value, reference)
        self._stats["reports_requested"] += 1
        logger.info(f"Requested {report_type.value.upper()} {reference} for transaction {transaction.id}")
        return reference

    def threshold_alerts(
        self,
        entity_id: str,
        entity_type: str,
        market: Optional[VaRResult] = None,
        credit: Optional[CreditRiskRecord] = None,
        previous_ecl: Optional[float] = None,
        liquidity: Optional[LiquidityResult] = None,
        stress: Sequence[StressTestResult] = (),
        now: Optional[datetime] = None,
    ) -> list[RiskAlert]:
        """Build, without storing, the alerts for every breached metric."""
        now = utc_naive(now)
        s = self.settings
        alerts: list[RiskAlert] = []

        def add(category, severity, metric, message, threshold, actual, **details):
            alerts.append(
                RiskAlert(
                    entity_id=entity_id,
                    entity_type=entity_type,
                    category=category,
                    severity=severity,
                    metric=metric,
                    message=message,
                    threshold=threshold,
                    actual_value=actual,
                    dedup_key=self.dedup_key(entity_id, category, metric),
                    details=details,
                    created_at=now,
                )
            )

        if market is not None:
            var_value = market.var_amount if market.var_amount is not None else market.var
            if var_value > s.var_alert_threshold:
                add(
                    AlertCategory.MARKET, AlertSeverity.HIGH, "var_limit",
                    f"VaR limit breached: {var_value:,.2f} exceeds {s.var_alert_threshold:,.2f}",
                    s.var_alert_threshold, var_value,
                    method=market.method.value, confidence=market.confidence,
                )

        if credit is not None and previous_ecl:
            increase = (credit.expected_credit_loss - previous_ecl) / previous_ecl
            if increase > s.ecl_increase_alert:
                severity = AlertSeverity.HIGH if increase > s.ecl_increase_high else AlertSeverity.MEDIUM
                add(
                    AlertCategory.CREDIT, severity, "ecl_increase",
                    f"Expected credit loss increased by {increase:.0%}",
                    s.ecl_increase_alert, increase,
                    facility_id=credit.facility_id, previous_ecl=previous_ecl,
                    current_ecl=credit.expected_credit_loss,
                )

        if liquidity is not None:
            if not liquidity.lcr_compliant:
                add(
                    AlertCategory.LIQUIDITY, AlertSeverity.HIGH, "lcr",
                    f"LCR below regulatory minimum: {liquidity.lcr:.1f}%",
                    liquidity.lcr_minimum, liquidity.lcr,
                )
            if not liquidity.nsfr_compliant:
                add(
                    AlertCategory.LIQUIDITY, AlertSeverity.HIGH, "nsfr",
                    f"NSFR below regulatory minimum: {liquidity.nsfr:.1f}%",
                    liquidity.nsfr_minimum, liquidity.nsfr,
                )

        if stress:
            worst = max(stress, key=lambda r: r.loss_percent)
            if worst.loss_percent > s.stress_loss_alert_percent:
                severity = (
                    AlertSeverity.HIGH
                    if worst.loss_percent > s.stress_loss_high_percent
                    else AlertSeverity.MEDIUM
                )
                add(
                    AlertCategory.MARKET, severity, "stress_loss",
                    f"Stress scenario '{worst.scenario}' loses {worst.loss_percent:.1f}% of portfolio value",
                    s.stress_loss_alert_percent, worst.loss_percent,
                    scenario=worst.scenario, total_loss=worst.total_loss,
                )

        return alerts

    async def check_thresholds(
        self,
        entity_id: str,
        entity_type: str,
        market: Optional[VaRResult] = None,
        credit: Optional[CreditRiskRecord] = None,
        previous_ecl: Optional[float] = None,
        liquidity: Optional[LiquidityResult] = None,
        stress: Sequence[StressTestResult] = (),
        now: Optional[datetime] = None,
    ) -> list[RiskAlert]:
        """Raise metric alerts. Returns only the alerts created by this call."""
        created_alerts = []
        candidates = self.threshold_alerts(
            entity_id, entity_type, market, credit, previous_ecl, liquidity, stress, now
        )
        for alert in candidates:
            stored, created = await self.raise_alert(alert)
            if created:
                created_alerts.append(stored)
        return created_alerts

    def get_stats(self) -> dict[str, Any]:
        return dict(self._stats)
