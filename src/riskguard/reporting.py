"""
Regulatory report generation requests.

The engine hands report requests to a ReportGenerator and keeps only the
returned reference. ComplianceReportGenerator is the in-process
implementation: it drafts SAR, CTR and cross-border reports and keeps them
until they are submitted.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable
from uuid import UUID

from riskguard.config import Settings, settings as default_settings
from riskguard.exceptions import ValidationError
from riskguard.models.customer import Customer
from riskguard.models.report import ComplianceReport, ReportStatus, ReportType
from riskguard.models.transaction import Transaction

logger = logging.getLogger(__name__)

# Suspicion ground templates keyed by rule name
SUSPICION_TEMPLATES = {
    "structuring": "Transactions appear structured to avoid reporting thresholds",
    "rapid_movement": "Funds moved unusually quickly with no apparent business purpose",
    "geographic_risk": "Transactions involving high-risk jurisdiction",
    "geographic_velocity": "Counterparties spread over many countries in a short period",
    "pep_screening": "Politically exposed person involvement",
    "sanctions_screening": "Party matches a sanctions list",
    "profile_inconsistency": "Transaction pattern inconsistent with declared profile",
    "round_number": "Repeated round-amount transactions",
    "unusual_hours": "Transactions booked outside normal hours",
    "cash_threshold": "Cash transaction exceeding reporting threshold",
}


def suspicion_grounds(rule_names: list[str]) -> list[str]:
    """Distinct suspicion grounds for the triggered rules, in rule order."""
    grounds = []
    for name in rule_names:
        ground = SUSPICION_TEMPLATES.get(name)
        if ground and ground not in grounds:
            grounds.append(ground)
    return grounds


@runtime_checkable
class ReportGenerator(Protocol):
    """External reporting collaborator."""

    async def generate_sar(
        self,
        customer: Customer,
        transactions: list[Transaction],
        suspicion_grounds: list[str],
    ) -> str:
        ...

    async def generate_ctr(self, transaction: Transaction, customer: Customer) -> str:
        ...

    async def generate_cross_border_report(self, transaction: Transaction, customer: Customer) -> str:
        ...


class ComplianceReportGenerator:
    """
    Drafts compliance reports in memory.

    Usage:
        generator = ComplianceReportGenerator()
        reference = await generator.generate_ctr(transaction, customer)
        generator.submit(reference)
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._reports: dict[str, ComplianceReport] = {}

    def reporting_threshold(self, report_type: ReportType) -> Optional[Decimal]:
        if report_type == ReportType.CTR:
            return self.settings.ctr_threshold
        if report_type == ReportType.CROSS_BORDER:
            return self.settings.cross_border_threshold
        return None

    def _store(self, report: ComplianceReport) -> str:
        self._reports[report.reference] = report
        logger.info(f"Drafted {report.report_type.value.upper()} {report.reference} for {report.subject_id}")
        return report.reference

    async def generate_sar(
        self,
        customer: Customer,
        transactions: list[Transaction],
        suspicion_grounds: list[str],
    ) -> str:
        if not transactions:
            raise ValidationError("A SAR needs at least one transaction")

        total = sum((t.usd_equivalent for t in transactions), Decimal("0"))
        report = ComplianceReport(
            report_type=ReportType.SAR,
            subject_id=str(customer.id),
            subject_name=customer.name,
            transaction_ids=[str(t.id) for t in transactions],
            total_amount=total,
            suspicion_grounds=list(suspicion_grounds) or ["Suspicious transaction patterns detected"],
        )
        report.summary = (
            f"{len(report.suspicion_grounds)} suspicion ground(s) for {customer.name} "
            f"across {len(transactions)} transaction(s) totalling {total:,.2f} USD"
        )
        report.narrative = self._narrative(report, transactions)
        return self._store(report)

    async def generate_ctr(self, transaction: Transaction, customer: Customer) -> str:
        threshold = self.reporting_threshold(ReportType.CTR)
        report = ComplianceReport(
            report_type=ReportType.CTR,
            subject_id=str(customer.id),
            subject_name=customer.name,
            transaction_ids=[str(transaction.id)],
            total_amount=transaction.usd_equivalent,
            suspicion_grounds=[f"Cash transaction at or above reporting threshold ({threshold:,.0f} USD)"],
            summary=(
                f"Currency Transaction Report: {transaction.usd_equivalent:,.2f} USD "
                f"{transaction.transaction_type.value}"
            ),
        )
        report.narrative = self._narrative(report, [transaction])
        return self._store(report)

    async def generate_cross_border_report(self, transaction: Transaction, customer: Customer) -> str:
        threshold = self.reporting_threshold(ReportType.CROSS_BORDER)
        report = ComplianceReport(
            report_type=ReportType.CROSS_BORDER,
            subject_id=str(customer.id),
            subject_name=customer.name,
            transaction_ids=[str(transaction.id)],
            total_amount=transaction.usd_equivalent,
            suspicion_grounds=[f"Cross-border transfer at or above {threshold:,.0f} USD"],
            summary=(
                f"Cross-border transaction of {transaction.usd_equivalent:,.2f} USD "
                f"to {transaction.counterparty.country}"
            ),
        )
        report.narrative = self._narrative(report, [transaction])
        return self._store(report)

    def _narrative(self, report: ComplianceReport, transactions: list[Transaction]) -> str:
        lines = [f"{report.report_type.value.upper()} REPORT", "=" * 40, ""]
        lines.append(f"Subject: {report.subject_name} ({report.subject_id})")
        lines.append("")

        lines.append("GROUNDS:")
        for ground in report.suspicion_grounds:
            lines.append(f"- {ground}")
        lines.append("")

        lines.append("TRANSACTIONS:")
        for txn in transactions[:10]:
            booked = txn.booking_date or txn.value_date
            lines.append(
                f"- {booked.strftime('%Y-%m-%d %H:%M')} | {txn.amount:,.2f} {txn.currency} | "
                f"{txn.transaction_type.value} | {txn.counterparty.country or '-'}"
            )
        if len(transactions) > 10:
            lines.append(f"  ... and {len(transactions) - 10} more transactions")

        return "\n".join(lines)

    def get(self, reference: str) -> Optional[ComplianceReport]:
        return self._reports.get(reference)

    def list_reports(
        self,
        report_type: Optional[ReportType] = None,
        status: Optional[ReportStatus] = None,
    ) -> list[ComplianceReport]:
        reports = list(self._reports.values())
        if report_type:
            reports = [r for r in reports if r.report_type == report_type]
        if status:
            reports = [r for r in reports if r.status == status]
        return sorted(reports, key=lambda r: r.created_at)

    def reports_for_subject(self, subject_id: UUID) -> list[ComplianceReport]:
        return [r for r in self._reports.values() if r.subject_id == str(subject_id)]

    def submit(self, reference: str) -> ComplianceReport:
        """Submit a draft. Submitted reports are frozen."""
        report = self._reports.get(reference)
        if report is None:
            raise ValidationError(f"Unknown report {reference}")
        report.submit()
        logger.info(f"Report {reference} submitted at {report.submitted_at or datetime.utcnow()}")
        return report
