"""
Tests for domain records.

Tests:
- Alert status transitions
- Report immutability after submission
- Transaction status enforcement
- Market record validity window
"""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from riskguard.exceptions import ValidationError
from riskguard.models.alert import AlertCategory, AlertSeverity, AlertStatus, RiskAlert
from riskguard.models.customer import RiskProfile
from riskguard.models.report import ComplianceReport, ReportStatus, ReportType
from riskguard.models.risk import MarketRiskRecord, VaRMethod
from riskguard.models.transaction import CheckStatus, Transaction, TransactionStatus, TransactionType


@pytest.fixture
def alert() -> RiskAlert:
    return RiskAlert(
        entity_id="cust-1",
        entity_type="customer",
        category=AlertCategory.AML,
        severity=AlertSeverity.HIGH,
        metric="aggregate_score",
        message="Score 72",
    )


class TestAlertStatus:
    """Tests for the alert status machine."""

    def test_acknowledge_then_resolve(self, alert):
        alert.acknowledge("analyst-1", notes="Looking into it")
        alert.resolve("analyst-1")

        assert alert.status == AlertStatus.RESOLVED
        assert alert.acknowledged_by == "analyst-1"
        assert alert.resolved_at is not None
        assert not alert.is_open

    def test_direct_dismiss(self, alert):
        alert.dismiss("analyst-2", notes="False positive")

        assert alert.status == AlertStatus.DISMISSED
        assert alert.notes == "False positive"

    def test_terminal_states_are_final(self, alert):
        alert.resolve("analyst-1")

        with pytest.raises(ValidationError):
            alert.acknowledge("analyst-1")
        with pytest.raises(ValidationError):
            alert.dismiss("analyst-1")

    def test_cannot_acknowledge_twice(self, alert):
        alert.acknowledge("analyst-1")

        with pytest.raises(ValidationError):
            alert.acknowledge("analyst-2")
        assert alert.is_open


class TestComplianceReport:
    """Tests for report submission."""

    def test_submit_freezes_report(self):
        report = ComplianceReport(
            report_type=ReportType.SAR,
            subject_id="cust-1",
            transaction_ids=["t-1"],
            total_amount=Decimal("9500"),
        )

        report.submit()

        assert report.status == ReportStatus.SUBMITTED
        assert report.external_reference == report.reference
        assert report.reference.startswith("SAR-")
        with pytest.raises(ValidationError):
            report.narrative = "edited"
        with pytest.raises(ValidationError):
            report.add_ground("late addition")
        with pytest.raises(ValidationError):
            report.submit()

    def test_draft_is_editable(self):
        report = ComplianceReport(report_type=ReportType.CTR, subject_id="cust-1", transaction_ids=["t-1"])

        report.summary = "Cash deposit"
        report.add_ground("Cash at threshold")
        report.add_ground("Cash at threshold")

        assert report.summary == "Cash deposit"
        assert report.suspicion_grounds == ["Cash at threshold"]

    def test_submit_requires_transactions(self):
        report = ComplianceReport(report_type=ReportType.CROSS_BORDER, subject_id="cust-1")

        with pytest.raises(ValidationError):
            report.submit()
        assert report.status == ReportStatus.DRAFT


class TestTransaction:
    """Tests for transaction status rules."""

    def make(self, **kwargs) -> Transaction:
        return Transaction(customer_id=uuid4(), amount=Decimal("100"), transaction_type=TransactionType.DEPOSIT, **kwargs)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValidationError):
            Transaction(customer_id=uuid4(), amount=Decimal("-1"), transaction_type=TransactionType.DEPOSIT)

    def test_defaults(self):
        txn = self.make()

        assert txn.usd_equivalent == Decimal("100")
        assert txn.booking_date == txn.value_date

    def test_sanctions_fail_blocks(self):
        txn = self.make()
        txn.compliance_checks.sanctions_screening.status = CheckStatus.FAIL

        txn.enforce_screening_status()

        assert txn.status == TransactionStatus.BLOCKED
        assert not txn.auto_approvable

    def test_pending_screening_needs_review(self):
        txn = self.make()
        txn.compliance_checks.sanctions_screening.status = CheckStatus.PENDING

        txn.enforce_screening_status()

        assert txn.status == TransactionStatus.UNDER_REVIEW
        assert not txn.auto_approvable

    def test_pending_never_unblocks(self):
        txn = self.make(status=TransactionStatus.BLOCKED)
        txn.compliance_checks.sanctions_screening.status = CheckStatus.PENDING

        txn.enforce_screening_status()

        assert txn.status == TransactionStatus.BLOCKED

    def test_passed_screening_auto_approvable(self):
        txn = self.make()
        txn.compliance_checks.sanctions_screening.status = CheckStatus.PASS

        txn.enforce_screening_status()

        assert txn.status == TransactionStatus.PENDING
        assert txn.auto_approvable


class TestRecords:
    """Tests for engine-owned records."""

    def test_market_record_valid_for_one_day(self):
        calculated = datetime(2026, 3, 2, 12, 0)
        record = MarketRiskRecord(
            portfolio_id="P1",
            method=VaRMethod.PARAMETRIC,
            confidence=0.99,
            time_horizon=10,
            value=0.04,
            expected_shortfall=0.05,
            calculated_at=calculated,
        )

        assert record.valid_until == calculated + timedelta(days=1)
        assert not record.is_stale(calculated + timedelta(hours=23))
        assert record.is_stale(calculated + timedelta(days=1))

    def test_risk_profile_score_range(self):
        with pytest.raises(ValidationError):
            RiskProfile(score=101)
