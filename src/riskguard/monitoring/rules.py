"""
Transaction monitoring rules.

Implements the AML/CFT detection battery run for every transaction:
- Cash threshold (CTR obligation)
- Structuring just below the CTR threshold
- Sanctions and PEP screening
- Rapid movement of funds
- Round-number amounts
- Unusual booking hours
- Geographic velocity and high-risk jurisdictions
- Inconsistency with the customer's declared profile

Rules never see each other's output. Each contributes an additive score;
overlap between rules is intended since suspicion compounds.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from riskguard.config import Settings
from riskguard.models.customer import Customer, SanctionsStatus
from riskguard.models.report import ReportType
from riskguard.models.transaction import CheckStatus, Transaction, TransactionStatus
from riskguard.screening.base import ScreeningResult

logger = logging.getLogger(__name__)

ROUND_NUMBER_PATTERN = re.compile(r"^[1-9]0+$")


@dataclass
class ScreeningOutcome:
    """Screening answers for the names involved in one transaction."""

    customer: Optional[ScreeningResult] = None
    counterparty: Optional[ScreeningResult] = None
    list_version: Optional[str] = None
    errors: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.errors

    @property
    def results(self) -> list[ScreeningResult]:
        return [r for r in (self.customer, self.counterparty) if r is not None]


@dataclass
class RuleContext:
    """Everything a rule may look at for one evaluation."""

    transaction: Transaction
    customer: Customer
    recent: list[Transaction]
    screening: ScreeningOutcome
    settings: Settings

    @property
    def at(self) -> datetime:
        return self.transaction.booking_date or self.transaction.value_date

    def window(self, span: timedelta) -> list[Transaction]:
        """Prior transactions of the same customer booked within span of this one."""
        start = self.at - span
        return [
            t for t in self.recent
            if t.id != self.transaction.id
            and t.customer_id == self.transaction.customer_id
            and t.status != TransactionStatus.FAILED
            and start <= (t.booking_date or t.value_date) <= self.at
        ]


@dataclass
class RuleResult:
    """Outcome of one rule for one transaction."""

    rule_name: str
    triggered: bool = False
    risk_score: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)
    requires_reporting: bool = False
    report_type: Optional[ReportType] = None
    blocks_transaction: bool = False
    status: CheckStatus = CheckStatus.PASS

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_name": self.rule_name,
            "triggered": self.triggered,
            "risk_score": self.risk_score,
            "details": self.details,
            "requires_reporting": self.requires_reporting,
            "report_type": self.report_type.value if self.report_type else None,
            "blocks_transaction": self.blocks_transaction,
            "status": self.status.value,
        }


class TransactionRule(ABC):
    """Base class for transaction monitoring rules."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this rule."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of the rule."""
        pass

    @abstractmethod
    def evaluate(self, context: RuleContext) -> RuleResult:
        pass

    def _clear(self, **details) -> RuleResult:
        return RuleResult(rule_name=self.name, details=details)


class CashThresholdRule(TransactionRule):
    """Cash deposits and withdrawals at or above the CTR threshold."""

    @property
    def name(self) -> str:
        return "cash_threshold"

    @property
    def description(self) -> str:
        return "Cash movement at or above the currency transaction reporting threshold"

    def evaluate(self, context: RuleContext) -> RuleResult:
        txn = context.transaction
        threshold = self.settings.ctr_threshold
        if not txn.is_cash or txn.usd_equivalent < threshold:
            return self._clear()

        return RuleResult(
            rule_name=self.name,
            triggered=True,
            risk_score=self.settings.cash_threshold_score,
            details={
                "amount": str(txn.usd_equivalent),
                "threshold": str(threshold),
                "transaction_type": txn.transaction_type.value,
            },
            requires_reporting=True,
            report_type=ReportType.CTR,
        )


class StructuringRule(TransactionRule):
    """
    Repeated amounts just below the CTR threshold.

    Prior transactions count when they fall in [structuring, CTR). The
    current one counts from the structuring floor upwards, so pushing the
    amount over the CTR threshold never makes an existing series disappear.
    """

    @property
    def name(self) -> str:
        return "structuring"

    @property
    def description(self) -> str:
        return "Multiple transactions just below the reporting threshold"

    def _in_band(self, amount: Decimal) -> bool:
        return self.settings.structuring_threshold <= amount < self.settings.ctr_threshold

    def evaluate(self, context: RuleContext) -> RuleResult:
        txn = context.transaction
        if txn.usd_equivalent < self.settings.structuring_threshold:
            return self._clear()

        window = context.window(timedelta(days=self.settings.structuring_window_days))
        series = [t for t in window if self._in_band(t.usd_equivalent)]
        count = len(series) + 1

        if count < self.settings.structuring_min_count:
            return self._clear(count=count)

        total = sum((t.usd_equivalent for t in series), txn.usd_equivalent)
        return RuleResult(
            rule_name=self.name,
            triggered=True,
            risk_score=self.settings.structuring_score,
            details={
                "count": count,
                "window_days": self.settings.structuring_window_days,
                "total_amount": str(total),
                "transaction_ids": [str(t.id) for t in series] + [str(txn.id)],
            },
            requires_reporting=True,
            report_type=ReportType.SAR,
        )


class SanctionsScreeningRule(TransactionRule):
    """
    Sanctions match on the customer or the counterparty.

    A match forces the maximum score and blocks the transaction. An
    incomplete screening, or a customer whose stored screening is only a
    potential match, is reported as pending, never as clear.
    """

    @property
    def name(self) -> str:
        return "sanctions_screening"

    @property
    def description(self) -> str:
        return "Customer or counterparty appears on a sanctions list"

    def evaluate(self, context: RuleContext) -> RuleResult:
        matched_lists: set[str] = set()
        matched_names: list[str] = []

        for result in context.screening.results:
            if result.sanctions_matches:
                matched_names.append(result.name)
                matched_lists.update(m.list_name for m in result.sanctions_matches)

        if context.customer.sanctions_screening.status == SanctionsStatus.MATCH:
            matched_names.append(context.customer.name)
            matched_lists.update(context.customer.sanctions_screening.matched_lists or ["customer_record"])

        if matched_lists:
            return RuleResult(
                rule_name=self.name,
                triggered=True,
                risk_score=self.settings.sanctions_match_score,
                details={
                    "matched_names": matched_names,
                    "matched_lists": sorted(matched_lists),
                    "list_version": context.screening.list_version,
                },
                requires_reporting=True,
                report_type=ReportType.SAR,
                blocks_transaction=True,
                status=CheckStatus.FAIL,
            )

        customer_screening = context.customer.sanctions_screening
        if customer_screening.status == SanctionsStatus.POTENTIAL:
            # Unresolved possible match on file; held until an analyst clears it
            return RuleResult(
                rule_name=self.name,
                details={
                    "customer_status": customer_screening.status.value,
                    "potential_lists": list(customer_screening.matched_lists),
                    "list_version": context.screening.list_version,
                },
                status=CheckStatus.PENDING,
            )

        if not context.screening.complete:
            return RuleResult(
                rule_name=self.name,
                details={"errors": list(context.screening.errors)},
                status=CheckStatus.PENDING,
            )

        return self._clear(list_version=context.screening.list_version)


class PEPScreeningRule(TransactionRule):
    """Politically exposed customers, declared or found by screening."""

    @property
    def name(self) -> str:
        return "pep_screening"

    @property
    def description(self) -> str:
        return "Customer is a politically exposed person"

    def _category(self, context: RuleContext) -> Optional[str]:
        pep = context.customer.pep_status
        if pep.is_pep:
            return pep.category.value if pep.category else "foreign"

        result = context.screening.customer
        if result and result.pep_matches:
            best = max(result.pep_matches, key=lambda m: m.score)
            if best.pep_category:
                return best.pep_category
            return best.list_name.removeprefix("pep_")
        return None

    def evaluate(self, context: RuleContext) -> RuleResult:
        category = self._category(context)
        if category is None:
            if context.screening.customer is None and context.screening.errors:
                return RuleResult(
                    rule_name=self.name,
                    details={"errors": list(context.screening.errors)},
                    status=CheckStatus.PENDING,
                )
            return self._clear()

        pep_scores = self.settings.pep_scores
        score = pep_scores.get(category, max(pep_scores.values()))
        details: dict[str, Any] = {"category": category}

        if context.transaction.usd_equivalent > self.settings.pep_high_value_usd:
            score += self.settings.pep_high_value_score
            details["enhanced_monitoring_required"] = True

        return RuleResult(
            rule_name=self.name,
            triggered=True,
            risk_score=score,
            details=details,
            status=CheckStatus.FAIL,
        )


class RapidMovementRule(TransactionRule):
    """Many transactions for the same customer in a short period."""

    @property
    def name(self) -> str:
        return "rapid_movement"

    @property
    def description(self) -> str:
        return "Unusually many transactions in a short period"

    def evaluate(self, context: RuleContext) -> RuleResult:
        hours = self.settings.rapid_movement_window_hours
        count = len(context.window(timedelta(hours=hours))) + 1
        if count < self.settings.rapid_movement_count:
            return self._clear(count=count)

        return RuleResult(
            rule_name=self.name,
            triggered=True,
            risk_score=self.settings.rapid_movement_score,
            details={"count": count, "window_hours": hours},
        )


class RoundNumberRule(TransactionRule):
    """Exact round amounts such as 10000, 20000 or 500000."""

    @property
    def name(self) -> str:
        return "round_number"

    @property
    def description(self) -> str:
        return "Round amount above the minimum"

    def evaluate(self, context: RuleContext) -> RuleResult:
        amount = context.transaction.amount
        if amount < self.settings.round_number_minimum or amount != amount.to_integral_value():
            return self._clear()
        if not ROUND_NUMBER_PATTERN.match(str(int(amount))):
            return self._clear()

        return RuleResult(
            rule_name=self.name,
            triggered=True,
            risk_score=self.settings.round_number_score,
            details={"amount": str(amount)},
        )


class UnusualHoursRule(TransactionRule):
    """Booking time inside the night window [start, end)."""

    @property
    def name(self) -> str:
        return "unusual_hours"

    @property
    def description(self) -> str:
        return "Transaction booked during the night"

    def _in_window(self, hour: int) -> bool:
        start = self.settings.unusual_hours_start
        end = self.settings.unusual_hours_end
        if start <= end:
            return start <= hour < end
        return hour >= start or hour < end

    def evaluate(self, context: RuleContext) -> RuleResult:
        hour = context.at.hour
        if not self._in_window(hour):
            return self._clear()

        return RuleResult(
            rule_name=self.name,
            triggered=True,
            risk_score=self.settings.unusual_hours_score,
            details={"hour": hour},
        )


class GeographicVelocityRule(TransactionRule):
    """Counterparties in many different countries within a short period."""

    @property
    def name(self) -> str:
        return "geographic_velocity"

    @property
    def description(self) -> str:
        return "Many counterparty countries in a short period"

    def evaluate(self, context: RuleContext) -> RuleResult:
        hours = self.settings.geo_velocity_window_hours
        window = context.window(timedelta(hours=hours)) + [context.transaction]
        countries = sorted({t.counterparty.country for t in window if t.counterparty.country})

        if len(countries) < self.settings.geo_velocity_countries:
            return self._clear(countries=countries)

        return RuleResult(
            rule_name=self.name,
            triggered=True,
            risk_score=self.settings.geo_velocity_score,
            details={"countries": countries, "window_hours": hours},
        )


class ProfileInconsistencyRule(TransactionRule):
    """Activity outside what the customer declared at onboarding."""

    @property
    def name(self) -> str:
        return "profile_inconsistency"

    @property
    def description(self) -> str:
        return "Transaction inconsistent with the declared customer profile"

    def evaluate(self, context: RuleContext) -> RuleResult:
        txn = context.transaction
        profile = context.customer.expected_profile
        score = 0.0
        findings: list[str] = []
        details: dict[str, Any] = {}

        if profile.monthly_turnover and profile.monthly_turnover > 0:
            window = context.window(timedelta(days=self.settings.profile_window_days))
            volume = sum((t.usd_equivalent for t in window), txn.usd_equivalent)
            ratio = float(volume / profile.monthly_turnover)
            details["volume_ratio"] = round(ratio, 4)
            if ratio > self.settings.profile_volume_multiplier:
                score += self.settings.profile_volume_score
                findings.append("volume")

        if profile.average_transaction_size and profile.average_transaction_size > 0:
            limit = profile.average_transaction_size * Decimal(str(self.settings.profile_size_multiplier))
            if txn.usd_equivalent > limit:
                score += self.settings.profile_size_score
                findings.append("size")

        if profile.transaction_types and txn.transaction_type.value not in profile.transaction_types:
            score += self.settings.profile_type_score
            findings.append("type")

        country = txn.counterparty.country
        if profile.countries and country and country not in profile.countries:
            score += self.settings.profile_country_score
            findings.append("country")

        if not findings:
            return self._clear(**details)

        details["findings"] = findings
        return RuleResult(
            rule_name=self.name,
            triggered=True,
            risk_score=score,
            details=details,
        )


class GeographicRiskRule(TransactionRule):
    """High-risk jurisdictions and cross-border reporting."""

    @property
    def name(self) -> str:
        return "geographic_risk"

    @property
    def description(self) -> str:
        return "Counterparty in a high-risk jurisdiction or reportable cross-border flow"

    def evaluate(self, context: RuleContext) -> RuleResult:
        txn = context.transaction
        country = txn.counterparty.country
        if not country:
            return self._clear()

        high_risk = country in self.settings.high_risk_jurisdictions
        cross_border = country != self.settings.home_country
        reportable = cross_border and txn.usd_equivalent >= self.settings.cross_border_threshold

        if not high_risk and not reportable:
            return self._clear(country=country)

        result = RuleResult(
            rule_name=self.name,
            triggered=True,
            details={
                "country": country,
                "high_risk": high_risk,
                "cross_border": cross_border,
            },
        )
        if high_risk:
            result.risk_score = self.settings.high_risk_jurisdiction_score
            result.details["additional_scrutiny_required"] = True
        if reportable:
            result.requires_reporting = True
            result.report_type = ReportType.CROSS_BORDER
            result.details["cross_border_reporting_required"] = True
        return result


def default_rules(settings: Settings) -> list[TransactionRule]:
    return [
        CashThresholdRule(settings),
        StructuringRule(settings),
        SanctionsScreeningRule(settings),
        PEPScreeningRule(settings),
        RapidMovementRule(settings),
        RoundNumberRule(settings),
        UnusualHoursRule(settings),
        GeographicVelocityRule(settings),
        ProfileInconsistencyRule(settings),
        GeographicRiskRule(settings),
    ]
