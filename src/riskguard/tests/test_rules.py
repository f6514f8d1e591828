"""
Tests for transaction monitoring rules.

Tests detection of:
- Cash threshold (CTR) and structuring
- Sanctions and PEP screening
- Rapid movement, round numbers, unusual hours
- Geographic velocity and risk
- Profile inconsistency
"""

from datetime import datetime
from decimal import Decimal

import pytest

from riskguard.exceptions import ComputationError
from riskguard.models.customer import PEPCategory, PEPStatus, SanctionsScreening, SanctionsStatus
from riskguard.models.report import ReportType
from riskguard.models.transaction import CheckStatus, TransactionStatus, TransactionType
from riskguard.monitoring.evaluator import TransactionRuleEvaluator
from riskguard.monitoring.rules import (
    CashThresholdRule,
    RuleContext,
    RuleResult,
    ScreeningOutcome,
    StructuringRule,
    TransactionRule,
)


def clear_screening() -> ScreeningOutcome:
    return ScreeningOutcome(list_version="1")


def by_name(results: list[RuleResult]) -> dict[str, RuleResult]:
    return {r.rule_name: r for r in results}


class TestCashThreshold:
    """Tests for the CTR rule."""

    def test_exact_threshold_triggers(self, evaluator, customer, make_transaction):
        """A deposit of exactly 10,000.00 triggers a CTR."""
        txn = make_transaction("10000.00")

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))["cash_threshold"]

        assert result.triggered
        assert result.requires_reporting
        assert result.report_type == ReportType.CTR

    def test_one_cent_below_does_not_trigger(self, evaluator, customer, make_transaction):
        txn = make_transaction("9999.99")

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))["cash_threshold"]

        assert not result.triggered
        assert not result.requires_reporting

    def test_non_cash_types_ignored(self, evaluator, customer, make_transaction):
        """Transfers are not cash movements."""
        txn = make_transaction("50000", transaction_type=TransactionType.TRANSFER)

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))["cash_threshold"]

        assert not result.triggered

    def test_uses_usd_equivalent(self, evaluator, customer, make_transaction):
        """Foreign-currency deposits are compared in USD."""
        txn = make_transaction("1000000", currency="ZWL", usd_equivalent=Decimal("12000"))

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))["cash_threshold"]

        assert result.triggered


class TestStructuring:
    """Tests for structuring detection."""

    def test_four_deposits_just_below_threshold(self, evaluator, aggregator, customer, make_transaction):
        """4 x $9,500 within 5 days flags structuring, reports a SAR and scores >= 40."""
        recent = [
            make_transaction(9500, days_ago=5),
            make_transaction(9500, days_ago=3),
            make_transaction(9500, days_ago=1, hours_ago=2),
        ]
        txn = make_transaction(9500)

        results = evaluator.evaluate(txn, customer, recent, clear_screening())
        structuring = by_name(results)["structuring"]
        aggregated = aggregator.aggregate(rule_results=results)

        assert structuring.triggered
        assert structuring.details["count"] == 4
        assert structuring.report_type == ReportType.SAR
        assert aggregated.report_type == ReportType.SAR
        assert aggregated.score >= 40
        assert aggregated.requires_alert

    def test_two_transactions_not_enough(self, evaluator, customer, make_transaction):
        recent = [make_transaction(9500, days_ago=2)]

        result = by_name(evaluator.evaluate(make_transaction(9500), customer, recent, clear_screening()))

        assert not result["structuring"].triggered

    def test_outside_window_ignored(self, evaluator, customer, make_transaction):
        """Transactions older than the 7-day window do not count."""
        recent = [make_transaction(9500, days_ago=8), make_transaction(9500, days_ago=9)]

        result = by_name(evaluator.evaluate(make_transaction(9500), customer, recent, clear_screening()))

        assert not result["structuring"].triggered

    def test_window_excludes_other_customers_and_failed(self, evaluator, customer, make_transaction):
        """Only the customer's own, non-failed transactions count."""
        other = make_transaction(9500, days_ago=1)
        other.customer_id = other.id
        failed = make_transaction(9500, days_ago=2, status=TransactionStatus.FAILED)
        own = make_transaction(9500, days_ago=3)

        result = by_name(
            evaluator.evaluate(make_transaction(9500), customer, [other, failed, own], clear_screening())
        )

        assert result["structuring"].details["count"] == 2
        assert not result["structuring"].triggered

    def test_amount_increase_never_lowers_score(self, test_settings, aggregator, customer, make_transaction):
        """Raising the amount never decreases the cash-threshold plus structuring score."""
        evaluator = TransactionRuleEvaluator(
            test_settings,
            rules=[CashThresholdRule(test_settings), StructuringRule(test_settings)],
        )
        recent = [make_transaction(9200, days_ago=2), make_transaction(9800, days_ago=4)]
        amounts = ["100", "8999.99", "9000", "9500", "9999.99", "10000", "10000.01", "25000", "1000000"]

        scores = []
        for amount in amounts:
            results = evaluator.evaluate(make_transaction(amount), customer, recent, clear_screening())
            scores.append(aggregator.aggregate(rule_results=results).score)

        assert scores == sorted(scores)
        assert scores[-1] == 60


class TestSanctionsScreening:
    """Tests for sanctions matches."""

    @pytest.mark.asyncio
    async def test_counterparty_match_blocks(self, evaluator, customer, make_transaction, watchlist):
        """A sanctioned counterparty forces score 100, a SAR and a block."""
        txn = make_transaction(500, transaction_type=TransactionType.TRANSFER, counterparty_name="Viktor Petrov")

        screening = await evaluator.screen(watchlist, txn, customer)
        result = by_name(evaluator.evaluate(txn, customer, [], screening))["sanctions_screening"]

        assert result.triggered
        assert result.risk_score == 100
        assert result.blocks_transaction
        assert result.status == CheckStatus.FAIL
        assert result.report_type == ReportType.SAR
        assert result.details["matched_lists"] == ["sanctions_un"]

    @pytest.mark.asyncio
    async def test_alias_match(self, evaluator, customer, make_transaction, watchlist):
        txn = make_transaction(500, transaction_type=TransactionType.TRANSFER, counterparty_name="V. Petrov")

        screening = await evaluator.screen(watchlist, txn, customer)
        result = by_name(evaluator.evaluate(txn, customer, [], screening))["sanctions_screening"]

        assert result.blocks_transaction

    @pytest.mark.asyncio
    async def test_clear_names_pass(self, evaluator, customer, make_transaction, watchlist):
        txn = make_transaction(500, counterparty_name="Chipo Dube")

        screening = await evaluator.screen(watchlist, txn, customer)
        result = by_name(evaluator.evaluate(txn, customer, [], screening))["sanctions_screening"]

        assert not result.triggered
        assert result.status == CheckStatus.PASS
        assert result.details["list_version"] == watchlist.version

    def test_incomplete_screening_is_pending(self, evaluator, customer, make_transaction):
        """Screening errors never read as clear."""
        screening = ScreeningOutcome(errors=["timeout screening 'Tendai Moyo'"])

        result = by_name(evaluator.evaluate(make_transaction(500), customer, [], screening))

        assert result["sanctions_screening"].status == CheckStatus.PENDING
        assert result["pep_screening"].status == CheckStatus.PENDING

    def test_customer_record_match(self, evaluator, customer, make_transaction):
        """A customer already marked as a sanctions match is blocked without a provider hit."""
        customer.sanctions_screening = SanctionsScreening(
            status=SanctionsStatus.MATCH, matched_lists=["sanctions_eu"]
        )

        result = by_name(evaluator.evaluate(make_transaction(500), customer, [], clear_screening()))

        assert result["sanctions_screening"].blocks_transaction
        assert result["sanctions_screening"].details["matched_lists"] == ["sanctions_eu"]

    def test_potential_customer_match_is_pending(self, evaluator, customer, make_transaction):
        """An unresolved potential match on the customer record is held, not cleared."""
        customer.sanctions_screening = SanctionsScreening(
            status=SanctionsStatus.POTENTIAL, matched_lists=["sanctions_ofac"]
        )

        result = by_name(evaluator.evaluate(make_transaction(500), customer, [], clear_screening()))

        sanctions = result["sanctions_screening"]
        assert sanctions.status == CheckStatus.PENDING
        assert not sanctions.triggered
        assert not sanctions.blocks_transaction
        assert sanctions.details["potential_lists"] == ["sanctions_ofac"]


class TestPEPScreening:
    """Tests for politically exposed persons."""

    def test_declared_foreign_pep(self, evaluator, customer, make_transaction):
        customer.pep_status = PEPStatus(is_pep=True, category=PEPCategory.FOREIGN)

        result = by_name(evaluator.evaluate(make_transaction(1000), customer, [], clear_screening()))

        assert result["pep_screening"].triggered
        assert result["pep_screening"].risk_score == 40

    def test_high_value_pep_adds_enhanced_monitoring(self, evaluator, customer, make_transaction):
        customer.pep_status = PEPStatus(is_pep=True, category=PEPCategory.DOMESTIC)

        result = by_name(evaluator.evaluate(make_transaction(6000), customer, [], clear_screening()))

        assert result["pep_screening"].risk_score == 40
        assert result["pep_screening"].details["enhanced_monitoring_required"]

    @pytest.mark.asyncio
    async def test_pep_found_by_screening(self, evaluator, customer, make_transaction, watchlist):
        """An undeclared PEP on a PEP list is scored by the list's category."""
        customer.name = "Grace Chikwanha"
        txn = make_transaction(1000)

        screening = await evaluator.screen(watchlist, txn, customer)
        result = by_name(evaluator.evaluate(txn, customer, [], screening))

        assert result["pep_screening"].triggered
        assert result["pep_screening"].details["category"] == "domestic"
        assert result["pep_screening"].risk_score == 30
        assert not result["sanctions_screening"].triggered


class TestBehaviouralRules:
    """Tests for rapid movement, round numbers and unusual hours."""

    def test_rapid_movement(self, evaluator, customer, make_transaction):
        """Five transactions within 24 hours trigger."""
        recent = [make_transaction(300, hours_ago=h) for h in (1, 5, 10, 20)]

        result = by_name(evaluator.evaluate(make_transaction(300), customer, recent, clear_screening()))

        assert result["rapid_movement"].triggered
        assert result["rapid_movement"].details["count"] == 5

    def test_rapid_movement_below_count(self, evaluator, customer, make_transaction):
        recent = [make_transaction(300, hours_ago=h) for h in (1, 5, 30)]

        result = by_name(evaluator.evaluate(make_transaction(300), customer, recent, clear_screening()))

        assert not result["rapid_movement"].triggered

    @pytest.mark.parametrize(
        "amount,expected",
        [("10000", True), ("20000", True), ("500000", True), ("20500", False), ("10000.50", False), ("5000", False)],
    )
    def test_round_numbers(self, evaluator, customer, make_transaction, amount, expected):
        result = by_name(evaluator.evaluate(make_transaction(amount), customer, [], clear_screening()))

        assert result["round_number"].triggered is expected

    @pytest.mark.parametrize(
        "hour,expected",
        [(21, False), (22, True), (23, True), (0, True), (5, True), (6, False), (12, False)],
    )
    def test_unusual_hours_window(self, evaluator, customer, make_transaction, hour, expected):
        """Night window is [22:00, 06:00)."""
        txn = make_transaction(100, at=datetime(2026, 3, 2, hour, 30))

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))

        assert result["unusual_hours"].triggered is expected


class TestGeographicRules:
    """Tests for geographic velocity and jurisdiction risk."""

    def test_geographic_velocity(self, evaluator, customer, make_transaction):
        recent = [make_transaction(100, hours_ago=3, transaction_type=TransactionType.TRANSFER, country="South Africa")]
        txn = make_transaction(100, transaction_type=TransactionType.TRANSFER, country="Zimbabwe")

        result = by_name(evaluator.evaluate(txn, customer, recent, clear_screening()))

        assert result["geographic_velocity"].triggered
        assert result["geographic_velocity"].details["countries"] == ["South Africa", "Zimbabwe"]

    def test_high_risk_jurisdiction(self, evaluator, customer, make_transaction):
        txn = make_transaction(1000, transaction_type=TransactionType.WIRE, country="Iran")

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))["geographic_risk"]

        assert result.triggered
        assert result.risk_score == 45
        assert result.details["additional_scrutiny_required"]
        assert not result.requires_reporting

    def test_cross_border_reporting(self, evaluator, customer, make_transaction):
        """Cross-border flows at or above $5,000 request a cross-border report."""
        txn = make_transaction(5000, transaction_type=TransactionType.TRANSFER, country="South Africa")

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))["geographic_risk"]

        assert result.requires_reporting
        assert result.report_type == ReportType.CROSS_BORDER
        assert result.risk_score == 0

    def test_domestic_flow_clear(self, evaluator, customer, make_transaction):
        txn = make_transaction(50000, transaction_type=TransactionType.TRANSFER, country="Zimbabwe")

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))["geographic_risk"]

        assert not result.triggered


class TestProfileInconsistency:
    """Tests for deviations from the declared profile."""

    def test_volume_above_multiplier(self, evaluator, customer, make_transaction):
        """Rolling 30-day volume over 3x declared turnover triggers."""
        recent = [make_transaction(8000, days_ago=d) for d in (2, 6, 10, 14, 18, 22, 26)]

        result = by_name(evaluator.evaluate(make_transaction(8000), customer, recent, clear_screening()))

        assert "volume" in result["profile_inconsistency"].details["findings"]

    def test_undeclared_type_and_country(self, evaluator, customer, make_transaction):
        txn = make_transaction(1000, transaction_type=TransactionType.WIRE, country="Zambia")

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))["profile_inconsistency"]

        assert result.details["findings"] == ["type", "country"]
        assert result.risk_score == 22

    def test_consistent_activity_clear(self, evaluator, customer, make_transaction):
        txn = make_transaction(4000, country="South Africa")

        result = by_name(evaluator.evaluate(txn, customer, [], clear_screening()))["profile_inconsistency"]

        assert not result.triggered


class TestEvaluator:
    """Tests for the evaluator itself."""

    def test_one_result_per_rule(self, evaluator, customer, make_transaction):
        results = evaluator.evaluate(make_transaction(100), customer, [], clear_screening())

        assert [r.rule_name for r in results] == [rule.name for rule in evaluator.rules]

    def test_rule_crash_fails_loudly(self, test_settings, customer, make_transaction):
        """An unexpected rule error becomes a ComputationError."""

        class BrokenRule(TransactionRule):
            @property
            def name(self) -> str:
                return "broken"

            @property
            def description(self) -> str:
                return "Always fails"

            def evaluate(self, context: RuleContext) -> RuleResult:
                raise ZeroDivisionError("division by zero")

        evaluator = TransactionRuleEvaluator(test_settings, rules=[BrokenRule(test_settings)])

        with pytest.raises(ComputationError) as exc_info:
            evaluator.evaluate(make_transaction(100), customer, [], clear_screening())

        assert exc_info.value.details["rule"] == "broken"

    @pytest.mark.asyncio
    async def test_screen_timeout_recorded(self, test_settings, customer, make_transaction, slow_provider):
        """A screener that does not answer in time leaves the check pending."""
        evaluator = TransactionRuleEvaluator(test_settings)
        txn = make_transaction(100)

        screening = await evaluator.screen(slow_provider, txn, customer, timeout=0.01)
        result = by_name(evaluator.evaluate(txn, customer, [], screening))

        assert not screening.complete
        assert "timeout" in screening.errors[0]
        assert result["sanctions_screening"].status == CheckStatus.PENDING

    @pytest.mark.asyncio
    async def test_snapshot_timeout_recorded(self, evaluator, customer, make_transaction, hanging_provider):
        screening = await evaluator.screen(hanging_provider, make_transaction(100), customer, timeout=0.01)

        assert screening.customer is None
        assert not screening.complete

    @pytest.mark.asyncio
    async def test_no_provider_is_pending(self, evaluator, customer, make_transaction):
        screening = await evaluator.screen(None, make_transaction(100), customer)

        assert screening.errors == ["no screening provider configured"]
