"""
Risk & compliance monitoring engine.

Wires the quantitative library, rule evaluator, aggregator, alert trigger
and periodic driver together behind the five operations callers use.
Every collaborator is injected; nothing is a module-level singleton.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Optional, TypeVar

from riskguard.assessment.scheduler import (
    AssessmentBatchResult,
    AssessmentEntity,
    PeriodicAssessmentDriver,
)
from riskguard.concurrency import KeyedLocks
from riskguard.config import Settings, settings as default_settings
from riskguard.exceptions import DependencyError, ValidationError
from riskguard.models.alert import AlertCategory
from riskguard.models.customer import Customer
from riskguard.models.risk import (
    CreditRiskParams,
    CreditRiskRecord,
    MarketRiskParams,
    MarketRiskRecord,
    Position,
    StressScenario,
    StressTestResult,
    VaRResult,
)
from riskguard.models.transaction import (
    CheckResult,
    CheckStatus,
    Transaction,
    TransactionRiskAssessment,
)
from riskguard.monitoring.aggregator import AggregationResult, LibraryResults, RiskAggregator
from riskguard.monitoring.alerting import AlertReportTrigger, AlertSink
from riskguard.monitoring.evaluator import TransactionRuleEvaluator
from riskguard.monitoring.rules import RuleResult, ScreeningOutcome
from riskguard.quant.credit import calculate_credit_risk
from riskguard.quant.market import DEFAULT_STRESS_SCENARIOS, stress_test, value_at_risk
from riskguard.reporting import ReportGenerator
from riskguard.screening.base import ScreeningProvider
from riskguard.stores import PortfolioSource, RiskRecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

AML_WEIGHT = 0.7
CFT_WEIGHT = 0.3

THRESHOLD_RULES = {"cash_threshold", "geographic_risk"}
PATTERN_RULES = {
    "structuring",
    "rapid_movement",
    "round_number",
    "unusual_hours",
    "geographic_velocity",
    "profile_inconsistency",
}


class RiskComplianceEngine:
    """
    Entry point for per-transaction evaluation and risk calculations.

    Usage:
        engine = RiskComplianceEngine(
            settings=settings,
            screening_provider=watchlist,
            report_generator=ComplianceReportGenerator(settings),
        )
        result = await engine.evaluate_transaction(txn, customer, recent)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        screening_provider: Optional[ScreeningProvider] = None,
        evaluator: Optional[TransactionRuleEvaluator] = None,
        aggregator: Optional[RiskAggregator] = None,
        trigger: Optional[AlertReportTrigger] = None,
        report_generator: Optional[ReportGenerator] = None,
        alert_sink: Optional[AlertSink] = None,
        portfolio_source: Optional[PortfolioSource] = None,
        record_store: Optional[RiskRecordStore] = None,
        driver: Optional[PeriodicAssessmentDriver] = None,
    ):
        self.settings = settings or default_settings
        self.screening_provider = screening_provider
        self.evaluator = evaluator or TransactionRuleEvaluator(self.settings)
        self.aggregator = aggregator or RiskAggregator(self.settings)
        self.trigger = trigger or AlertReportTrigger(self.settings, alert_sink, report_generator)
        self.portfolio_source = portfolio_source
        self.record_store = record_store
        self.driver = driver or PeriodicAssessmentDriver(
            self.settings,
            aggregator=self.aggregator,
            trigger=self.trigger,
            record_store=record_store,
            portfolio_source=portfolio_source,
        )
        self._customer_locks = KeyedLocks()
        # Transactions evaluated here, per customer, pruned to the longest rule window
        self._evaluated: dict[str, list[Transaction]] = {}

    async def _persist(self, awaitable: Awaitable[T]) -> T:
        timeout = self.settings.persistence_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError:
            raise DependencyError(f"Record store timed out after {timeout}s", dependency="record_store")

    # Per-transaction path

    async def evaluate_transaction(
        self,
        transaction: Transaction,
        customer: Customer,
        recent_transactions: list[Transaction],
    ) -> AggregationResult:
        """
        Evaluate one transaction and write back its risk and compliance fields.

        Evaluation and write-back run under the customer's lock. Inside it,
        recent_transactions is merged with every transaction this engine has
        already evaluated for the customer, so two concurrent transactions of
        the same customer never miss each other in the structuring and
        rapid-movement windows even when the caller read its window before
        either was stored. Failures propagate: an unevaluated transaction
        must not be treated as clear.
        """
        if transaction.customer_id != customer.id:
            raise ValidationError(
                f"Transaction {transaction.id} does not belong to customer {customer.id}"
            )

        customer_key = str(customer.id)
        async with self._customer_locks.hold(customer_key):
            recent = self._with_evaluated(customer_key, recent_transactions)
            screening = await self.evaluator.screen(self.screening_provider, transaction, customer)
            rule_results = self.evaluator.evaluate(transaction, customer, recent, screening)

            library = None
            if transaction.portfolio_id:
                library = await self._portfolio_results(transaction.portfolio_id)

            result = self.aggregator.aggregate(library_results=library, rule_results=rule_results)
            self._write_back(transaction, result, screening)
            self._remember(customer_key, transaction)

            await self.trigger.process(
                customer_key,
                "customer",
                result,
                transaction=transaction,
                customer=customer,
                category=AlertCategory.AML,
            )

        logger.info(
            f"Transaction {transaction.id}: score={result.score:.0f} level={result.level} "
            f"status={transaction.status.value}"
        )
        return result

    def _history_span(self) -> timedelta:
        s = self.settings
        return max(
            timedelta(days=s.structuring_window_days),
            timedelta(days=s.profile_window_days),
            timedelta(hours=s.rapid_movement_window_hours),
            timedelta(hours=s.geo_velocity_window_hours),
        )

    def _with_evaluated(self, customer_key: str, recent: list[Transaction]) -> list[Transaction]:
        known = {t.id for t in recent}
        evaluated = self._evaluated.get(customer_key, [])
        return list(recent) + [t for t in evaluated if t.id not in known]

    def _remember(self, customer_key: str, transaction: Transaction) -> None:
        at = transaction.booking_date or transaction.value_date
        oldest = at - self._history_span()
        kept = [
            t for t in self._evaluated.get(customer_key, [])
            if t.id != transaction.id and (t.booking_date or t.value_date) >= oldest
        ]
        kept.append(transaction)
        self._evaluated[customer_key] = kept

    async def _portfolio_results(self, portfolio_id: str) -> Optional[LibraryResults]:
        if self.portfolio_source is None:
            return None
        try:
            returns = await self._persist(self.portfolio_source.get_returns(portfolio_id))
            positions = await self._persist(self.portfolio_source.get_positions(portfolio_id))
        except DependencyError as e:
            logger.warning(f"Portfolio {portfolio_id} unavailable, scoring rules only: {e.message}")
            return None

        return LibraryResults(
            market=value_at_risk(
                returns,
                confidence=self.settings.var_confidence,
                time_horizon=self.settings.var_time_horizon,
                positions=positions,
            )
        )

    def _write_back(
        self,
        transaction: Transaction,
        result: AggregationResult,
        screening: ScreeningOutcome,
    ) -> None:
        """Update the only fields the engine owns on a transaction."""
        now = datetime.utcnow()
        by_name = {r.rule_name: r for r in result.rule_results}

        transaction.risk_assessment = TransactionRiskAssessment(
            overall=result.score,
            aml=round(result.score * AML_WEIGHT, 2),
            cft=round(result.score * CFT_WEIGHT, 2),
            sanctions=float(self.settings.sanctions_match_score) if result.sanctions_match else 0.0,
            level=result.level,
            factors=list(result.factors),
            assessed_at=now,
        )

        checks = transaction.compliance_checks
        checks.sanctions_screening = self._check_from_rule(
            by_name.get("sanctions_screening"), now, screening
        )
        checks.pep_screening = self._check_from_rule(by_name.get("pep_screening"), now, screening)
        checks.threshold_check = self._summary_check(result.rule_results, THRESHOLD_RULES, now)
        checks.pattern_analysis = self._summary_check(result.rule_results, PATTERN_RULES, now)

        transaction.enforce_screening_status()

    def _check_from_rule(
        self,
        rule: Optional[RuleResult],
        now: datetime,
        screening: ScreeningOutcome,
    ) -> CheckResult:
        if rule is None:
            # Rule not configured; the check never ran
            return CheckResult(status=CheckStatus.PENDING, details={"reason": "not evaluated"}, checked_at=now)
        return CheckResult(
            status=rule.status,
            matched_lists=list(rule.details.get("matched_lists", [])),
            details={**rule.details, "list_version": screening.list_version},
            checked_at=now,
        )

    def _summary_check(self, results: list[RuleResult], names: set[str], now: datetime) -> CheckResult:
        triggered = [r.rule_name for r in results if r.rule_name in names and r.triggered]
        return CheckResult(
            status=CheckStatus.FAIL if triggered else CheckStatus.PASS,
            details={"triggered": triggered},
            checked_at=now,
        )

    # Quantitative operations

    async def calculate_credit_risk(self, params: CreditRiskParams) -> CreditRiskRecord:
        record = calculate_credit_risk(params)
        if self.record_store is not None:
            await self._persist(self.record_store.save_credit_record(record))
        return record

    async def calculate_market_risk(self, params: MarketRiskParams) -> VaRResult:
        """Compute VaR for a portfolio and store it as a MarketRiskRecord."""
        result = value_at_risk(
            params.returns,
            confidence=params.confidence_level,
            method=params.method,
            time_horizon=params.time_horizon,
            positions=params.positions,
            simulations=self.settings.monte_carlo_simulations,
            seed=self.settings.monte_carlo_seed,
        )
        if self.record_store is not None:
            record = MarketRiskRecord.from_result(params.portfolio_id, result)
            await self._persist(self.record_store.save_market_record(record))
        return result

    async def run_stress_test(
        self,
        portfolio_id: str,
        scenarios: Optional[list[StressScenario]] = None,
        positions: Optional[list[Position]] = None,
    ) -> list[StressTestResult]:
        """Loss per scenario, in scenario order. Defaults to the standard scenarios."""
        if positions is None:
            if self.portfolio_source is None:
                raise ValidationError(f"No positions given and no portfolio source for {portfolio_id}")
            positions = await self._persist(self.portfolio_source.get_positions(portfolio_id))

        scenarios = scenarios if scenarios is not None else list(DEFAULT_STRESS_SCENARIOS)
        return [stress_test(positions, scenario) for scenario in scenarios]

    # Batch

    async def run_periodic_assessment(self, entities: list[AssessmentEntity]) -> AssessmentBatchResult:
        return await self.driver.run_periodic_assessment(entities)
