"""
Transaction rule evaluator.

Screens the names involved in a transaction against one screening snapshot,
then runs the rule battery over the transaction and the caller-supplied
window of the customer's recent transactions.
"""

import asyncio
import logging
from typing import Optional

from riskguard.config import Settings, settings as default_settings
from riskguard.exceptions import ComputationError, DependencyError, RiskGuardError
from riskguard.models.customer import Customer
from riskguard.models.transaction import Transaction
from riskguard.monitoring.rules import (
    RuleContext,
    RuleResult,
    ScreeningOutcome,
    TransactionRule,
    default_rules,
)
from riskguard.screening.base import NameScreener, ScreeningProvider, ScreeningResult

logger = logging.getLogger(__name__)


class TransactionRuleEvaluator:
    """
    Runs every monitoring rule against one transaction.

    Usage:
        evaluator = TransactionRuleEvaluator(settings)
        screening = await evaluator.screen(provider, transaction, customer)
        results = evaluator.evaluate(transaction, customer, recent, screening)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rules: Optional[list[TransactionRule]] = None,
    ):
        self.settings = settings or default_settings
        self.rules = rules if rules is not None else default_rules(self.settings)

    async def take_snapshot(
        self,
        provider: ScreeningProvider,
        timeout: Optional[float] = None,
    ) -> NameScreener:
        """Fetch the list snapshot used for a whole evaluation."""
        timeout = timeout or self.settings.screening_timeout_seconds
        try:
            return await asyncio.wait_for(provider.snapshot(), timeout=timeout)
        except asyncio.TimeoutError:
            raise DependencyError(
                f"Screening snapshot timed out after {timeout}s", dependency="screening"
            )

    async def _screen_one(
        self,
        screener: NameScreener,
        name: str,
        timeout: float,
        errors: list[str],
    ) -> Optional[ScreeningResult]:
        try:
            return await asyncio.wait_for(screener.screen_name(name), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Screening of '{name}' timed out after {timeout}s")
            errors.append(f"timeout screening '{name}'")
        except DependencyError as e:
            logger.warning(f"Screening of '{name}' failed: {e.message}")
            errors.append(f"{e.dependency} error screening '{name}': {e.message}")
        return None

    async def screen(
        self,
        provider: Optional[ScreeningProvider],
        transaction: Transaction,
        customer: Customer,
        timeout: Optional[float] = None,
    ) -> ScreeningOutcome:
        """
        Screen customer and counterparty names.

        Failures never propagate: they are recorded on the outcome so the
        sanctions check ends up pending rather than clear.
        """
        outcome = ScreeningOutcome()
        if provider is None:
            outcome.errors.append("no screening provider configured")
            return outcome

        timeout = timeout or self.settings.screening_timeout_seconds
        try:
            screener = await self.take_snapshot(provider, timeout)
        except DependencyError as e:
            logger.warning(f"Screening unavailable for transaction {transaction.id}: {e.message}")
            outcome.errors.append(e.message)
            return outcome

        outcome.list_version = getattr(screener, "version", None)

        names = [customer.name]
        if transaction.counterparty.name:
            names.append(transaction.counterparty.name)

        results = await asyncio.gather(
            *(self._screen_one(screener, name, timeout, outcome.errors) for name in names)
        )
        outcome.customer = results[0]
        if len(results) > 1:
            outcome.counterparty = results[1]
        return outcome

    def evaluate(
        self,
        transaction: Transaction,
        customer: Customer,
        recent: list[Transaction],
        screening: Optional[ScreeningOutcome] = None,
    ) -> list[RuleResult]:
        """
        Run all rules.

        Returns:
            One RuleResult per rule, in rule order
        """
        context = RuleContext(
            transaction=transaction,
            customer=customer,
            recent=list(recent),
            screening=screening or ScreeningOutcome(errors=["screening not performed"]),
            settings=self.settings,
        )

        results = []
        for rule in self.rules:
            try:
                result = rule.evaluate(context)
            except RiskGuardError:
                raise
            except Exception as e:
                # An unevaluated rule is a compliance gap; fail the evaluation
                logger.error(f"Error in {rule.name} rule for transaction {transaction.id}: {e}")
                raise ComputationError(
                    f"Rule {rule.name} failed: {e}",
                    details={"transaction_id": str(transaction.id), "rule": rule.name},
                ) from e
            results.append(result)
            if result.triggered:
                logger.debug(f"{rule.name}: triggered with score {result.risk_score}")

        return results

    async def evaluate_transaction(
        self,
        transaction: Transaction,
        customer: Customer,
        recent: list[Transaction],
        provider: Optional[ScreeningProvider] = None,
    ) -> list[RuleResult]:
        """Screen and evaluate in one call."""
        screening = await self.screen(provider, transaction, customer)
        return self.evaluate(transaction, customer, recent, screening)
