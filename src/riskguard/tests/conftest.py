"""
Pytest configuration and shared fixtures for RiskGuard tests.
"""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

import pytest

from riskguard.config import Settings
from riskguard.models.customer import Customer, CustomerType, ExpectedProfile
from riskguard.models.transaction import Counterparty, Transaction, TransactionType
from riskguard.monitoring.aggregator import RiskAggregator
from riskguard.monitoring.alerting import AlertReportTrigger, InMemoryAlertStore
from riskguard.monitoring.evaluator import TransactionRuleEvaluator
from riskguard.reporting import ComplianceReportGenerator
from riskguard.screening.base import ScreeningResult
from riskguard.screening.watchlist import WatchlistChecker, WatchlistEntry, WatchlistType

# Midday on a weekday, outside the night window
BASE_TIME = datetime(2026, 3, 2, 12, 0, 0)


@pytest.fixture
def test_settings() -> Settings:
    """Settings with defaults only and a fixed Monte Carlo seed."""
    return Settings(_env_file=None, monte_carlo_seed=42)


@pytest.fixture
def customer() -> Customer:
    """Individual customer with a declared $20,000 monthly turnover."""
    return Customer(
        name="Tendai Moyo",
        customer_type=CustomerType.INDIVIDUAL,
        country="Zimbabwe",
        expected_profile=ExpectedProfile(
            monthly_turnover=Decimal("20000"),
            transaction_types=["deposit", "withdrawal", "transfer"],
            countries=["Zimbabwe", "South Africa"],
            average_transaction_size=Decimal("5000"),
        ),
    )


@pytest.fixture
def make_transaction(customer) -> Callable[..., Transaction]:
    """Factory for transactions of the customer fixture, timed relative to BASE_TIME."""

    def _make(
        amount,
        days_ago: float = 0,
        hours_ago: float = 0,
        transaction_type: TransactionType = TransactionType.DEPOSIT,
        country: Optional[str] = None,
        counterparty_name: str = "",
        at: Optional[datetime] = None,
        **kwargs,
    ) -> Transaction:
        when = at or BASE_TIME - timedelta(days=days_ago, hours=hours_ago)
        return Transaction(
            customer_id=customer.id,
            amount=Decimal(str(amount)),
            transaction_type=transaction_type,
            counterparty=Counterparty(name=counterparty_name, country=country),
            value_date=when,
            **kwargs,
        )

    return _make


@pytest.fixture
def watchlist() -> WatchlistChecker:
    """Watchlist with one sanctioned person and one domestic PEP."""
    checker = WatchlistChecker(min_fuzzy_score=0.85)
    checker.load_entries([
        WatchlistEntry(
            id="UN-001",
            list_type=WatchlistType.SANCTIONS_UN,
            name="Viktor Petrov",
            aliases=("V. Petrov", "Viktor Petrow"),
            source="UN Security Council",
        ),
        WatchlistEntry(
            id="OFAC-001",
            list_type=WatchlistType.SANCTIONS_OFAC,
            name="Northern Star Trading LLC",
            source="OFAC SDN",
        ),
        WatchlistEntry(
            id="PEP-001",
            list_type=WatchlistType.PEP_DOMESTIC,
            name="Grace Chikwanha",
            pep_category="domestic",
        ),
    ])
    return checker


class SlowScreener:
    """Screener that never answers within any reasonable timeout."""

    version = "slow"

    async def screen_name(self, name: str) -> ScreeningResult:
        await asyncio.sleep(10)
        return ScreeningResult(name=name)


class SlowProvider:
    async def snapshot(self):
        return SlowScreener()


class HangingProvider:
    """Provider whose snapshot call hangs."""

    async def snapshot(self):
        await asyncio.sleep(10)


@pytest.fixture
def slow_provider() -> SlowProvider:
    return SlowProvider()


@pytest.fixture
def hanging_provider() -> HangingProvider:
    return HangingProvider()


@pytest.fixture
def evaluator(test_settings) -> TransactionRuleEvaluator:
    return TransactionRuleEvaluator(test_settings)


@pytest.fixture
def aggregator(test_settings) -> RiskAggregator:
    return RiskAggregator(test_settings)


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def report_generator(test_settings) -> ComplianceReportGenerator:
    return ComplianceReportGenerator(test_settings)


@pytest.fixture
def trigger(test_settings, alert_store, report_generator) -> AlertReportTrigger:
    return AlertReportTrigger(test_settings, alert_store, report_generator)
