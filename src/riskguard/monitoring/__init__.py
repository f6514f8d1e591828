"""
Transaction monitoring: rules, aggregation and alerting.
"""

from riskguard.monitoring.aggregator import (
    AggregationResult,
    LibraryResults,
    RiskAggregator,
    highest_report_type,
)
from riskguard.monitoring.alerting import (
    AlertReportTrigger,
    AlertSink,
    InMemoryAlertStore,
    TriggerOutcome,
)
from riskguard.monitoring.evaluator import TransactionRuleEvaluator
from riskguard.monitoring.rules import (
    RuleContext,
    RuleResult,
    ScreeningOutcome,
    TransactionRule,
    default_rules,
)

__all__ = [
    "AggregationResult",
    "LibraryResults",
    "RiskAggregator",
    "highest_report_type",
    "AlertReportTrigger",
    "AlertSink",
    "InMemoryAlertStore",
    "TriggerOutcome",
    "TransactionRuleEvaluator",
    "RuleContext",
    "RuleResult",
    "ScreeningOutcome",
    "TransactionRule",
    "default_rules",
]
