"""
Periodic assessment driver.

Invoked by an external scheduler (hourly or daily). For every active
portfolio or customer it:
- Recomputes market risk (VaR, default stress scenarios)
- Recomputes credit risk and liquidity ratios
- Aggregates and stores a RiskAssessment snapshot
- Raises metric-threshold and aggregate alerts

Entities are assessed in parallel, bounded by a semaphore. One entity's
failure or timeout is recorded in the batch result and never aborts the
batch.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from riskguard.config import Settings, settings as default_settings
from riskguard.exceptions import ValidationError
from riskguard.models.alert import AlertCategory
from riskguard.models.risk import (
    CreditRiskParams,
    IFRS9Stage,
    MarketRiskRecord,
    Position,
    RiskAssessment,
    StressScenario,
    VaRMethod,
)
from riskguard.monitoring.aggregator import AggregationResult, LibraryResults, RiskAggregator
from riskguard.monitoring.alerting import AlertReportTrigger
from riskguard.quant.credit import calculate_credit_risk
from riskguard.quant.liquidity import liquidity_position
from riskguard.quant.market import (
    DEFAULT_STRESS_SCENARIOS,
    stress_test,
    suggest_mitigation_measures,
    value_at_risk,
)
from riskguard.stores import PortfolioSource, RiskRecordStore

logger = logging.getLogger(__name__)

CONTRIBUTION_CATEGORIES = {
    "market_var": AlertCategory.MARKET,
    "stress_loss": AlertCategory.MARKET,
    "credit_risk": AlertCategory.CREDIT,
    "liquidity_breach": AlertCategory.LIQUIDITY,
}


@dataclass
class LiquidityInputs:
    hqla: float
    net_outflows: float
    available_funding: float
    required_funding: float


@dataclass
class AssessmentEntity:
    """One portfolio or customer to reassess."""

    entity_id: str
    entity_type: str = "portfolio"
    portfolio_id: Optional[str] = None
    returns: Optional[list[float]] = None
    positions: Optional[list[Position]] = None
    var_method: VaRMethod = VaRMethod.HISTORICAL
    credit_params: Optional[CreditRiskParams] = None
    previous_ecl: Optional[float] = None
    liquidity: Optional[LiquidityInputs] = None


@dataclass
class AssessmentJob:
    """A periodic assessment run."""

    id: UUID
    job_type: str
    status: str = "pending"  # pending, running, completed, failed
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    entities_processed: int = 0
    entities_failed: int = 0
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get job duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class AssessmentBatchResult:
    job: AssessmentJob
    succeeded: list[str] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)
    assessments: dict[str, RiskAssessment] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": str(self.job.id),
            "status": self.job.status,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "duration_seconds": self.job.duration_seconds,
        }


class PeriodicAssessmentDriver:
    """
    Drive batch reassessment of many entities.

    Usage:
        driver = PeriodicAssessmentDriver(settings, aggregator, trigger, record_store)
        result = await driver.run_periodic_assessment(entities)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        aggregator: Optional[RiskAggregator] = None,
        trigger: Optional[AlertReportTrigger] = None,
        record_store: Optional[RiskRecordStore] = None,
        portfolio_source: Optional[PortfolioSource] = None,
        scenarios: Optional[list[StressScenario]] = None,
    ):
        self.settings = settings or default_settings
        self.aggregator = aggregator or RiskAggregator(self.settings)
        self.trigger = trigger or AlertReportTrigger(self.settings)
        self.record_store = record_store
        self.portfolio_source = portfolio_source
        self.scenarios = scenarios if scenarios is not None else list(DEFAULT_STRESS_SCENARIOS)
        self._jobs: dict[UUID, AssessmentJob] = {}

    async def _portfolio_data(self, entity: AssessmentEntity) -> tuple[Optional[list[float]], list[Position]]:
        returns = entity.returns
        positions = entity.positions
        if entity.portfolio_id and self.portfolio_source is not None:
            if returns is None:
                returns = await self.portfolio_source.get_returns(entity.portfolio_id)
            if positions is None:
                positions = await self.portfolio_source.get_positions(entity.portfolio_id)
        return returns, positions or []

    async def _previous_ecl(self, entity: AssessmentEntity) -> Optional[float]:
        if entity.previous_ecl is not None:
            return entity.previous_ecl
        if entity.credit_params is None or self.record_store is None:
            return None
        previous = await self.record_store.latest_credit_record(
            entity.credit_params.borrower_id, entity.credit_params.facility_id
        )
        return previous.expected_credit_loss if previous else None

    def _alert_category(self, result: AggregationResult) -> AlertCategory:
        if not result.contributions:
            return AlertCategory.OPERATIONAL
        largest = max(result.contributions, key=result.contributions.get)
        return CONTRIBUTION_CATEGORIES.get(largest, AlertCategory.OPERATIONAL)

    def _mitigation_measures(self, library: LibraryResults, result: AggregationResult) -> list[str]:
        measures: list[str] = []
        if library.market is not None:
            measures.extend(suggest_mitigation_measures(library.market, self.settings.var_alert_threshold))
        if library.credit is not None and library.credit.stage != IFRS9Stage.PERFORMING:
            measures.append("Review credit exposure and collateral")
        if library.credit is not None and library.credit.watch_list:
            measures.append("Add borrower to credit watch list")
        if library.liquidity is not None and not library.liquidity.compliant:
            measures.append("Restore high-quality liquid asset buffer")
        if result.mitigation_required:
            measures.append("Escalate to risk committee")
        return measures

    async def assess_entity(self, entity: AssessmentEntity, now: Optional[datetime] = None) -> RiskAssessment:
        """Recompute, aggregate, store and alert for one entity."""
        now = now or datetime.utcnow()
        library = LibraryResults()
        returns, positions = await self._portfolio_data(entity)

        if returns is not None:
            library.market = value_at_risk(
                returns,
                confidence=self.settings.var_confidence,
                method=entity.var_method,
                time_horizon=self.settings.var_time_horizon,
                positions=positions,
                simulations=self.settings.monte_carlo_simulations,
                seed=self.settings.monte_carlo_seed,
            )
        if positions:
            library.stress = [stress_test(positions, scenario) for scenario in self.scenarios]

        previous_ecl = None
        if entity.credit_params is not None:
            previous_ecl = await self._previous_ecl(entity)
            library.credit = calculate_credit_risk(entity.credit_params)

        if entity.liquidity is not None:
            library.liquidity = liquidity_position(
                entity.liquidity.hqla,
                entity.liquidity.net_outflows,
                entity.liquidity.available_funding,
                entity.liquidity.required_funding,
                lcr_minimum=self.settings.lcr_minimum,
                nsfr_minimum=self.settings.nsfr_minimum,
            )

        if library.market is None and library.credit is None and library.liquidity is None:
            raise ValidationError(f"Nothing to assess for {entity.entity_type} {entity.entity_id}")

        result = self.aggregator.aggregate(library_results=library)
        assessment = RiskAssessment(
            entity_id=entity.entity_id,
            entity_type=entity.entity_type,
            score=result.score,
            level=result.level,
            market=library.market,
            credit=library.credit,
            liquidity=library.liquidity,
            stress_results=library.stress,
            factors=result.factors,
            mitigation_measures=self._mitigation_measures(library, result),
            assessed_at=now,
        )

        if self.record_store is not None:
            if library.market is not None:
                portfolio_id = entity.portfolio_id or entity.entity_id
                await self.record_store.save_market_record(
                    MarketRiskRecord.from_result(portfolio_id, library.market, calculated_at=now)
                )
            if library.credit is not None:
                await self.record_store.save_credit_record(library.credit)
            await self.record_store.save_assessment(assessment)

        await self.trigger.check_thresholds(
            entity.entity_id,
            entity.entity_type,
            market=library.market,
            credit=library.credit,
            previous_ecl=previous_ecl,
            liquidity=library.liquidity,
            stress=library.stress,
            now=now,
        )
        await self.trigger.process(
            entity.entity_id,
            entity.entity_type,
            result,
            category=self._alert_category(result),
            now=now,
        )
        return assessment

    async def run_periodic_assessment(
        self,
        entities: list[AssessmentEntity],
        job_type: str = "periodic",
    ) -> AssessmentBatchResult:
        """
        Assess every entity, collecting failures per entity.

        Returns:
            AssessmentBatchResult with succeeded ids and {entity_id, error} failures
        """
        job = AssessmentJob(
            id=uuid4(),
            job_type=job_type,
            status="running",
            started_at=datetime.utcnow(),
            metadata={"target_entities": len(entities)},
        )
        self._jobs[job.id] = job
        # Oldest jobs first; dicts keep insertion order
        while len(self._jobs) > self.settings.assessment_job_history:
            del self._jobs[next(iter(self._jobs))]
        batch = AssessmentBatchResult(job=job)

        semaphore = asyncio.Semaphore(self.settings.assessment_concurrency)
        timeout = self.settings.assessment_entity_timeout_seconds

        logger.info(f"Starting {job_type} assessment job {job.id} for {len(entities)} entities")

        async def run_one(entity: AssessmentEntity) -> None:
            async with semaphore:
                try:
                    assessment = await asyncio.wait_for(self.assess_entity(entity), timeout=timeout)
                except asyncio.TimeoutError:
                    error = f"timed out after {timeout}s"
                except Exception as e:
                    error = f"{type(e).__name__}: {e}"
                else:
                    batch.succeeded.append(entity.entity_id)
                    batch.assessments[entity.entity_id] = assessment
                    job.entities_processed += 1
                    return

            logger.error(f"Assessment of {entity.entity_type} {entity.entity_id} failed: {error}")
            batch.failed.append({"entity_id": entity.entity_id, "error": error})
            job.entities_failed += 1
            job.errors.append(f"{entity.entity_id}: {error}")

        try:
            await asyncio.gather(*(run_one(entity) for entity in entities))
        except asyncio.CancelledError:
            job.status = "failed"
            job.errors.append("cancelled")
            job.completed_at = datetime.utcnow()
            logger.error(f"Assessment job {job.id} cancelled")
            raise

        job.status = "completed"
        job.completed_at = datetime.utcnow()
        logger.info(
            f"Assessment job {job.id} completed in {job.duration_seconds:.1f}s: "
            f"{job.entities_processed} succeeded, {job.entities_failed} failed"
        )
        return batch

    def get_job(self, job_id: UUID) -> Optional[AssessmentJob]:
        """Get a job by ID."""
        return self._jobs.get(job_id)

    def get_recent_jobs(self, limit: int = 10) -> list[AssessmentJob]:
        """Get recent jobs sorted by start time."""
        jobs = list(self._jobs.values())
        jobs.sort(key=lambda j: j.started_at or datetime.min, reverse=True)
        return jobs[:limit]

    def get_stats(self) -> dict[str, Any]:
        """Get driver statistics."""
        jobs = list(self._jobs.values())
        completed = [j for j in jobs if j.status == "completed"]

        avg_duration = 0.0
        durations = [j.duration_seconds for j in completed if j.duration_seconds is not None]
        if durations:
            avg_duration = sum(durations) / len(durations)

        return {
            "total_jobs": len(jobs),
            "completed_jobs": len(completed),
            "failed_jobs": sum(1 for j in jobs if j.status == "failed"),
            "entities_processed": sum(j.entities_processed for j in jobs),
            "entities_failed": sum(j.entities_failed for j in jobs),
            "average_duration_seconds": round(avg_duration, 1),
        }
