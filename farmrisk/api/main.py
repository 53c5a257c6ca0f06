from __future__ import annotations

"""
HTTP surface for the farm risk advisor.

Design intent:
- Keep API orchestration thin and typed.
- Delegate domain logic to the pipeline/risk/cohort modules.
- Map domain errors to HTTP status codes; never leak farm records in errors.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from farmrisk.cohort.anonymizer import AggregateStats, CohortRebuilder, CohortSnapshot
from farmrisk.context.validator import ContextValidationError
from farmrisk.internal_core.audit import log_event
from farmrisk.internal_core.contracts import OutcomeEvent, RiskQuery, Scenario
from farmrisk.internal_core.repositories import (
    CohortSourceRepository,
    InMemoryCohortSourceRepository,
    InMemoryFarmContextRepository,
)
from farmrisk.pipeline.orchestrator import RiskInterpretationOrchestrator


class AnalyzeRiskRequest(BaseModel):
    # Raw mapping on purpose: out-of-range optional fields degrade instead of failing.
    context: Optional[dict[str, Any]] = None
    farm_id: Optional[str] = Field(default=None, min_length=1, max_length=128)
    query: RiskQuery = Field(default_factory=RiskQuery)


class AnalyzeRiskResponse(BaseModel):
    request_id: str
    assessment: dict[str, Any]
    explanation: Optional[dict[str, Any]] = None
    states: list[str]
    degraded: bool
    elapsed_ms: int


class CompareScenariosRequest(BaseModel):
    scenarios: list[Scenario] = Field(min_length=1, max_length=20)
    baseline: Optional[Scenario] = None


class RankedScenarioItem(BaseModel):
    rank: int
    scenario_id: str
    description: str
    level: str
    risk_score: float
    risk_reduction: float
    implementation_cost: float
    time_to_implement_days: int
    suitability: float
    confidence: float
    assessment_id: str
    alternatives: list[dict[str, Any]] = Field(default_factory=list)
    reasoning: list[str] = Field(default_factory=list)


class CompareScenariosResponse(BaseModel):
    reference: str
    reference_score: float
    baseline_level: Optional[str] = None
    ranked: list[RankedScenarioItem]


class OutcomeRequest(BaseModel):
    prediction_id: str = Field(min_length=1, max_length=128)
    actual_outcome: str = Field(min_length=1, max_length=256)
    meta: dict[str, Any] = Field(default_factory=dict)


class CohortSnapshotResponse(BaseModel):
    snapshot_id: str
    built_at: str
    min_k: int
    min_l: int
    cohort_count: int
    source_farms: int
    suppressed_farms: int
    regions: list[str] = Field(default_factory=list)


class CohortLookupResponse(BaseModel):
    cluster_id: str
    snapshot_id: str
    region: str
    crop_pattern: str
    input_philosophy: str
    farm_count: int
    mean_farm_size_ha: float
    outcome_proportions: dict[str, float]
    practice_proportions: dict[str, float]


@asynccontextmanager
async def _lifespan(app_: FastAPI) -> AsyncIterator[None]:
    rebuilder = _get_cohort_rebuilder()
    if _get_orchestrator().config.FARMRISK_COHORT_REBUILD_SECONDS > 0:
        rebuilder.start()
    try:
        yield
    finally:
        rebuilder.stop(timeout=1.0)


app = FastAPI(title="farmrisk advisor service", lifespan=_lifespan)
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_orchestrator() -> RiskInterpretationOrchestrator:
    existing = getattr(app.state, "orchestrator", None)
    if isinstance(existing, RiskInterpretationOrchestrator):
        return existing
    created = RiskInterpretationOrchestrator(farm_repository=_get_farm_repository())
    logging.getLogger("farmrisk").setLevel(created.config.FARMRISK_LOG_LEVEL.upper())
    setattr(app.state, "orchestrator", created)
    return created


def _get_farm_repository() -> InMemoryFarmContextRepository:
    existing = getattr(app.state, "farm_repository", None)
    if isinstance(existing, InMemoryFarmContextRepository):
        return existing
    created = InMemoryFarmContextRepository()
    setattr(app.state, "farm_repository", created)
    return created


def _get_cohort_repository() -> CohortSourceRepository:
    existing = getattr(app.state, "cohort_repository", None)
    if isinstance(existing, CohortSourceRepository):
        return existing
    created = InMemoryCohortSourceRepository()
    setattr(app.state, "cohort_repository", created)
    return created


def _get_cohort_rebuilder() -> CohortRebuilder:
    existing = getattr(app.state, "cohort_rebuilder", None)
    if isinstance(existing, CohortRebuilder):
        return existing
    orchestrator = _get_orchestrator()
    config = orchestrator.config

    def _on_publish(snapshot: CohortSnapshot) -> None:
        log_event(
            orchestrator.event_store,
            "cohort_rebuilder",
            "COHORT_PUBLISHED",
            snapshot.snapshot_id,
            f"cohorts={len(snapshot.cohorts)} suppressed={snapshot.suppressed_farms}",
        )

    created = CohortRebuilder(
        orchestrator.cohort_store,
        _get_cohort_repository(),
        min_k=config.FARMRISK_COHORT_MIN_K,
        min_l=config.FARMRISK_COHORT_MIN_L,
        interval_sec=max(config.FARMRISK_COHORT_REBUILD_SECONDS, 1),
        on_publish=_on_publish,
    )
    setattr(app.state, "cohort_rebuilder", created)
    return created


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/risk/analyze", response_model=AnalyzeRiskResponse)
def risk_analyze(payload: AnalyzeRiskRequest) -> AnalyzeRiskResponse:
    orchestrator = _get_orchestrator()
    if payload.context is None and payload.farm_id is None:
        raise HTTPException(status_code=400, detail="Provide one of: context or farm_id.")
    try:
        if payload.context is not None:
            result = orchestrator.analyze_risk(payload.context, payload.query)
        else:
            result = orchestrator.analyze_farm(str(payload.farm_id), payload.query)
    except ContextValidationError as exc:
        raise HTTPException(status_code=400, detail=f"{exc.code}: {exc.message}") from exc
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0]) if exc.args else "Not found") from exc

    return AnalyzeRiskResponse.model_validate(result.to_dict())


@app.post("/scenarios/compare", response_model=CompareScenariosResponse)
def scenarios_compare(payload: CompareScenariosRequest) -> CompareScenariosResponse:
    orchestrator = _get_orchestrator()
    try:
        comparison = orchestrator.compare_scenarios(payload.scenarios, baseline=payload.baseline)
    except ContextValidationError as exc:
        raise HTTPException(status_code=400, detail=f"{exc.code}: {exc.message}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return CompareScenariosResponse(
        reference=comparison.reference,
        reference_score=comparison.reference_score,
        baseline_level=comparison.baseline.level if comparison.baseline is not None else None,
        ranked=[
            RankedScenarioItem(
                rank=item.rank,
                scenario_id=item.scenario_id,
                description=item.description,
                level=item.level,
                risk_score=item.risk_score,
                risk_reduction=item.risk_reduction,
                implementation_cost=item.implementation_cost,
                time_to_implement_days=item.time_to_implement_days,
                suitability=item.suitability,
                confidence=item.assessment.confidence,
                assessment_id=item.assessment.assessment_id,
                alternatives=[asdict(option) for option in item.assessment.alternatives],
                reasoning=list(item.assessment.reasoning),
            )
            for item in comparison.ranked
        ],
    )


@app.post("/outcomes", response_model=OutcomeEvent)
def outcomes_record(payload: OutcomeRequest) -> OutcomeEvent:
    orchestrator = _get_orchestrator()
    try:
        return orchestrator.record_outcome(payload.prediction_id, payload.actual_outcome, meta=payload.meta)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc.args[0]) if exc.args else "Not found") from exc


@app.get("/cohorts/snapshot", response_model=CohortSnapshotResponse)
async def cohorts_snapshot() -> CohortSnapshotResponse:
    snapshot = _get_orchestrator().cohort_store.current()
    return CohortSnapshotResponse.model_validate(snapshot.summary())


@app.get("/cohorts/lookup", response_model=CohortLookupResponse)
async def cohorts_lookup(
    region: str = Query(min_length=1, max_length=64),
    pattern: str = Query(min_length=1, max_length=64),
    input_philosophy: Optional[str] = Query(default=None, max_length=16),
) -> CohortLookupResponse:
    result = _get_orchestrator().cohort_store.lookup(region, pattern, input_philosophy)
    if not isinstance(result, AggregateStats):
        raise HTTPException(status_code=404, detail=f"Cohort not available: {result.reason}")
    return CohortLookupResponse.model_validate(asdict(result))


@app.post("/cohorts/rebuild", response_model=CohortSnapshotResponse)
def cohorts_rebuild() -> CohortSnapshotResponse:
    try:
        snapshot = _get_cohort_rebuilder().rebuild_once()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("cohort_rebuild_requested snapshot_id=%s", snapshot.snapshot_id)
    return CohortSnapshotResponse.model_validate(snapshot.summary())
