from __future__ import annotations

"""
Risk interpretation pipeline orchestration.

Design intent:
- One request walks VALIDATING -> ANALYZING -> AGGREGATING -> EXPLAINING -> COMPLETE.
  Only validation can end a request in FAILED; every later problem degrades
  the result instead.
- Per-request worker pools; the only shared state is the cohort snapshot
  reference and the append-only event store.
- A request deadline stops waiting on slow analyzers or layers and returns
  whatever completed, marked degraded.
"""

import hashlib
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import asdict, dataclass, replace
from typing import Any, Literal, Mapping, Optional, Sequence, Union
from uuid import uuid4

from pydantic import ValidationError

from farmrisk.analyzers.base import (
    AnalyzerSettings,
    AnalyzerUnavailable,
    AuxiliaryData,
    DomainAnalyzer,
    RainfallOutlook,
    RiskFactor,
)
from farmrisk.analyzers.registry import DEFAULT_ANALYZERS, default_model_registry
from farmrisk.cohort.anonymizer import CohortSnapshotStore
from farmrisk.context.regional_defaults import historical_rainfall
from farmrisk.context.validator import (
    ContextValidationError,
    NormalizedFarmContext,
    QualityReport,
    validate_farm_context,
)
from farmrisk.explain.synthesizer import CounterfactualProbe, ExplanationChain, synthesize_explanation
from farmrisk.explain.templates import TemplateRegistry
from farmrisk.internal_core.adapters import AdapterError, AdapterQuery, DataAdapter, Unavailable
from farmrisk.internal_core.artifacts import ModelRegistry
from farmrisk.internal_core.audit import log_event
from farmrisk.internal_core.config import AdvisorConfig, load_config, project_root
from farmrisk.internal_core.contracts import AudienceProfile, FarmContext, OutcomeEvent, RiskQuery, Scenario
from farmrisk.internal_core.event_store import InMemoryEventStore
from farmrisk.internal_core.repositories import FarmContextRepository, HistoricalWeatherRepository
from farmrisk.risk.aggregation import AnalyzerNote, RiskAssessment, build_risk_assessment
from farmrisk.risk.scenarios import ScenarioComparison, compare_scenarios as rank_scenarios

logger = logging.getLogger(__name__)

PipelineState = Literal["VALIDATING", "ANALYZING", "AGGREGATING", "EXPLAINING", "COMPLETE", "FAILED"]


@dataclass(frozen=True)
class PipelineResult:
    request_id: str
    assessment: RiskAssessment
    explanation: Optional[ExplanationChain]
    states: list[str]
    degraded: bool
    elapsed_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "assessment": self.assessment.to_dict(),
            "explanation": asdict(self.explanation) if self.explanation is not None else None,
            "states": list(self.states),
            "degraded": self.degraded,
            "elapsed_ms": self.elapsed_ms,
        }


@dataclass(frozen=True)
class _AnalyzerRun:
    factors: list[RiskFactor]
    unavailable: list[AnalyzerNote]
    timed_out: bool


class RiskInterpretationOrchestrator:
    def __init__(
        self,
        *,
        config: Optional[AdvisorConfig] = None,
        event_store: Optional[InMemoryEventStore] = None,
        analyzers: Sequence[DomainAnalyzer] = DEFAULT_ANALYZERS,
        models: Optional[ModelRegistry] = None,
        rainfall_adapter: Optional[DataAdapter] = None,
        weather_repository: Optional[HistoricalWeatherRepository] = None,
        farm_repository: Optional[FarmContextRepository] = None,
        cohort_store: Optional[CohortSnapshotStore] = None,
        templates: Optional[TemplateRegistry] = None,
    ):
        self.config = config or load_config()
        self.event_store = event_store or InMemoryEventStore(
            outcome_log_path=self.config.outcome_log_path(project_root())
        )
        self.analyzers = tuple(analyzers)
        self.models = models or default_model_registry()
        self.rainfall_adapter = rainfall_adapter
        self.weather_repository = weather_repository
        self.farm_repository = farm_repository
        self.cohort_store = cohort_store or CohortSnapshotStore()
        self.templates = templates or TemplateRegistry(self.config.template_dir_path(project_root()))
        self.default_audience = _default_audience(self.config)
        self.settings = AnalyzerSettings(
            soil_confidence_threshold=self.config.FARMRISK_SOIL_CONFIDENCE_THRESHOLD,
            debt_risk_fraction=self.config.FARMRISK_WATER_DEBT_RISK_FRACTION,
            debt_risk_max_cost=self.config.FARMRISK_WATER_DEBT_RISK_MAX_COST,
            hours_per_worker_week=self.config.FARMRISK_HOURS_PER_WORKER_WEEK,
        )

    def analyze_risk(
        self,
        context: Union[Mapping[str, Any], FarmContext],
        query: Optional[RiskQuery] = None,
        *,
        request_id: Optional[str] = None,
    ) -> PipelineResult:
        query = query or RiskQuery()
        request_id = request_id or f"req_{uuid4().hex[:12]}"
        started = time.monotonic()
        timeout_sec = query.request_timeout_sec or self.config.FARMRISK_REQUEST_TIMEOUT_SEC
        deadline = started + float(timeout_sec)
        states: list[str] = ["VALIDATING"]
        log_event(self.event_store, request_id, "REQUEST_RECEIVED", "ANALYZE_RISK", "")

        try:
            normalized, quality = validate_farm_context(_apply_query(context, query))
        except ContextValidationError as exc:
            states.append("FAILED")
            log_event(self.event_store, request_id, "VALIDATION_FAILED", exc.code, exc.message)
            logger.info("risk_request_failed request_id=%s code=%s", request_id, exc.code)
            raise

        states.append("ANALYZING")
        assessment, timed_out, aux = self._assess(normalized, quality, request_id, deadline)
        states.append("AGGREGATING")

        explanation: Optional[ExplanationChain] = None
        if query.include_explanation and self.config.FARMRISK_EXPLANATIONS_ENABLED:
            states.append("EXPLAINING")
            explanation = synthesize_explanation(
                assessment,
                audience=query.audience or self.default_audience,
                templates=self.templates,
                probe=CounterfactualProbe(
                    normalized=normalized,
                    aux=aux,
                    analyzers=self.analyzers,
                    max_candidates_per_analyzer=self.config.FARMRISK_COUNTERFACTUAL_MAX_CANDIDATES,
                ),
                layer_timeout_sec=self.config.FARMRISK_LAYER_TIMEOUT_SEC,
                deadline=deadline,
            )
            for item in explanation.omitted:
                log_event(self.event_store, request_id, "LAYER_OMITTED", item.code, item.name)
        states.append("COMPLETE")

        self.event_store.record_prediction(
            prediction_id=assessment.prediction_id,
            farm_id=assessment.farm_id,
            level=assessment.level,
            confidence=assessment.confidence,
            model_versions=assessment.model_versions,
        )
        elapsed_ms = int((time.monotonic() - started) * 1000)
        log_event(
            self.event_store,
            request_id,
            "ASSESSMENT_EMITTED",
            assessment.level,
            f"prediction_id={assessment.prediction_id} confidence={assessment.confidence} degraded={assessment.degraded}",
            duration_ms=elapsed_ms,
        )
        logger.info(
            "risk_assessment_emitted request_id=%s level=%s confidence=%s degraded=%s elapsed_ms=%s",
            request_id,
            assessment.level,
            assessment.confidence,
            assessment.degraded,
            elapsed_ms,
        )
        return PipelineResult(
            request_id=request_id,
            assessment=assessment,
            explanation=explanation,
            states=states,
            degraded=assessment.degraded or timed_out,
            elapsed_ms=elapsed_ms,
        )

    def analyze_farm(self, farm_id: str, query: Optional[RiskQuery] = None) -> PipelineResult:
        if self.farm_repository is None:
            raise KeyError(f"Unknown farm_id: {farm_id}")
        context = self.farm_repository.get(farm_id)
        if context is None:
            raise KeyError(f"Unknown farm_id: {farm_id}")
        return self.analyze_risk(context, query)

    def compare_scenarios(
        self,
        scenarios: Sequence[Scenario],
        *,
        baseline: Optional[Scenario] = None,
        request_id: Optional[str] = None,
    ) -> ScenarioComparison:
        request_id = request_id or f"req_{uuid4().hex[:12]}"
        deadline = time.monotonic() + float(self.config.FARMRISK_REQUEST_TIMEOUT_SEC)
        log_event(
            self.event_store,
            request_id,
            "REQUEST_RECEIVED",
            "COMPARE_SCENARIOS",
            f"scenarios={len(scenarios)} baseline={baseline is not None}",
        )

        def _evaluate(scenario: Scenario) -> RiskAssessment:
            try:
                normalized, quality = validate_farm_context(scenario.context)
            except ContextValidationError as exc:
                log_event(self.event_store, request_id, "VALIDATION_FAILED", exc.code, scenario.scenario_id)
                raise
            assessment, _, _ = self._assess(normalized, quality, request_id, deadline)
            return assessment

        comparison = rank_scenarios(scenarios, _evaluate, baseline=baseline)
        logger.info(
            "scenarios_ranked request_id=%s count=%s reference=%s top=%s",
            request_id,
            len(comparison.ranked),
            comparison.reference,
            comparison.ranked[0].scenario_id if comparison.ranked else "",
        )
        return comparison

    def record_outcome(
        self,
        prediction_id: str,
        actual_outcome: str,
        meta: Optional[dict[str, Any]] = None,
    ) -> OutcomeEvent:
        event = self.event_store.record_outcome(prediction_id, actual_outcome, meta=meta)
        log_event(
            self.event_store,
            f"outcome_{prediction_id}",
            "OUTCOME_RECORDED",
            event.predicted_level,
            f"prediction_id={prediction_id}",
        )
        return event

    def _assess(
        self,
        normalized: NormalizedFarmContext,
        quality: QualityReport,
        request_id: str,
        deadline: float,
    ) -> tuple[RiskAssessment, bool, AuxiliaryData]:
        if quality.fallback_fields():
            log_event(
                self.event_store,
                request_id,
                "DATA_DEGRADED",
                "FALLBACK_USED",
                f"completeness={quality.completeness} fallback_fields={len(quality.fallback_fields())}",
            )
        aux = self._auxiliary(normalized, request_id)
        extra_notes: list[str] = []
        if self.rainfall_adapter is not None and aux.rainfall is not None and aux.rainfall.source == "historical":
            extra_notes.append(
                f"Seasonal rainfall outlook unavailable; historical average for {normalized.region_key} used."
            )
        if extra_notes:
            quality = replace(quality, degradations=list(quality.degradations) + extra_notes)

        run = self._run_analyzers(normalized, aux, request_id, deadline)
        snapshot = self.cohort_store.current()
        context = normalized.context
        cohort = snapshot.lookup(normalized.region_key, context.planned_crop or "", context.input_philosophy)

        assessment = build_risk_assessment(
            farm_id=context.farm_id,
            factors=run.factors,
            quality=quality,
            analyzer_slots=[item.name for item in self.analyzers],
            unavailable=run.unavailable,
            cohort=cohort,
            cohort_snapshot_id=snapshot.snapshot_id,
            model_versions=self.models.versions(),
            analyzer_weight=self.config.FARMRISK_CONFIDENCE_ANALYZER_WEIGHT,
            degraded=run.timed_out or bool(extra_notes),
            context_digest=_context_digest(normalized),
        )
        return assessment, run.timed_out, aux

    def _auxiliary(self, normalized: NormalizedFarmContext, request_id: str) -> AuxiliaryData:
        return AuxiliaryData(
            rainfall=self._rainfall_outlook(normalized, request_id),
            models=self.models.snapshot(),
            settings=self.settings,
        )

    def _rainfall_outlook(
        self,
        normalized: NormalizedFarmContext,
        request_id: str,
    ) -> Optional[RainfallOutlook]:
        season = normalized.context.season or "kharif"
        if self.rainfall_adapter is not None:
            outlook = self._fetch_adapter_rainfall(self.rainfall_adapter, normalized, season, request_id)
            if outlook is not None:
                return outlook

        if self.weather_repository is not None:
            row = self.weather_repository.seasonal_rainfall(normalized.region_key, season)
            if row is not None:
                return RainfallOutlook(expected_mm=row.mean_mm, std_mm=row.std_mm, source="historical", years=row.years)
        fallback = historical_rainfall(normalized.region_key, season)
        if fallback is None:
            return None
        return RainfallOutlook(
            expected_mm=float(fallback["mean_mm"]),
            std_mm=float(fallback["std_mm"]),
            source="historical",
            years=int(fallback.get("years", 0)),
        )

    def _fetch_adapter_rainfall(
        self,
        adapter: DataAdapter,
        normalized: NormalizedFarmContext,
        season: str,
        request_id: str,
    ) -> Optional[RainfallOutlook]:
        query = AdapterQuery(region=normalized.region_key, season=season, crop=normalized.context.planned_crop or "")
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="adapter")
        code = ""
        try:
            future = executor.submit(adapter.fetch, query)
            try:
                payload = future.result(timeout=self.config.FARMRISK_ADAPTER_TIMEOUT_SEC)
            except FutureTimeoutError:
                code = "ADAPTER_TIMEOUT"
            except AdapterError as exc:
                code = exc.code
            except Exception as exc:
                logger.warning(
                    "rainfall_adapter_failed request_id=%s adapter=%s error=%s", request_id, adapter.name(), str(exc)
                )
                code = "ADAPTER_ERROR"
            else:
                if isinstance(payload, Unavailable):
                    code = payload.reason
                else:
                    try:
                        return RainfallOutlook(
                            expected_mm=float(payload["expected_mm"]),
                            std_mm=float(payload.get("std_mm", 0.0)) or 1.0,
                            source="adapter",
                            years=int(payload.get("years", 0)),
                        )
                    except (KeyError, TypeError, ValueError):
                        code = "ADAPTER_PAYLOAD_INVALID"
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        log_event(self.event_store, request_id, "ADAPTER_UNAVAILABLE", code, adapter.name())
        logger.warning("rainfall_adapter_unavailable request_id=%s adapter=%s code=%s", request_id, adapter.name(), code)
        return None

    def _run_analyzers(
        self,
        normalized: NormalizedFarmContext,
        aux: AuxiliaryData,
        request_id: str,
        deadline: float,
    ) -> _AnalyzerRun:
        started = time.monotonic()
        analyzer_deadline = min(started + self.config.FARMRISK_ANALYZER_TIMEOUT_SEC, deadline)
        factors: list[RiskFactor] = []
        unavailable: list[AnalyzerNote] = []
        timed_out = False

        executor = ThreadPoolExecutor(max_workers=max(len(self.analyzers), 1), thread_name_prefix="analyzer")
        try:
            futures = [(item, executor.submit(item.analyze, normalized, aux)) for item in self.analyzers]
            for analyzer, future in futures:
                try:
                    produced = future.result(timeout=max(analyzer_deadline - time.monotonic(), 0.0))
                except FutureTimeoutError:
                    future.cancel()
                    note = AnalyzerNote(analyzer.name, "ANALYZER_TIMEOUT", "Analyzer did not finish in time.")
                    if time.monotonic() >= deadline:
                        timed_out = True
                except AnalyzerUnavailable as exc:
                    note = AnalyzerNote(analyzer.name, exc.code, exc.message)
                except Exception as exc:
                    logger.warning("analyzer_failed request_id=%s analyzer=%s error=%s", request_id, analyzer.name, str(exc))
                    note = AnalyzerNote(analyzer.name, "ANALYZER_ERROR", type(exc).__name__)
                else:
                    factors.extend(produced)
                    continue
                unavailable.append(note)
                log_event(self.event_store, request_id, "ANALYZER_UNAVAILABLE", note.code, analyzer.name)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if timed_out:
            log_event(self.event_store, request_id, "REQUEST_TIMEOUT", "REQUEST_DEADLINE", f"unavailable={len(unavailable)}")
        return _AnalyzerRun(factors=factors, unavailable=unavailable, timed_out=timed_out)


def _default_audience(config: AdvisorConfig) -> AudienceProfile:
    try:
        return AudienceProfile(locale=config.FARMRISK_DEFAULT_LOCALE, literacy=config.FARMRISK_DEFAULT_LITERACY)
    except ValidationError:
        logger.warning(
            "default_audience_invalid locale=%s literacy=%s",
            config.FARMRISK_DEFAULT_LOCALE,
            config.FARMRISK_DEFAULT_LITERACY,
        )
        return AudienceProfile()


def _apply_query(context: Union[Mapping[str, Any], FarmContext], query: RiskQuery) -> Union[Mapping[str, Any], FarmContext]:
    overrides: dict[str, Any] = {}
    if query.season is not None:
        overrides["season"] = query.season
    if query.planned_crop is not None:
        overrides["planned_crop"] = query.planned_crop
    if not overrides:
        return context
    if isinstance(context, FarmContext):
        payload: dict[str, Any] = context.model_dump(exclude_none=True)
    elif isinstance(context, Mapping):
        payload = dict(context)
    else:
        return context
    payload.update(overrides)
    return payload


def _context_digest(normalized: NormalizedFarmContext) -> str:
    raw = normalized.context.model_dump_json() + "|" + "|".join(
        f"{name}={source}" for name, source in sorted(normalized.sources.items())
    )
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()
