import time
from dataclasses import replace
from typing import Any

import pytest

from farmrisk.analyzers.base import AnalyzerUnavailable, AuxiliaryData, DomainAnalyzer, RiskFactor
from farmrisk.analyzers.registry import DEFAULT_ANALYZERS
from farmrisk.cohort.anonymizer import CohortSnapshotStore, build_cohort_snapshot
from farmrisk.context.validator import ContextValidationError, NormalizedFarmContext
from farmrisk.internal_core.adapters import AdapterQuery, DataAdapter, FailingAdapter, FetchResult, StaticDataAdapter
from farmrisk.internal_core.config import load_config
from farmrisk.internal_core.contracts import FarmContext, RiskQuery, Scenario
from farmrisk.internal_core.event_store import InMemoryEventStore
from farmrisk.internal_core.repositories import (
    CohortSourceRecord,
    HistoricalRainfall,
    InMemoryFarmContextRepository,
    InMemoryHistoricalWeatherRepository,
)
from farmrisk.pipeline.orchestrator import RiskInterpretationOrchestrator


def _context(**overrides: Any) -> dict[str, Any]:
    context: dict[str, Any] = {
        "farm_id": "farm-yav-001",
        "location": {"region": "Vidarbha", "district": "Yavatmal"},
        "soil_handling_history": [
            {"year": 2023, "season": "kharif", "practice": "ridge_and_furrow"},
            {"year": 2024, "season": "kharif", "practice": "minimum_tillage"},
        ],
        "water_pattern": {
            "irrigation_source": "rainfed",
            "water_retention": 0.6,
            "flood_risk": 0.0,
            "drainage": "good",
        },
        "input_philosophy": "mixed",
        "labor_profile": {"household_workers": 3, "physical_capacity": 0.8, "hired_workers": 1},
        "farm_size_ha": 2.0,
        "crop_history": [{"year": 2024, "season": "kharif", "crop": "soybean", "outcome": "good"}],
        "soil_test": {
            "ph": 7.2,
            "organic_carbon_pct": 0.6,
            "nitrogen_kg_ha": 300.0,
            "phosphorus_kg_ha": 15.0,
            "potassium_kg_ha": 300.0,
            "moisture_pct": 20.0,
            "sample_year": 2025,
        },
        "current_soil_condition": "moist",
        "planned_machinery": [{"machine": "bullock_plough", "operation": "tillage"}],
        "planned_crop": "soybean",
        "season": "kharif",
        "sowing_week": 26,
        "working_capital": 40000.0,
    }
    context.update(overrides)
    return context


def _orchestrator(**kwargs: Any) -> RiskInterpretationOrchestrator:
    config_overrides = {name: kwargs.pop(name) for name in list(kwargs) if name.startswith("FARMRISK_")}
    config = replace(
        load_config(),
        FARMRISK_TEMPLATE_DIR="",
        FARMRISK_OUTCOME_LOG_PATH="",
        FARMRISK_EXPLANATIONS_ENABLED=True,
        **config_overrides,
    )
    kwargs.setdefault("event_store", InMemoryEventStore())
    return RiskInterpretationOrchestrator(config=config, **kwargs)


def _slow_analyzer(seconds: float) -> DomainAnalyzer:
    def _analyze(normalized: NormalizedFarmContext, aux: AuxiliaryData) -> list[RiskFactor]:
        time.sleep(seconds)
        return []

    return DomainAnalyzer(name="slow_probe", domain="market", analyze=_analyze)


def _failing_analyzer(name: str) -> DomainAnalyzer:
    def _analyze(normalized: NormalizedFarmContext, aux: AuxiliaryData) -> list[RiskFactor]:
        raise AnalyzerUnavailable("SOURCE_DOWN", "upstream down", name)

    return DomainAnalyzer(name=name, domain="weather", analyze=_analyze)


def _event_types(orchestrator: RiskInterpretationOrchestrator, request_id: str) -> list[str]:
    return [item.type for item in orchestrator.event_store.audit_events(request_id)]


def test_full_context_walks_every_state_and_covers_four_domains() -> None:
    orchestrator = _orchestrator()

    result = orchestrator.analyze_risk(_context(), request_id="req_full")

    assert result.states == ["VALIDATING", "ANALYZING", "AGGREGATING", "EXPLAINING", "COMPLETE"]
    assessment = result.assessment
    assert {item.analyzer for item in assessment.factors} == {
        "water",
        "soil_confidence",
        "physical_load",
        "machine_soil",
    }
    assert {item.domain for item in assessment.factors} >= {"weather", "soil", "physical"}
    assert assessment.level == "LOW"
    assert result.degraded is False
    assert assessment.unavailable == []
    assert assessment.model_versions["machine_soil"] == "machine-soil-rules-1.0"
    assert result.explanation is not None
    assert [item.name for item in result.explanation.omitted] == ["peer_narrative"]
    types = _event_types(orchestrator, "req_full")
    assert types[0] == "REQUEST_RECEIVED"
    assert types[-1] == "ASSESSMENT_EMITTED"
    assert "LAYER_OMITTED" in types


def test_explanation_can_be_skipped_per_request() -> None:
    result = _orchestrator().analyze_risk(_context(), RiskQuery(include_explanation=False))

    assert result.explanation is None
    assert result.states == ["VALIDATING", "ANALYZING", "AGGREGATING", "COMPLETE"]


def test_identical_requests_give_identical_assessments() -> None:
    orchestrator = _orchestrator()

    first = orchestrator.analyze_risk(_context())
    second = orchestrator.analyze_risk(_context())

    assert first.request_id != second.request_id
    assert first.assessment == second.assessment
    assert first.assessment.assessment_id == second.assessment.assessment_id
    assert first.explanation is not None and second.explanation is not None
    assert first.explanation.layers == second.explanation.layers


@pytest.mark.parametrize(
    "field_name",
    [
        "soil_test",
        "water_pattern",
        "labor_profile",
        "planned_machinery",
        "soil_handling_history",
        "crop_history",
        "current_soil_condition",
        "planned_crop",
        "sowing_week",
        "working_capital",
        "input_philosophy",
        "farm_size_ha",
    ],
)
def test_removing_a_field_never_increases_confidence(field_name: str) -> None:
    orchestrator = _orchestrator()
    full = orchestrator.analyze_risk(_context(), RiskQuery(include_explanation=False))
    raw = _context()
    del raw[field_name]

    reduced = orchestrator.analyze_risk(raw, RiskQuery(include_explanation=False))

    assert reduced.assessment.confidence <= full.assessment.confidence


def test_missing_soil_test_is_regional_fallback_with_strictly_lower_confidence() -> None:
    orchestrator = _orchestrator()
    full = orchestrator.analyze_risk(_context(), RiskQuery(include_explanation=False))
    raw = _context()
    del raw["soil_test"]

    missing = orchestrator.analyze_risk(raw, RiskQuery(include_explanation=False))

    quality = missing.assessment.quality
    assert quality.source_for("soil_test") == "regional-fallback"
    soil_indicators = [item for item in quality.indicators if item.field.startswith("soil_test.")]
    assert soil_indicators
    assert all(item.source == "regional-fallback" for item in soil_indicators)
    assert missing.assessment.confidence < full.assessment.confidence
    assert any("regional" in line for line in missing.assessment.reasoning)


def test_low_retention_heavy_tillage_on_wet_soil_is_high_with_do_not_use() -> None:
    raw = _context(
        water_pattern={"irrigation_source": "rainfed", "water_retention": 0.1, "flood_risk": 0.0, "drainage": "good"},
        current_soil_condition="wet",
        planned_machinery=[{"machine": "heavy_tractor", "operation": "tillage"}],
    )

    result = _orchestrator().analyze_risk(raw)

    assessment = result.assessment
    assert assessment.level == "HIGH"
    alerts = [item for item in assessment.factors if item.alert == "DO_NOT_USE"]
    assert len(alerts) == 1
    assert alerts[0].analyzer == "machine_soil"
    machinery_options = [
        item
        for item in alerts[0].mitigation_options
        if item.alternative_id.startswith("machine_soil:") and ":wait:" not in item.alternative_id
    ]
    assert machinery_options
    assert {item.alternative_id for item in machinery_options} <= {
        item.alternative_id for item in assessment.alternatives
    }
    assert result.explanation is not None
    counterfactual = result.explanation.layer("counterfactual")
    assert counterfactual is not None
    assert counterfactual.data["found"] is True


def test_malformed_identity_fails_in_validation() -> None:
    orchestrator = _orchestrator()
    raw = _context()
    del raw["farm_id"]

    with pytest.raises(ContextValidationError) as exc_info:
        orchestrator.analyze_risk(raw, request_id="req_bad")

    assert exc_info.value.code == "INVALID_IDENTITY"
    assert _event_types(orchestrator, "req_bad") == ["REQUEST_RECEIVED", "VALIDATION_FAILED"]


def test_slow_analyzer_is_dropped_and_result_is_degraded() -> None:
    orchestrator = _orchestrator(
        analyzers=DEFAULT_ANALYZERS + (_slow_analyzer(1.0),),
        FARMRISK_ANALYZER_TIMEOUT_SEC=0.3,
    )

    result = orchestrator.analyze_risk(_context(), RiskQuery(include_explanation=False), request_id="req_slow")

    assessment = result.assessment
    assert result.states[-1] == "COMPLETE"
    assert result.degraded is True
    assert [(item.analyzer, item.code) for item in assessment.unavailable] == [("slow_probe", "ANALYZER_TIMEOUT")]
    assert {item.analyzer for item in assessment.factors} == {
        "water",
        "soil_confidence",
        "physical_load",
        "machine_soil",
    }
    assert "ANALYZER_UNAVAILABLE" in _event_types(orchestrator, "req_slow")


def test_request_deadline_returns_partial_degraded_result() -> None:
    orchestrator = _orchestrator(analyzers=DEFAULT_ANALYZERS + (_slow_analyzer(1.5),))

    result = orchestrator.analyze_risk(
        _context(),
        RiskQuery(include_explanation=False, request_timeout_sec=0.4),
        request_id="req_deadline",
    )

    assert result.degraded is True
    assert result.assessment.factors
    assert "REQUEST_TIMEOUT" in _event_types(orchestrator, "req_deadline")


def test_all_analyzers_failing_yields_insufficient_data_assessment() -> None:
    orchestrator = _orchestrator(analyzers=(_failing_analyzer("water"), _failing_analyzer("soil_confidence")))

    result = orchestrator.analyze_risk(_context())

    assessment = result.assessment
    assert result.states[-1] == "COMPLETE"
    assert assessment.insufficient_data is True
    assert assessment.level == "MEDIUM"
    assert assessment.confidence <= 0.3
    assert assessment.alternatives[0].alternative_id == "consult_human_expert"
    assert result.explanation is not None
    assert "factor_attribution" in [item.name for item in result.explanation.omitted]


def test_failing_rainfall_adapter_falls_back_to_historical_average() -> None:
    orchestrator = _orchestrator(rainfall_adapter=FailingAdapter("imd_outlook"))

    result = orchestrator.analyze_risk(_context(), RiskQuery(include_explanation=False), request_id="req_adapter")

    assessment = result.assessment
    water = [item for item in assessment.factors if item.analyzer == "water"][0]
    assert water.details["rainfall_source"] == "historical"
    assert assessment.degraded is True
    assert any("Seasonal rainfall outlook unavailable" in line for line in assessment.reasoning)
    events = orchestrator.event_store.audit_events("req_adapter")
    assert [(item.type, item.code) for item in events if item.type == "ADAPTER_UNAVAILABLE"] == [
        ("ADAPTER_UNAVAILABLE", "FETCH_FAILED")
    ]



class _RefusingAdapter(DataAdapter):
    def fetch(self, query: AdapterQuery) -> FetchResult:
        raise ConnectionError("upstream refused")

    def name(self) -> str:
        return "imd_outlook"


def test_unexpected_adapter_exception_degrades_to_historical_average() -> None:
    orchestrator = _orchestrator(rainfall_adapter=_RefusingAdapter())

    result = orchestrator.analyze_risk(_context(), RiskQuery(include_explanation=False), request_id="req_refused")

    assert result.states[-1] == "COMPLETE"
    water = [item for item in result.assessment.factors if item.analyzer == "water"][0]
    assert water.details["rainfall_source"] == "historical"
    assert result.assessment.degraded is True
    events = orchestrator.event_store.audit_events("req_refused")
    assert [item.code for item in events if item.type == "ADAPTER_UNAVAILABLE"] == ["ADAPTER_ERROR"]

def test_rainfall_adapter_outlook_feeds_the_water_analyzer() -> None:
    adapter = StaticDataAdapter("imd_outlook", {("vidarbha", "kharif"): {"expected_mm": 300.0, "std_mm": 60.0}})
    orchestrator = _orchestrator(rainfall_adapter=adapter)

    result = orchestrator.analyze_risk(_context())

    water = [item for item in result.assessment.factors if item.analyzer == "water"][0]
    assert water.details["rainfall_source"] == "adapter"
    assert water.probability > 0.9
    assert result.assessment.degraded is False
    assert adapter.calls == 1


def test_weather_repository_is_used_before_built_in_defaults() -> None:
    repository = InMemoryHistoricalWeatherRepository(
        [HistoricalRainfall(region="vidarbha", season="kharif", mean_mm=400.0, std_mm=50.0, years=20)]
    )
    orchestrator = _orchestrator(weather_repository=repository)

    result = orchestrator.analyze_risk(_context(), RiskQuery(include_explanation=False))

    water = [item for item in result.assessment.factors if item.analyzer == "water"][0]
    assert water.basis["expected_rain_mm"] == 400.0


def test_query_overrides_crop_and_season() -> None:
    result = _orchestrator().analyze_risk(
        _context(), RiskQuery(planned_crop="cotton", include_explanation=False)
    )
    water = [item for item in result.assessment.factors if item.analyzer == "water"][0]
    assert water.details["crop"] == "cotton"


def test_cohort_snapshot_feeds_peer_layer() -> None:
    records = [
        CohortSourceRecord(
            farm_id=f"peer-{index}",
            region="Vidarbha",
            district="Wardha",
            crop_pattern="soybean",
            input_philosophy="mixed",
            farm_size_ha=1.5,
            outcome=("good", "poor")[index % 2],
            chosen_practice="ridge_and_furrow",
        )
        for index in range(6)
    ]
    snapshot = build_cohort_snapshot(records, min_k=5, min_l=2)
    orchestrator = _orchestrator(cohort_store=CohortSnapshotStore(snapshot))

    result = orchestrator.analyze_risk(_context())

    assert result.assessment.cohort_snapshot_id == snapshot.snapshot_id
    assert result.assessment.cohort_stats is not None
    assert result.assessment.cohort_stats.farm_count == 6
    assert result.explanation is not None
    assert result.explanation.layer("peer_narrative") is not None


def test_record_outcome_links_back_to_prediction() -> None:
    orchestrator = _orchestrator()
    result = orchestrator.analyze_risk(_context(), RiskQuery(include_explanation=False))

    event = orchestrator.record_outcome(result.assessment.prediction_id, "good", meta={"yield_q_per_ha": 11.5})

    assert event.farm_id == "farm-yav-001"
    assert event.predicted_level == result.assessment.level
    assert event.model_versions == result.assessment.model_versions
    assert orchestrator.event_store.outcomes() == [event]
    with pytest.raises(KeyError):
        orchestrator.record_outcome("pred-unknown", "good")


def test_analyze_farm_reads_stored_context() -> None:
    stored = FarmContext.model_validate(_context(farm_id="farm-stored"))
    orchestrator = _orchestrator(farm_repository=InMemoryFarmContextRepository([stored]))

    result = orchestrator.analyze_farm("farm-stored", RiskQuery(include_explanation=False))

    assert result.assessment.farm_id == "farm-stored"
    with pytest.raises(KeyError):
        orchestrator.analyze_farm("farm-missing")


def test_compare_scenarios_ranks_compatible_machinery_first() -> None:
    heavy = Scenario(
        scenario_id="heavy_now",
        description="till now with the hired heavy tractor",
        context=FarmContext.model_validate(
            _context(current_soil_condition="wet", planned_machinery=[{"machine": "heavy_tractor", "operation": "tillage"}])
        ),
        implementation_cost=2500.0,
    )
    light = Scenario(
        scenario_id="bullock_now",
        description="till now with the bullock plough",
        context=FarmContext.model_validate(
            _context(current_soil_condition="wet", planned_machinery=[{"machine": "bullock_plough", "operation": "tillage"}])
        ),
        implementation_cost=900.0,
    )
    original_light = light.context.model_dump()

    comparison = _orchestrator().compare_scenarios([heavy, light])

    assert [item.scenario_id for item in comparison.ranked] == ["bullock_now", "heavy_now"]
    assert comparison.ranked[0].level == "LOW"
    assert comparison.ranked[1].level == "HIGH"
    assert comparison.ranked[0].risk_reduction > 0.0
    assert light.context.model_dump() == original_light


def test_configured_default_audience_applies_when_query_has_none() -> None:
    orchestrator = _orchestrator(FARMRISK_DEFAULT_LOCALE="hi", FARMRISK_DEFAULT_LITERACY="basic")

    result = orchestrator.analyze_risk(_context())

    assert result.explanation is not None
    assert result.explanation.locale == "hi"
    assert result.explanation.literacy == "basic"


def test_query_audience_beats_configured_default() -> None:
    orchestrator = _orchestrator(FARMRISK_DEFAULT_LOCALE="hi")

    result = orchestrator.analyze_risk(_context(), RiskQuery(audience={"locale": "en", "literacy": "advanced"}))

    assert result.explanation is not None
    assert result.explanation.locale == "en"
    assert result.explanation.literacy == "advanced"


def test_invalid_default_literacy_falls_back_to_builtin_audience() -> None:
    orchestrator = _orchestrator(FARMRISK_DEFAULT_LITERACY="expert")

    assert orchestrator.default_audience.locale == "en"
    assert orchestrator.default_audience.literacy == "basic"
