from typing import Optional

from farmrisk.analyzers.base import Alternative, RiskFactor
from farmrisk.cohort.anonymizer import AggregateStats, NotAvailable
from farmrisk.context.validator import QualityReport
from farmrisk.risk.aggregation import (
    AnalyzerNote,
    build_risk_assessment,
    classify_band,
    effective_score,
    worst_level,
)

_SLOTS = ["water", "soil_confidence", "physical_load", "machine_soil"]


def _quality(completeness: float = 1.0) -> QualityReport:
    return QualityReport(indicators=[], completeness=completeness, degradations=[], region_known=True)


def _factor(
    analyzer: str,
    severity: float,
    probability: float,
    *,
    confidence: float = 0.8,
    alert: Optional[str] = None,
    alternatives: Optional[list[Alternative]] = None,
) -> RiskFactor:
    return RiskFactor(
        factor_id=f"{analyzer}:test",
        analyzer=analyzer,
        domain="soil",
        code="test",
        title=f"{analyzer} test factor",
        severity=severity,
        probability=probability,
        timeframe=f"{analyzer} window",
        mitigation_options=alternatives or [],
        confidence=confidence,
        model_version=f"{analyzer}-1.0",
        basis={"value": 1.0},
        alert=alert,  # type: ignore[arg-type]
    )


def _alternative(alternative_id: str, reduction: float, cost: float) -> Alternative:
    return Alternative(
        alternative_id=alternative_id,
        description=alternative_id,
        risk_reduction=reduction,
        cost=cost,
        time_to_implement_days=1,
        suitability=0.8,
    )


def test_classify_band_boundaries() -> None:
    assert classify_band(0.0) == "LOW"
    assert classify_band(0.1999) == "LOW"
    assert classify_band(0.2) == "MEDIUM"
    assert classify_band(0.4999) == "MEDIUM"
    assert classify_band(0.5) == "HIGH"
    assert worst_level(["LOW", "HIGH", "MEDIUM"]) == "HIGH"
    assert worst_level([]) == "LOW"


def test_overall_level_is_the_worst_factor_band() -> None:
    factors = [
        _factor("water", 0.5, 0.2),
        _factor("soil_confidence", 0.6, 0.5),
        _factor("physical_load", 0.8, 0.75),
    ]

    assessment = build_risk_assessment(
        farm_id="farm-1", factors=factors, quality=_quality(), analyzer_slots=_SLOTS
    )

    assert assessment.level == "HIGH"
    assert assessment.risk_score == 0.6
    assert assessment.timeframe == "physical_load window"
    assert [item.analyzer for item in assessment.factors] == ["physical_load", "soil_confidence", "water"]
    for factor in assessment.factors:
        rank = {"LOW": 0, "MEDIUM": 1, "HIGH": 2}
        assert rank[assessment.level] >= rank[classify_band(effective_score(factor))]


def test_many_medium_factors_do_not_average_into_high_or_low() -> None:
    factors = [_factor(name, 0.6, 0.5) for name in _SLOTS]

    assessment = build_risk_assessment(
        farm_id="farm-1", factors=factors, quality=_quality(), analyzer_slots=_SLOTS
    )

    assert assessment.level == "MEDIUM"


def test_hard_alert_raises_factor_to_high() -> None:
    factors = [_factor("water", 0.3, 0.1), _factor("machine_soil", 0.3, 0.2, alert="DO_NOT_USE")]

    assessment = build_risk_assessment(
        farm_id="farm-1", factors=factors, quality=_quality(), analyzer_slots=_SLOTS
    )

    assert assessment.level == "HIGH"
    assert assessment.factors[0].analyzer == "machine_soil"
    assert effective_score(assessment.factors[0]) == 0.5
    assert any("DO_NOT_USE alert" in line for line in assessment.reasoning)


def test_reasoning_shows_severity_times_probability() -> None:
    assessment = build_risk_assessment(
        farm_id="farm-1", factors=[_factor("water", 0.5, 0.4)], quality=_quality(0.5), analyzer_slots=_SLOTS
    )

    assert assessment.reasoning[0].startswith("water test factor: severity 0.50 x probability 0.40 = 0.20 (MEDIUM)")


def test_all_analyzers_failing_gives_insufficient_data_default() -> None:
    notes = [AnalyzerNote(name, "ANALYZER_ERROR", "boom") for name in _SLOTS]

    assessment = build_risk_assessment(
        farm_id="farm-1", factors=[], quality=_quality(1.0), analyzer_slots=_SLOTS, unavailable=notes
    )

    assert assessment.insufficient_data is True
    assert assessment.level == "MEDIUM"
    assert assessment.confidence <= 0.3
    assert assessment.degraded is True
    assert [item.alternative_id for item in assessment.alternatives] == ["consult_human_expert"]
    assert any("analysis unavailable (ANALYZER_ERROR)" in line for line in assessment.reasoning)


def test_failed_slot_lowers_confidence_but_empty_success_does_not() -> None:
    factors = [_factor(name, 0.3, 0.3, confidence=0.9) for name in ("water", "soil_confidence", "physical_load")]

    succeeded_empty = build_risk_assessment(
        farm_id="farm-1", factors=factors, quality=_quality(0.8), analyzer_slots=_SLOTS
    )
    failed = build_risk_assessment(
        farm_id="farm-1",
        factors=factors,
        quality=_quality(0.8),
        analyzer_slots=_SLOTS,
        unavailable=[AnalyzerNote("machine_soil", "ANALYZER_TIMEOUT", "slow")],
    )

    assert succeeded_empty.confidence == round(0.6 * 0.9 + 0.4 * 0.8, 4)
    assert failed.confidence < succeeded_empty.confidence
    assert failed.degraded is True
    assert succeeded_empty.degraded is False


def test_alternatives_are_deduplicated_and_ordered() -> None:
    shared = _alternative("shared", 0.2, 100.0)
    factors = [
        _factor("water", 0.5, 0.5, alternatives=[shared, _alternative("cheap", 0.2, 0.0)]),
        _factor("soil_confidence", 0.5, 0.3, alternatives=[shared, _alternative("best", 0.4, 900.0)]),
    ]

    assessment = build_risk_assessment(
        farm_id="farm-1", factors=factors, quality=_quality(), analyzer_slots=_SLOTS
    )

    assert [item.alternative_id for item in assessment.alternatives] == ["best", "cheap", "shared"]


def test_identical_inputs_give_identical_ids() -> None:
    factors = [_factor("water", 0.5, 0.5)]
    first = build_risk_assessment(
        farm_id="farm-1", factors=factors, quality=_quality(), analyzer_slots=_SLOTS, context_digest="abc"
    )
    second = build_risk_assessment(
        farm_id="farm-1", factors=list(reversed(factors)), quality=_quality(), analyzer_slots=_SLOTS, context_digest="abc"
    )
    other = build_risk_assessment(
        farm_id="farm-1", factors=factors, quality=_quality(), analyzer_slots=_SLOTS, context_digest="xyz"
    )

    assert first == second
    assert first.assessment_id.startswith("ra-")
    assert first.prediction_id.startswith("pred-")
    assert other.assessment_id != first.assessment_id


def test_cohort_stats_are_attached_only_when_available() -> None:
    stats = AggregateStats(
        cluster_id="c-1",
        snapshot_id="cohort-1",
        region="vidarbha",
        crop_pattern="soybean",
        input_philosophy="mixed",
        farm_count=6,
        mean_farm_size_ha=1.5,
        outcome_proportions={"good": 0.5, "poor": 0.5},
        practice_proportions={"ridge_and_furrow": 1.0},
    )
    factors = [_factor("water", 0.5, 0.5)]

    with_stats = build_risk_assessment(
        farm_id="farm-1", factors=factors, quality=_quality(), analyzer_slots=_SLOTS, cohort=stats
    )
    without = build_risk_assessment(
        farm_id="farm-1",
        factors=factors,
        quality=_quality(),
        analyzer_slots=_SLOTS,
        cohort=NotAvailable(reason="no_cohort_meets_privacy_floor"),
    )

    assert with_stats.cohort_stats == stats
    assert without.cohort_stats is None


def test_to_dict_adds_band_and_scores() -> None:
    assessment = build_risk_assessment(
        farm_id="farm-1",
        factors=[_factor("machine_soil", 0.3, 0.2, alert="DO_NOT_USE")],
        quality=_quality(),
        analyzer_slots=_SLOTS,
    )

    payload = assessment.to_dict()

    factor = payload["factors"][0]
    assert factor["product"] == 0.06
    assert factor["effective_score"] == 0.5
    assert factor["band"] == "HIGH"
    assert payload["level"] == "HIGH"
