from typing import Optional

import pytest

from farmrisk.analyzers.base import RiskFactor
from farmrisk.context.validator import QualityReport
from farmrisk.internal_core.contracts import FarmContext, Scenario
from farmrisk.risk.aggregation import RiskAssessment, build_risk_assessment
from farmrisk.risk.scenarios import compare_scenarios, ranking_key


def _assessment(severity: float, probability: float, alert: Optional[str] = None) -> RiskAssessment:
    factor = RiskFactor(
        factor_id="water:rain_shortfall",
        analyzer="water",
        domain="weather",
        code="rain_shortfall",
        title="Rainfall may not meet crop water need",
        severity=severity,
        probability=probability,
        timeframe="kharif season",
        mitigation_options=[],
        confidence=0.8,
        model_version="water-rainfall-normal-1.0",
        alert=alert,
    )
    return build_risk_assessment(
        farm_id="farm-1",
        factors=[factor],
        quality=QualityReport(indicators=[], completeness=1.0, degradations=[], region_known=True),
        analyzer_slots=["water"],
    )


def _scenario(scenario_id: str, cost: float = 0.0) -> Scenario:
    return Scenario(
        scenario_id=scenario_id,
        description=f"scenario {scenario_id}",
        context=FarmContext(farm_id="farm-1", location={"region": "Vidarbha"}),
        implementation_cost=cost,
    )


def _evaluator(table: dict[str, RiskAssessment]):
    def _evaluate(scenario: Scenario) -> RiskAssessment:
        return table[scenario.scenario_id]

    return _evaluate


def test_lower_level_ranks_first_even_when_costlier() -> None:
    table = {"cheap_high": _assessment(0.9, 0.8), "costly_low": _assessment(0.5, 0.2)}

    comparison = compare_scenarios(
        [_scenario("cheap_high", 0.0), _scenario("costly_low", 50000.0)], _evaluator(table)
    )

    assert [item.scenario_id for item in comparison.ranked] == ["costly_low", "cheap_high"]
    assert [item.rank for item in comparison.ranked] == [1, 2]
    assert comparison.reference == "worst_scenario"
    assert comparison.ranked[1].risk_reduction == 0.0


def test_strictly_lower_product_with_equal_or_lower_cost_ranks_ahead() -> None:
    pairs = [
        ((0.5, 0.2), (0.5, 0.3), 100.0, 100.0),
        ((0.5, 0.2), (0.5, 0.3), 50.0, 100.0),
        ((0.6, 0.5), (0.9, 0.9), 0.0, 0.0),
        ((0.3, 0.3), (0.4, 0.3), 10.0, 10.0),
    ]
    for better, worse, better_cost, worse_cost in pairs:
        table = {"b": _assessment(*worse), "a": _assessment(*better)}
        comparison = compare_scenarios(
            [_scenario("b", worse_cost), _scenario("a", better_cost)], _evaluator(table)
        )
        assert comparison.ranked[0].scenario_id == "a", (better, worse)


def test_alerted_scenarios_rank_by_raw_product() -> None:
    table = {
        "a_worse": _assessment(0.9, 0.4, alert="DO_NOT_USE"),
        "b_better": _assessment(0.5, 0.2, alert="DO_NOT_USE"),
    }

    comparison = compare_scenarios(
        [_scenario("a_worse", 100.0), _scenario("b_better", 100.0)], _evaluator(table)
    )

    assert [item.level for item in comparison.ranked] == ["HIGH", "HIGH"]
    assert [item.risk_score for item in comparison.ranked] == [0.5, 0.5]
    assert [item.scenario_id for item in comparison.ranked] == ["b_better", "a_worse"]


def test_equal_risk_prefers_cheaper_then_id() -> None:
    table = {name: _assessment(0.5, 0.3) for name in ("x", "y", "z")}

    comparison = compare_scenarios(
        [_scenario("z", 10.0), _scenario("y", 500.0), _scenario("x", 10.0)], _evaluator(table)
    )

    assert [item.scenario_id for item in comparison.ranked] == ["x", "z", "y"]


def test_baseline_is_the_reference_when_supplied() -> None:
    table = {"baseline": _assessment(0.9, 0.9), "mulch": _assessment(0.5, 0.5)}

    comparison = compare_scenarios([_scenario("mulch")], _evaluator(table), baseline=_scenario("baseline"))

    assert comparison.reference == "baseline"
    assert comparison.baseline is not None
    assert comparison.reference_score == 0.81
    assert comparison.ranked[0].risk_reduction == 0.56


def test_duplicate_scenario_ids_are_rejected() -> None:
    table = {"a": _assessment(0.5, 0.5)}
    with pytest.raises(ValueError, match="Duplicate scenario_id"):
        compare_scenarios([_scenario("a"), _scenario("a")], _evaluator(table))


def test_ranking_key_orders_by_level_reduction_product_then_cost() -> None:
    assert ranking_key("LOW", 0.0, 0.1, 999.0, "b") < ranking_key("MEDIUM", 0.9, 0.3, 0.0, "a")
    assert ranking_key("MEDIUM", 0.3, 0.3, 500.0, "b") < ranking_key("MEDIUM", 0.1, 0.3, 0.0, "a")
    assert ranking_key("HIGH", 0.0, 0.1, 500.0, "b") < ranking_key("HIGH", 0.0, 0.36, 0.0, "a")
    assert ranking_key("MEDIUM", 0.3, 0.3, 0.0, "b") < ranking_key("MEDIUM", 0.3, 0.3, 10.0, "a")
