from __future__ import annotations

"""
Rank alternative farm scenarios by assessed risk.

Each scenario carries its own synthetic context; the caller-supplied evaluator
runs the analyzers and aggregator on it. Input contexts are never modified.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from farmrisk.internal_core.contracts import RiskLevel, Scenario

from .aggregation import LEVEL_RANK, RiskAssessment


@dataclass(frozen=True)
class RankedScenario:
    rank: int
    scenario_id: str
    description: str
    level: RiskLevel
    risk_score: float
    risk_reduction: float
    implementation_cost: float
    time_to_implement_days: int
    suitability: float
    assessment: RiskAssessment


@dataclass(frozen=True)
class ScenarioComparison:
    reference: str
    reference_score: float
    baseline: Optional[RiskAssessment]
    ranked: list[RankedScenario]


ScenarioEvaluator = Callable[[Scenario], RiskAssessment]


def ranking_key(
    level: str,
    risk_reduction: float,
    max_product: float,
    cost: float,
    scenario_id: str,
) -> tuple[int, float, float, float, str]:
    # Raw product separates scenarios whose alerts floor them to the same score.
    return (LEVEL_RANK[level], -round(risk_reduction, 6), round(max_product, 6), float(cost), scenario_id)


def compare_scenarios(
    scenarios: Sequence[Scenario],
    evaluate: ScenarioEvaluator,
    *,
    baseline: Optional[Scenario] = None,
) -> ScenarioComparison:
    seen: set[str] = set()
    for item in scenarios:
        if item.scenario_id in seen:
            raise ValueError(f"Duplicate scenario_id: {item.scenario_id}")
        seen.add(item.scenario_id)

    assessments = [(item, evaluate(item)) for item in scenarios]
    baseline_assessment = evaluate(baseline) if baseline is not None else None

    if baseline_assessment is not None:
        reference = "baseline"
        reference_score = baseline_assessment.risk_score
    else:
        reference = "worst_scenario"
        reference_score = max((assessment.risk_score for _, assessment in assessments), default=0.0)

    rows = [
        (
            ranking_key(
                assessment.level,
                reference_score - assessment.risk_score,
                assessment.max_product,
                item.implementation_cost,
                item.scenario_id,
            ),
            item,
            assessment,
        )
        for item, assessment in assessments
    ]
    rows.sort(key=lambda row: row[0])

    ranked = [
        RankedScenario(
            rank=index + 1,
            scenario_id=item.scenario_id,
            description=item.description,
            level=assessment.level,
            risk_score=assessment.risk_score,
            risk_reduction=round(reference_score - assessment.risk_score, 4),
            implementation_cost=item.implementation_cost,
            time_to_implement_days=item.time_to_implement_days,
            suitability=item.suitability,
            assessment=assessment,
        )
        for index, (_, item, assessment) in enumerate(rows)
    ]
    return ScenarioComparison(
        reference=reference,
        reference_score=round(reference_score, 4),
        baseline=baseline_assessment,
        ranked=ranked,
    )
