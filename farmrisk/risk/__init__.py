"""
Risk interpretation boundary for the farm advisor.

Design intent:
- Convert analyzer factors into one safety-first level with auditable reasoning.
- Use advisory language (consider/suggest/highlight).
- Never decide for the farmer; alternatives are options, not instructions.
"""

from .aggregation import (
    AnalyzerNote,
    RiskAssessment,
    build_risk_assessment,
    classify_band,
    effective_score,
    worst_level,
)
from .scenarios import RankedScenario, ScenarioComparison, compare_scenarios

__all__ = [
    "AnalyzerNote",
    "RankedScenario",
    "RiskAssessment",
    "ScenarioComparison",
    "build_risk_assessment",
    "classify_band",
    "compare_scenarios",
    "effective_score",
    "worst_level",
]
