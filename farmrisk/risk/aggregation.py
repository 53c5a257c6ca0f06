from __future__ import annotations

"""
Merge analyzer factors into one classified assessment.

Design intent:
- The overall level is the worst factor band; averaging never hides a HIGH.
- Hard alerts raise a factor to the HIGH floor regardless of its score.
- Confidence comes only from analyzer confidence and input completeness, so
  removing inputs can never raise it.
- No wall-clock values inside the assessment; identical inputs give identical ids.
"""

import hashlib
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Optional, Sequence, Union

from farmrisk.analyzers.base import Alternative, RiskFactor
from farmrisk.cohort.anonymizer import AggregateStats, NotAvailable
from farmrisk.context.validator import QualityReport
from farmrisk.internal_core.contracts import RiskLevel

LOW_UPPER = 0.2
MEDIUM_UPPER = 0.5
# Effective score a hard alert is raised to; equals the HIGH band floor.
ALERT_FLOOR = MEDIUM_UPPER
INSUFFICIENT_DATA_CONFIDENCE_CAP = 0.3

LEVEL_RANK: dict[str, int] = {"LOW": 0, "MEDIUM": 1, "HIGH": 2}

CONSULT_EXPERT = Alternative(
    alternative_id="consult_human_expert",
    description="consult a local agriculture extension officer or Krishi Vigyan Kendra expert",
    risk_reduction=0.0,
    cost=0.0,
    time_to_implement_days=3,
    suitability=1.0,
    source="aggregator",
)


@dataclass(frozen=True)
class AnalyzerNote:
    analyzer: str
    code: str
    message: str


@dataclass(frozen=True)
class RiskAssessment:
    assessment_id: str
    prediction_id: str
    farm_id: str
    level: RiskLevel
    confidence: float
    risk_score: float
    reasoning: list[str]
    factors: list[RiskFactor]
    timeframe: str
    alternatives: list[Alternative]
    insufficient_data: bool
    degraded: bool
    unavailable: list[AnalyzerNote]
    quality: QualityReport
    cohort_snapshot_id: str
    cohort_stats: Optional[AggregateStats] = None
    model_versions: dict[str, str] = field(default_factory=dict)

    @property
    def max_product(self) -> float:
        return max((item.product for item in self.factors), default=0.0)

    def factor_band(self, factor: RiskFactor) -> RiskLevel:
        return classify_band(effective_score(factor))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for item, factor in zip(payload["factors"], self.factors):
            item["product"] = round(factor.product, 4)
            item["effective_score"] = round(effective_score(factor), 4)
            item["band"] = classify_band(effective_score(factor))
        return payload


def classify_band(score: float) -> RiskLevel:
    if score < LOW_UPPER:
        return "LOW"
    if score < MEDIUM_UPPER:
        return "MEDIUM"
    return "HIGH"


def effective_score(factor: RiskFactor) -> float:
    if factor.alert is not None:
        return max(factor.product, ALERT_FLOOR)
    return factor.product


def worst_level(levels: Iterable[str]) -> RiskLevel:
    resolved = "LOW"
    for level in levels:
        if LEVEL_RANK[level] > LEVEL_RANK[resolved]:
            resolved = level
    return resolved  # type: ignore[return-value]


def build_risk_assessment(
    *,
    farm_id: str,
    factors: Sequence[RiskFactor],
    quality: QualityReport,
    analyzer_slots: Sequence[str],
    unavailable: Sequence[AnalyzerNote] = (),
    cohort: Union[AggregateStats, NotAvailable, None] = None,
    cohort_snapshot_id: str = "",
    model_versions: Optional[dict[str, str]] = None,
    analyzer_weight: float = 0.6,
    degraded: bool = False,
    context_digest: str = "",
) -> RiskAssessment:
    ordered = sorted(factors, key=lambda item: (-effective_score(item), -item.severity, item.factor_id))
    failed = {note.analyzer for note in unavailable}
    insufficient = not ordered

    slot_confidences: list[float] = []
    for name in analyzer_slots:
        if name in failed:
            slot_confidences.append(0.0)
            continue
        produced = [item.confidence for item in ordered if item.analyzer == name]
        if produced:
            slot_confidences.append(sum(produced) / len(produced))
    analyzer_confidence = sum(slot_confidences) / len(slot_confidences) if slot_confidences else 0.0
    weight = min(max(float(analyzer_weight), 0.0), 1.0)
    confidence = _clip01(weight * analyzer_confidence + (1.0 - weight) * quality.completeness)

    if insufficient:
        level: RiskLevel = "MEDIUM"
        confidence = min(confidence, INSUFFICIENT_DATA_CONFIDENCE_CAP)
        risk_score = 0.0
        timeframe = "unknown"
        alternatives = [CONSULT_EXPERT]
    else:
        level = worst_level(classify_band(effective_score(item)) for item in ordered)
        risk_score = max(effective_score(item) for item in ordered)
        timeframe = ordered[0].timeframe
        alternatives = _collect_alternatives(ordered)
    confidence = round(confidence, 4)

    reasoning = _build_reasoning(ordered, quality, unavailable, insufficient)
    stats = cohort if isinstance(cohort, AggregateStats) else None
    versions = dict(sorted((model_versions or {}).items()))
    for item in ordered:
        versions.setdefault(item.analyzer, item.model_version)

    digest = _digest(
        {
            "farm_id": farm_id,
            "context": context_digest,
            "level": level,
            "confidence": confidence,
            "factors": [
                [item.factor_id, item.severity, item.probability, item.confidence, item.alert] for item in ordered
            ],
            "unavailable": sorted(note.analyzer + ":" + note.code for note in unavailable),
            "cohort_snapshot_id": cohort_snapshot_id,
            "model_versions": versions,
        }
    )
    return RiskAssessment(
        assessment_id=f"ra-{digest[:16]}",
        prediction_id=f"pred-{_digest({'assessment': digest})[:16]}",
        farm_id=farm_id,
        level=level,
        confidence=confidence,
        risk_score=round(risk_score, 4),
        reasoning=reasoning,
        factors=list(ordered),
        timeframe=timeframe,
        alternatives=alternatives,
        insufficient_data=insufficient,
        degraded=bool(degraded or unavailable),
        unavailable=list(unavailable),
        quality=quality,
        cohort_snapshot_id=cohort_snapshot_id,
        cohort_stats=stats,
        model_versions=versions,
    )


def _build_reasoning(
    factors: Sequence[RiskFactor],
    quality: QualityReport,
    unavailable: Sequence[AnalyzerNote],
    insufficient: bool,
) -> list[str]:
    lines: list[str] = []
    for item in sorted(factors, key=lambda entry: (-entry.severity, entry.factor_id)):
        band = classify_band(effective_score(item))
        basis = ", ".join(f"{name}={value:g}" for name, value in sorted(item.basis.items())[:4])
        line = (
            f"{item.title}: severity {item.severity:.2f} x probability {item.probability:.2f} "
            f"= {item.product:.2f} ({band})"
        )
        if basis:
            line += f"; {basis}"
        if item.alert is not None:
            line += f". {item.alert} alert raises this factor to HIGH"
        lines.append(line + ".")
    if insufficient:
        lines.append("No analyzer produced a usable factor; the level defaults to MEDIUM until more data is available.")
    fallback = quality.fallback_fields()
    if fallback:
        lines.append(
            f"Data quality: {len(fallback)} of {len(quality.indicators)} inputs came from regional or default "
            f"values (completeness {quality.completeness:.2f})."
        )
    lines.extend(f"Data quality: {note}" for note in quality.degradations)
    lines.extend(f"{note.analyzer} analysis unavailable ({note.code}): {note.message}" for note in unavailable)
    return lines


def _collect_alternatives(factors: Sequence[RiskFactor]) -> list[Alternative]:
    seen: dict[str, Alternative] = {}
    for factor in factors:
        for option in factor.mitigation_options:
            seen.setdefault(option.alternative_id, option)
    return sorted(seen.values(), key=lambda item: (-item.risk_reduction, item.cost, item.alternative_id))


def _digest(payload: dict[str, Any]) -> str:
    return hashlib.sha1(json.dumps(payload, sort_keys=True, default=str).encode("utf-8")).hexdigest()


def _clip01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))
