from __future__ import annotations

"""
Build a layered, audience-adapted explanation chain from one assessment.

Design intent:
- Four independent producer functions over the same assessment; each runs on
  its own worker with a timeout, and a failed or slow layer is omitted without
  touching the others.
- Producers return facts; templates only decide how those facts read.
- The counterfactual search re-runs just the analyzer a perturbation belongs to.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

import numpy as np

from farmrisk.analyzers.base import (
    AnalyzerUnavailable,
    AuxiliaryData,
    DomainAnalyzer,
    Perturbation,
    RiskFactor,
    with_context,
)
from farmrisk.context.validator import NormalizedFarmContext
from farmrisk.internal_core.contracts import AudienceProfile
from farmrisk.risk.aggregation import (
    LEVEL_RANK,
    RiskAssessment,
    classify_band,
    effective_score,
    worst_level,
)

from .knowledge_graph import causal_chain
from .templates import LAYER_NAMES, LayerTemplate, TemplateRegistry, render

logger = logging.getLogger(__name__)


class LayerGenerationFailure(RuntimeError):
    def __init__(self, code: str, message: str, layer: str = ""):
        super().__init__(message)
        self.code = code
        self.message = message
        self.layer = layer


@dataclass(frozen=True)
class ExplanationLayer:
    name: str
    title: str
    text: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OmittedLayer:
    name: str
    code: str
    reason: str


@dataclass(frozen=True)
class ExplanationChain:
    assessment_id: str
    locale: str
    literacy: str
    layers: list[ExplanationLayer]
    omitted: list[OmittedLayer]

    def layer(self, name: str) -> Optional[ExplanationLayer]:
        for item in self.layers:
            if item.name == name:
                return item
        return None


@dataclass(frozen=True)
class CounterfactualProbe:
    """What the counterfactual layer needs to re-run single analyzers."""

    normalized: NormalizedFarmContext
    aux: AuxiliaryData
    analyzers: Sequence[DomainAnalyzer]
    max_candidates_per_analyzer: int = 3


@dataclass(frozen=True)
class _LayerInput:
    assessment: RiskAssessment
    probe: Optional[CounterfactualProbe]


LayerProducer = Callable[[_LayerInput], dict[str, Any]]


def factor_attribution(assessment: RiskAssessment) -> list[dict[str, Any]]:
    """Normalized share of each factor in the overall risk; shares sum to 1."""
    factors = assessment.factors
    if not factors:
        raise LayerGenerationFailure("NO_FACTORS", "No factors to attribute.", "factor_attribution")
    scores = np.array([effective_score(item) for item in factors], dtype=float)
    total = float(scores.sum())
    shares = scores / total if total > 0 else np.full(len(factors), 1.0 / len(factors))
    return [
        {
            "factor_id": item.factor_id,
            "title": item.title,
            "share": float(share),
            "share_pct": int(round(100.0 * float(share))),
            "band": classify_band(effective_score(item)),
            "severity": item.severity,
            "probability": item.probability,
            "model_version": item.model_version,
        }
        for item, share in zip(factors, shares)
    ]


def find_counterfactual(assessment: RiskAssessment, probe: CounterfactualProbe) -> dict[str, Any]:
    """
    Greedy search for the smallest single change that moves the level strictly lower.

    Candidates are capped per analyzer and tried in ascending magnitude; only
    the analyzer owning a candidate is re-run, other factors are kept as-is.
    """
    current_rank = LEVEL_RANK[assessment.level]
    result: dict[str, Any] = {"found": False, "candidates_checked": 0}
    if assessment.insufficient_data or current_rank == 0:
        return result

    candidates: list[tuple[Perturbation, DomainAnalyzer]] = []
    for analyzer in probe.analyzers:
        if analyzer.perturbations is None:
            continue
        options = sorted(
            analyzer.perturbations(probe.normalized),
            key=lambda item: (item.magnitude, item.lever, item.description),
        )
        candidates.extend((item, analyzer) for item in options[: probe.max_candidates_per_analyzer])
    candidates.sort(key=lambda pair: (pair[0].magnitude, pair[0].analyzer, pair[0].lever, pair[0].description))

    for perturbation, analyzer in candidates:
        result["candidates_checked"] += 1
        changed = with_context(probe.normalized, perturbation.apply(probe.normalized.context))
        try:
            replaced = analyzer.analyze(changed, probe.aux)
        except AnalyzerUnavailable:
            continue
        kept = [item for item in assessment.factors if item.analyzer != analyzer.name]
        combined: list[RiskFactor] = kept + list(replaced)
        if not combined:
            continue
        level = worst_level(classify_band(effective_score(item)) for item in combined)
        if LEVEL_RANK[level] < current_rank:
            result.update(
                {
                    "found": True,
                    "change": perturbation.description,
                    "analyzer": perturbation.analyzer,
                    "lever": perturbation.lever,
                    "magnitude": perturbation.magnitude,
                    "from_level": assessment.level,
                    "to_level": level,
                    "from_score": assessment.risk_score,
                    "to_score": round(max(effective_score(item) for item in combined), 4),
                }
            )
            return result
    return result


def _attribution_layer(payload: _LayerInput) -> dict[str, Any]:
    assessment = payload.assessment
    items = factor_attribution(assessment)
    return {
        "values": {
            "level": assessment.level,
            "confidence": assessment.confidence,
            "confidence_pct": int(round(100.0 * assessment.confidence)),
            "risk_score": assessment.risk_score,
        },
        "items": items,
        "data": {"shares": {item["factor_id"]: item["share"] for item in items}},
    }


def _counterfactual_layer(payload: _LayerInput) -> dict[str, Any]:
    if payload.probe is None:
        raise LayerGenerationFailure("NO_PROBE", "Counterfactual search needs the analyzer context.", "counterfactual")
    found = find_counterfactual(payload.assessment, payload.probe)
    values = {"level": payload.assessment.level, **found}
    return {"values": values, "found": bool(found["found"]), "data": dict(found)}


def _causal_layer(payload: _LayerInput) -> dict[str, Any]:
    chains = [chain for chain in (causal_chain(item) for item in payload.assessment.factors[:3]) if chain]
    if not chains:
        raise LayerGenerationFailure("NO_CAUSAL_PATH", "No factor maps onto the knowledge graph.", "causal_narrative")
    return {"values": {}, "items": chains, "data": {"chains": chains}}


def _peer_layer(payload: _LayerInput) -> dict[str, Any]:
    stats = payload.assessment.cohort_stats
    if stats is None:
        raise LayerGenerationFailure("COHORT_NOT_AVAILABLE", "No privacy-compliant cohort for this farm.", "peer_narrative")
    practice, practice_share = max(
        stats.practice_proportions.items(), key=lambda item: (item[1], item[0]), default=("", 0.0)
    )
    if not practice:
        raise LayerGenerationFailure("COHORT_EMPTY", "Cohort has no practice statistics.", "peer_narrative")
    values = {
        "cluster_id": stats.cluster_id,
        "farm_count": stats.farm_count,
        "region": stats.region,
        "crop_pattern": stats.crop_pattern,
        "mean_farm_size_ha": stats.mean_farm_size_ha,
        "practice": practice.replace("_", " "),
        "practice_pct": int(round(100.0 * practice_share)),
        "good_pct": int(round(100.0 * stats.outcome_proportions.get("good", 0.0))),
        "outcome_mix": ", ".join(f"{name} {share:g}" for name, share in sorted(stats.outcome_proportions.items())),
    }
    return {"values": values, "data": {"cluster_id": stats.cluster_id, "farm_count": stats.farm_count}}


LAYER_PRODUCERS: dict[str, LayerProducer] = {
    "factor_attribution": _attribution_layer,
    "counterfactual": _counterfactual_layer,
    "causal_narrative": _causal_layer,
    "peer_narrative": _peer_layer,
}


def synthesize_explanation(
    assessment: RiskAssessment,
    *,
    audience: Optional[AudienceProfile] = None,
    templates: Optional[TemplateRegistry] = None,
    probe: Optional[CounterfactualProbe] = None,
    layer_timeout_sec: float = 2.0,
    deadline: Optional[float] = None,
    producers: Optional[dict[str, LayerProducer]] = None,
) -> ExplanationChain:
    audience = audience or AudienceProfile()
    registry = templates or TemplateRegistry()
    active = producers or LAYER_PRODUCERS
    payload = _LayerInput(assessment=assessment, probe=probe)

    layers: list[ExplanationLayer] = []
    omitted: list[OmittedLayer] = []
    resolved_locale, resolved_literacy = audience.locale, audience.literacy

    start = time.monotonic()
    layer_deadline = start + max(float(layer_timeout_sec), 0.0)
    if deadline is not None:
        layer_deadline = min(layer_deadline, deadline)

    executor = ThreadPoolExecutor(max_workers=len(LAYER_NAMES), thread_name_prefix="explain")
    try:
        futures = {
            name: executor.submit(_produce_and_render, name, active[name], payload, registry, audience)
            for name in LAYER_NAMES
            if name in active
        }
        for name in LAYER_NAMES:
            future = futures.get(name)
            if future is None:
                omitted.append(OmittedLayer(name=name, code="DISABLED", reason="Layer producer not configured."))
                continue
            try:
                layer, resolved_locale, resolved_literacy = future.result(
                    timeout=max(layer_deadline - time.monotonic(), 0.0)
                )
            except FutureTimeoutError:
                future.cancel()
                omitted.append(OmittedLayer(name=name, code="LAYER_TIMEOUT", reason="Layer generation timed out."))
                continue
            except LayerGenerationFailure as exc:
                omitted.append(OmittedLayer(name=name, code=exc.code, reason=exc.message))
                continue
            except Exception as exc:
                logger.warning("explanation_layer_failed layer=%s error=%s", name, str(exc))
                omitted.append(OmittedLayer(name=name, code="LAYER_ERROR", reason=type(exc).__name__))
                continue
            layers.append(layer)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return ExplanationChain(
        assessment_id=assessment.assessment_id,
        locale=resolved_locale,
        literacy=resolved_literacy,
        layers=layers,
        omitted=omitted,
    )


def _produce_and_render(
    name: str,
    producer: LayerProducer,
    payload: _LayerInput,
    registry: TemplateRegistry,
    audience: AudienceProfile,
) -> tuple[ExplanationLayer, str, str]:
    produced = producer(payload)
    template, locale, literacy = registry.resolve(name, audience.locale, audience.literacy)
    if produced.get("found") is False:
        template = LayerTemplate(title=template.title, body=template.empty or template.body)
    text = render(template, produced.get("values", {}), produced.get("items"))
    return (
        ExplanationLayer(name=name, title=template.title, text=text, data=dict(produced.get("data", {}))),
        locale,
        literacy,
    )
