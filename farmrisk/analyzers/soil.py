from __future__ import annotations

"""
Soil-confidence risk.

Design intent:
- Turn soil-test values and their provenance into one confidence score through
  a versioned model artifact.
- Split candidate soil actions into safe and risky sets.
- Below the confidence threshold only the safe set is recommended; risky
  actions are deferred until a fresh soil test confirms them.
"""

from typing import Mapping

from farmrisk.context.agronomy import NUTRIENT_LOW_THRESHOLDS, SOIL_ACTIONS
from farmrisk.context.validator import NormalizedFarmContext
from farmrisk.internal_core.artifacts import ModelArtifact, ModelPrediction
from farmrisk.internal_core.contracts import FarmContext

from .base import (
    Alternative,
    AuxiliaryData,
    DomainAnalyzer,
    Perturbation,
    RiskFactor,
    clip01,
    make_factor_id,
)

ANALYZER_NAME = "soil_confidence"
SOIL_MODEL_VERSION = "soil-confidence-rules-1.0"

_SOIL_FIELDS = (
    "soil_test.ph",
    "soil_test.organic_carbon_pct",
    "soil_test.nitrogen_kg_ha",
    "soil_test.phosphorus_kg_ha",
    "soil_test.potassium_kg_ha",
)
_TARGET_PH = 6.8
_LEGUMES = {"soybean", "chickpea", "pigeonpea"}
_COMPACTING_PRACTICES = {"deep_tillage", "residue_burning", "burning", "puddling"}


class RuleSoilConfidenceModel(ModelArtifact):
    def predict(self, features: Mapping[str, float]) -> ModelPrediction:
        score = clip01(
            float(features.get("provenance", 0.0))
            * float(features.get("recency", 0.8))
            * float(features.get("history", 0.9))
        )
        return ModelPrediction(
            label="reliable" if score >= 0.6 else "uncertain",
            score=score,
            model_version=SOIL_MODEL_VERSION,
        )

    def version(self) -> str:
        return SOIL_MODEL_VERSION


def analyze_soil_confidence(normalized: NormalizedFarmContext, aux: AuxiliaryData) -> list[RiskFactor]:
    context = normalized.context
    soil = context.soil_test
    threshold = aux.settings.soil_confidence_threshold
    farm_size = float(context.farm_size_ha or 1.0)

    recency = 0.8
    if soil is not None and soil.sample_year is not None and aux.reference_year - soil.sample_year <= 3:
        recency = 1.0
    history = 1.0 if normalized.source("soil_handling_history") == "farm-specific" else 0.9

    model = aux.models.get(ANALYZER_NAME) or RuleSoilConfidenceModel()
    prediction = model.predict(
        {
            "provenance": normalized.provenance_weight(*_SOIL_FIELDS),
            "recency": recency,
            "history": history,
        }
    )
    confidence = round(clip01(prediction.score), 4)

    values = {
        name: getattr(soil, name, None) if soil is not None else None
        for name in ("ph", *NUTRIENT_LOW_THRESHOLDS)
    }
    low_nutrients = [
        name
        for name, limit in NUTRIENT_LOW_THRESHOLDS.items()
        if values.get(name) is not None and float(values[name]) < limit
    ]
    deficit_share = len(low_nutrients) / len(NUTRIENT_LOW_THRESHOLDS)
    ph = float(values["ph"]) if values.get("ph") is not None else _TARGET_PH
    ph_term = min(1.0, max(0.0, abs(ph - _TARGET_PH) - 0.5) / 2.0)
    recent_practices = [item.practice.strip().lower() for item in context.soil_handling_history[-3:]]
    compacting = [item for item in recent_practices if item in _COMPACTING_PRACTICES]
    handling_term = 0.1 if len(compacting) >= 2 else 0.0

    severity = clip01(0.25 + 0.4 * deficit_share + 0.25 * ph_term + handling_term)
    probability = clip01(0.3 + 0.4 * deficit_share + 0.3 * (1.0 - confidence))

    safe_actions, risky_actions = _split_actions(context, ph, low_nutrients, compacting)
    biased_to_safe = confidence < threshold
    recommended = list(safe_actions) if biased_to_safe else list(safe_actions) + list(risky_actions)
    deferred = list(risky_actions) if biased_to_safe else []

    alternatives = [
        Alternative(
            alternative_id=f"soil:{_slug(item['action'])}",
            description=str(item["action"]),
            risk_reduction=0.1 if item["kind"] == "safe" else 0.2,
            cost=round(float(item["cost_per_ha"]) * farm_size, 2),
            time_to_implement_days=int(item["days"]),
            suitability=0.9 if item["kind"] == "safe" else 0.6,
            source=ANALYZER_NAME,
        )
        for item in recommended
    ]

    return [
        RiskFactor(
            factor_id=make_factor_id(ANALYZER_NAME, "soil_health"),
            analyzer=ANALYZER_NAME,
            domain="soil",
            code="soil_health",
            title="Soil fertility or test reliability may limit the crop",
            severity=round(severity, 4),
            probability=round(probability, 4),
            timeframe=f"{context.season or 'kharif'} season, before sowing",
            mitigation_options=alternatives,
            confidence=confidence,
            model_version=prediction.model_version,
            basis={
                "soil_confidence": confidence,
                "confidence_threshold": threshold,
                "ph": round(ph, 2),
                "low_nutrient_share": round(deficit_share, 4),
                "recent_compacting_practices": float(len(compacting)),
            },
            details={
                "safe_actions": [item["action"] for item in safe_actions],
                "risky_actions": [item["action"] for item in risky_actions],
                "recommended_actions": [item["action"] for item in recommended],
                "deferred_actions": [item["action"] for item in deferred],
                "biased_to_safe": biased_to_safe,
                "low_nutrients": low_nutrients,
                "soil_test_source": normalized.source("soil_test.ph"),
            },
        )
    ]


def soil_perturbations(normalized: NormalizedFarmContext) -> list[Perturbation]:
    soil = normalized.context.soil_test
    if soil is None:
        return []
    perturbations: list[Perturbation] = []
    if soil.organic_carbon_pct is not None and soil.organic_carbon_pct < NUTRIENT_LOW_THRESHOLDS["organic_carbon_pct"]:
        perturbations.append(
            Perturbation(
                analyzer=ANALYZER_NAME,
                lever="organic_carbon_pct",
                description="build organic carbon with farmyard manure before sowing",
                magnitude=1.0,
                apply=_update_soil({"organic_carbon_pct": NUTRIENT_LOW_THRESHOLDS["organic_carbon_pct"]}),
            )
        )
    if soil.nitrogen_kg_ha is not None and soil.nitrogen_kg_ha < NUTRIENT_LOW_THRESHOLDS["nitrogen_kg_ha"]:
        perturbations.append(
            Perturbation(
                analyzer=ANALYZER_NAME,
                lever="nitrogen_kg_ha",
                description="meet crop nitrogen need with split doses",
                magnitude=2.0,
                apply=_update_soil({"nitrogen_kg_ha": NUTRIENT_LOW_THRESHOLDS["nitrogen_kg_ha"]}),
            )
        )
    if soil.ph is not None and abs(soil.ph - _TARGET_PH) > 0.5:
        step = 0.5 if soil.ph < _TARGET_PH else -0.5
        perturbations.append(
            Perturbation(
                analyzer=ANALYZER_NAME,
                lever="ph",
                description=f"move soil pH by {abs(step):.1f} toward neutral",
                magnitude=3.0,
                apply=_update_soil({"ph": round(soil.ph + step, 2)}),
            )
        )
    return perturbations


def _update_soil(values: dict[str, float]):
    def _apply(context: FarmContext) -> FarmContext:
        if context.soil_test is None:
            return context
        return context.model_copy(update={"soil_test": context.soil_test.model_copy(update=values)})

    return _apply


def _split_actions(
    context: FarmContext,
    ph: float,
    low_nutrients: list[str],
    compacting: list[str],
) -> tuple[list[dict], list[dict]]:
    crop = (context.planned_crop or "").lower()
    safe: list[dict] = []
    risky: list[dict] = []
    for item in SOIL_ACTIONS:
        action = str(item["action"])
        if item["kind"] == "safe":
            if action.startswith("sow a legume") and crop in _LEGUMES:
                continue
            if action.startswith("apply farmyard manure") and context.input_philosophy == "chemical" and not low_nutrients:
                continue
            safe.append(item)
            continue
        if action.startswith("full basal dose of urea") and "nitrogen_kg_ha" not in low_nutrients:
            continue
        if action.startswith("full basal dose of urea") and context.input_philosophy == "organic":
            continue
        if action.startswith("apply agricultural lime") and ph >= 5.5:
            continue
        if action.startswith("apply gypsum") and ph <= 8.5:
            continue
        if action.startswith("deep tillage") and not compacting:
            continue
        risky.append(item)
    return safe, risky


def _slug(text: str) -> str:
    return "_".join(part for part in "".join(ch if ch.isalnum() else " " for ch in text.lower()).split())


SOIL_CONFIDENCE_ANALYZER = DomainAnalyzer(
    name=ANALYZER_NAME,
    domain="soil",
    analyze=analyze_soil_confidence,
    perturbations=soil_perturbations,
)
