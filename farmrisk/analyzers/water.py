from __future__ import annotations

"""
Water risk: adequate-rain probability, critical windows, flood exposure and
debt-avoiding drought alternatives.
"""

from typing import Mapping

from farmrisk.context.agronomy import (
    DROUGHT_ALTERNATIVES,
    IRRIGATION_SUPPLY_SHARE,
    crop_profile,
    optimal_sowing_week,
)
from farmrisk.context.validator import NormalizedFarmContext
from farmrisk.internal_core.artifacts import ModelArtifact, ModelPrediction
from farmrisk.internal_core.contracts import FarmContext

from .base import (
    Alternative,
    AnalyzerUnavailable,
    AuxiliaryData,
    DomainAnalyzer,
    Perturbation,
    RiskFactor,
    clip01,
    make_factor_id,
    normal_cdf,
)

ANALYZER_NAME = "water"
RAINFALL_MODEL_VERSION = "water-rainfall-normal-1.0"
_RAINFALL_SOURCE_WEIGHT = {"adapter": 1.0, "historical": 0.7}
_WINDOW_LOSS_PER_WEEK = 0.06
RAISED_BED_COST_PER_HA = 1200.0


class RainfallAdequacyModel(ModelArtifact):
    """Normal approximation of P(seasonal rain >= crop requirement)."""

    def predict(self, features: Mapping[str, float]) -> ModelPrediction:
        expected = float(features.get("expected_mm", 0.0))
        std = max(float(features.get("std_mm", 1.0)), 1.0)
        required = float(features.get("required_mm", 0.0))
        score = normal_cdf((expected - required) / std)
        return ModelPrediction(
            label="adequate" if score >= 0.5 else "deficit",
            score=score,
            model_version=RAINFALL_MODEL_VERSION,
        )

    def version(self) -> str:
        return RAINFALL_MODEL_VERSION


def analyze_water(normalized: NormalizedFarmContext, aux: AuxiliaryData) -> list[RiskFactor]:
    context = normalized.context
    if aux.rainfall is None:
        raise AnalyzerUnavailable(
            "RAINFALL_UNAVAILABLE",
            "No seasonal rainfall outlook or historical average for this region/season.",
            ANALYZER_NAME,
        )
    profile = crop_profile(context.planned_crop)
    if profile is None:
        raise AnalyzerUnavailable(
            "UNKNOWN_CROP",
            f"No water requirement known for crop {context.planned_crop!r}.",
            ANALYZER_NAME,
        )

    water = context.water_pattern
    season = context.season or "kharif"
    retention = float(water.water_retention if water and water.water_retention is not None else 0.5)
    flood_risk = float(water.flood_risk if water and water.flood_risk is not None else 0.0)
    irrigation = (water.irrigation_source if water else None) or "rainfed"
    farm_size = float(context.farm_size_ha or 1.0)

    optimal = optimal_sowing_week(profile, season)
    sowing_week = context.sowing_week or optimal or 26
    offset = abs(sowing_week - optimal) if optimal is not None else 4
    window_share = max(0.4, 1.0 - _WINDOW_LOSS_PER_WEEK * offset)

    expected_mm = aux.rainfall.expected_mm * window_share
    std_mm = max(aux.rainfall.std_mm * window_share, 1.0)
    supply_share = IRRIGATION_SUPPLY_SHARE.get(irrigation, 0.0)
    required_mm = profile["water_requirement_mm"] * (1.0 - supply_share) * (1.0 + 0.6 * (0.5 - retention))

    model = aux.models.get(ANALYZER_NAME) or RainfallAdequacyModel()
    prediction = model.predict(
        {"expected_mm": expected_mm, "std_mm": std_mm, "required_mm": required_mm}
    )
    p_adequate = clip01(prediction.score)

    confidence = round(
        _RAINFALL_SOURCE_WEIGHT.get(aux.rainfall.source, 0.5)
        * normalized.provenance_weight(
            "water_pattern.water_retention",
            "water_pattern.irrigation_source",
            "planned_crop",
            "season",
            "sowing_week",
        ),
        4,
    )

    windows = _critical_windows(profile, sowing_week)
    timeframe = f"{season} season, weeks {sowing_week}-{sowing_week + _crop_span(profile)}"
    threshold = _debt_risk_threshold(context, aux)
    alternatives = _drought_alternatives(farm_size, threshold, p_adequate)

    drought_severity = clip01(
        0.35 + 0.45 * (1.0 - retention) + 0.2 * (1.0 - float(profile["drought_tolerance"]))
    )
    factors = [
        RiskFactor(
            factor_id=make_factor_id(ANALYZER_NAME, "rain_shortfall"),
            analyzer=ANALYZER_NAME,
            domain="weather",
            code="rain_shortfall",
            title="Rainfall may not meet crop water need",
            severity=round(drought_severity, 4),
            probability=round(1.0 - p_adequate, 4),
            timeframe=timeframe,
            mitigation_options=alternatives,
            confidence=confidence,
            model_version=prediction.model_version,
            basis={
                "expected_rain_mm": round(expected_mm, 1),
                "required_rain_mm": round(required_mm, 1),
                "p_adequate_rain": round(p_adequate, 4),
                "water_retention": round(retention, 3),
                "sowing_offset_weeks": float(offset),
                "debt_risk_threshold": round(threshold, 2),
            },
            details={
                "critical_windows": windows,
                "rainfall_source": aux.rainfall.source,
                "irrigation_source": irrigation,
                "crop": context.planned_crop,
            },
        )
    ]

    if flood_risk > 0.0:
        drainage = (water.drainage if water else None) or "moderate"
        drainage_penalty = {"poor": 0.15, "moderate": 0.05, "good": 0.0}.get(drainage, 0.05)
        factors.append(
            RiskFactor(
                factor_id=make_factor_id(ANALYZER_NAME, "flood_exposure"),
                analyzer=ANALYZER_NAME,
                domain="weather",
                code="flood_exposure",
                title="Field may flood during heavy rain",
                severity=round(clip01(0.55 + drainage_penalty), 4),
                probability=round(clip01(flood_risk), 4),
                timeframe=timeframe,
                mitigation_options=_flood_alternatives(farm_size, threshold),
                confidence=confidence,
                model_version=prediction.model_version,
                basis={"flood_risk": round(flood_risk, 3), "drainage_penalty": drainage_penalty},
                details={"drainage": drainage},
            )
        )
    return factors


def water_perturbations(normalized: NormalizedFarmContext) -> list[Perturbation]:
    context = normalized.context
    profile = crop_profile(context.planned_crop)
    if profile is None:
        return []
    perturbations: list[Perturbation] = []
    water = context.water_pattern
    if water is not None and (water.irrigation_source or "rainfed") == "rainfed":
        perturbations.append(
            Perturbation(
                analyzer=ANALYZER_NAME,
                lever="irrigation_source",
                description="secure one protective irrigation from a village tank",
                magnitude=4.0,
                apply=_set_irrigation("tank"),
            )
        )
    optimal = optimal_sowing_week(profile, context.season or "kharif")
    current = context.sowing_week
    if optimal is None or current is None or current == optimal:
        return perturbations
    direction = 1 if optimal > current else -1
    for weeks in range(1, min(abs(optimal - current), 3) + 1):
        target = current + direction * weeks
        perturbations.append(
            Perturbation(
                analyzer=ANALYZER_NAME,
                lever="sowing_week",
                description=f"sow {weeks} week{'s' if weeks > 1 else ''} {'later' if direction > 0 else 'earlier'} (week {target})",
                magnitude=float(weeks),
                apply=_set_sowing_week(target),
            )
        )
    return perturbations


def _set_sowing_week(week: int):
    def _apply(context: FarmContext) -> FarmContext:
        return context.model_copy(update={"sowing_week": week})

    return _apply


def _set_irrigation(source: str):
    def _apply(context: FarmContext) -> FarmContext:
        water = context.water_pattern
        if water is None:
            return context
        return context.model_copy(update={"water_pattern": water.model_copy(update={"irrigation_source": source})})

    return _apply


def _critical_windows(profile: dict, sowing_week: int) -> list[dict[str, object]]:
    return [
        {"stage": stage, "start_week": _wrap_week(sowing_week + start), "end_week": _wrap_week(sowing_week + end)}
        for stage, start, end in profile.get("critical_windows", [])
    ]


def _crop_span(profile: dict) -> int:
    spans = [end for _, _, end in profile.get("critical_windows", [])]
    spans.extend(end for _, end, _, _ in profile.get("labour", []))
    return max(spans) if spans else 16


def _wrap_week(week: int) -> int:
    return ((week - 1) % 52) + 1


def _debt_risk_threshold(context: FarmContext, aux: AuxiliaryData) -> float:
    settings = aux.settings
    if context.working_capital is not None:
        return min(settings.debt_risk_max_cost, settings.debt_risk_fraction * float(context.working_capital))
    return settings.debt_risk_max_cost


def _drought_alternatives(farm_size: float, threshold: float, p_adequate: float) -> list[Alternative]:
    shortfall = 1.0 - p_adequate
    options: list[Alternative] = []
    for item in DROUGHT_ALTERNATIVES:
        cost = round(float(item["cost_per_ha"]) * farm_size, 2)
        if cost > threshold:
            continue
        options.append(
            Alternative(
                alternative_id=f"water:{item['id']}",
                description=str(item["description"]),
                risk_reduction=round(float(item["reduction"]) * max(shortfall, 0.1), 4),
                cost=cost,
                time_to_implement_days=int(item["days"]),
                suitability=round(1.0 - (cost / threshold if threshold > 0 else 0.0) * 0.5, 4),
                source=ANALYZER_NAME,
            )
        )
    return options


def _flood_alternatives(farm_size: float, threshold: float) -> list[Alternative]:
    cost = round(RAISED_BED_COST_PER_HA * farm_size, 2)
    if cost > threshold:
        return []
    return [
        Alternative(
            alternative_id="water:raised_beds",
            description="sow on raised beds or ridges with open field drains",
            risk_reduction=0.2,
            cost=cost,
            time_to_implement_days=5,
            suitability=0.8,
            source=ANALYZER_NAME,
        )
    ]


WATER_ANALYZER = DomainAnalyzer(
    name=ANALYZER_NAME,
    domain="weather",
    analyze=analyze_water,
    perturbations=water_perturbations,
)

__all__ = ["WATER_ANALYZER", "RainfallAdequacyModel", "analyze_water", "water_perturbations"]
