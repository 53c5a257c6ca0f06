from __future__ import annotations

"""
Machine-soil compatibility risk.

Design intent:
- Score every planned (machine, operation) pair against the current soil
  condition.
- Known-harmful combinations raise a hard DO_NOT_USE alert that aggregation
  cannot average away.
- A rejected plan always carries at least one usable alternative.
"""

from typing import Any, Mapping

from farmrisk.context.agronomy import (
    COMPATIBILITY_SCORES,
    HARMFUL_COMBINATIONS,
    MACHINERY,
    SOIL_CONDITION_ORDER,
)
from farmrisk.context.validator import NormalizedFarmContext
from farmrisk.internal_core.artifacts import ModelArtifact, ModelPrediction
from farmrisk.internal_core.contracts import FarmContext, MachineryPlan

from .base import (
    Alternative,
    AuxiliaryData,
    DomainAnalyzer,
    Perturbation,
    RiskFactor,
    clip01,
    make_factor_id,
)

ANALYZER_NAME = "machine_soil"
MACHINE_SOIL_MODEL_VERSION = "machine-soil-rules-1.0"
_HIGH_RETENTION = 0.7
_DRYING_DAYS = {"wet": 4, "waterlogged": 10}
_COMPATIBLE_SCORE = 0.6
_HIRE_COST_PER_HA = {"heavy": 2500.0, "medium": 1800.0, "light": 900.0}


class CompatibilityModel(ModelArtifact):
    def predict(self, features: Mapping[str, float]) -> ModelPrediction:
        score = clip01(float(features.get("compatibility", 0.0)))
        return ModelPrediction(
            label="compatible" if score >= _COMPATIBLE_SCORE else "incompatible",
            score=score,
            model_version=MACHINE_SOIL_MODEL_VERSION,
        )

    def version(self) -> str:
        return MACHINE_SOIL_MODEL_VERSION


def machine_weight_class(machine: str) -> str:
    # Unknown machines are treated as heavy.
    spec = MACHINERY.get(_machine_key(machine))
    return str(spec["weight_class"]) if spec else "heavy"


def is_harmful(weight_class: str, operation: str, condition: str, retention: float) -> bool:
    if (weight_class, operation, condition) in HARMFUL_COMBINATIONS:
        return True
    return weight_class == "heavy" and condition == "wet" and retention >= _HIGH_RETENTION


def analyze_machine_soil(normalized: NormalizedFarmContext, aux: AuxiliaryData) -> list[RiskFactor]:
    context = normalized.context
    if not context.planned_machinery:
        return []
    condition = context.current_soil_condition or "moist"
    water = context.water_pattern
    retention = float(water.water_retention if water and water.water_retention is not None else 0.5)
    farm_size = float(context.farm_size_ha or 1.0)
    model = aux.models.get(ANALYZER_NAME) or CompatibilityModel()
    confidence = round(
        normalized.provenance_weight(
            "current_soil_condition",
            "planned_machinery",
            "water_pattern.water_retention",
        ),
        4,
    )

    factors: list[RiskFactor] = []
    for index, plan in enumerate(context.planned_machinery):
        key = _machine_key(plan.machine)
        weight = machine_weight_class(plan.machine)
        prediction = model.predict({"compatibility": COMPATIBILITY_SCORES[weight][condition]})
        harmful = is_harmful(weight, plan.operation, condition, retention)
        rejected = harmful or prediction.score < _COMPATIBLE_SCORE
        alternatives = _alternatives(plan, condition, retention, farm_size) if rejected else []

        severity = clip01(0.3 + 0.6 * (1.0 - prediction.score) + (0.1 if harmful else 0.0))
        probability = clip01(1.0 - prediction.score)
        label = MACHINERY.get(key, {}).get("label", plan.machine)
        factors.append(
            RiskFactor(
                factor_id=make_factor_id(ANALYZER_NAME, "machine_soil_fit", f"{index}:{key}:{plan.operation}"),
                analyzer=ANALYZER_NAME,
                domain="soil",
                code="machine_soil_fit",
                title=f"{label} for {plan.operation} on {condition} soil",
                severity=round(severity, 4),
                probability=round(probability, 4),
                timeframe=f"{plan.operation} operation",
                mitigation_options=alternatives,
                confidence=confidence,
                model_version=prediction.model_version,
                basis={
                    "compatibility": round(prediction.score, 4),
                    "water_retention": round(retention, 3),
                },
                details={
                    "machine": key,
                    "weight_class": weight,
                    "operation": plan.operation,
                    "soil_condition": condition,
                    "rejected": rejected,
                    "known_machine": key in MACHINERY,
                },
                alert="DO_NOT_USE" if harmful else None,
            )
        )
    return factors


def machine_perturbations(normalized: NormalizedFarmContext) -> list[Perturbation]:
    context = normalized.context
    condition = context.current_soil_condition or "moist"
    water = context.water_pattern
    retention = float(water.water_retention if water and water.water_retention is not None else 0.5)
    perturbations: list[Perturbation] = []
    for index, plan in enumerate(context.planned_machinery):
        weight = machine_weight_class(plan.machine)
        if COMPATIBILITY_SCORES[weight][condition] >= _COMPATIBLE_SCORE and not is_harmful(
            weight, plan.operation, condition, retention
        ):
            continue
        options = _compatible_machines(plan.operation, condition, retention, exclude=_machine_key(plan.machine))
        if options:
            replacement = options[0][0]
            perturbations.append(
                Perturbation(
                    analyzer=ANALYZER_NAME,
                    lever="planned_machinery",
                    description=f"use a {MACHINERY[replacement]['label']} instead for {plan.operation}",
                    magnitude=1.0,
                    apply=_swap_machine(index, replacement),
                )
            )
    position = SOIL_CONDITION_ORDER.index(condition)
    if context.planned_machinery and condition in _DRYING_DAYS and position > 0:
        drier = SOIL_CONDITION_ORDER[position - 1]
        perturbations.append(
            Perturbation(
                analyzer=ANALYZER_NAME,
                lever="current_soil_condition",
                description=f"wait about {_DRYING_DAYS[condition]} days until the soil is {drier}",
                magnitude=2.0,
                apply=_set_condition(drier),
            )
        )
    return perturbations


def _swap_machine(index: int, replacement: str):
    def _apply(context: FarmContext) -> FarmContext:
        plans = list(context.planned_machinery)
        if index >= len(plans):
            return context
        plans[index] = MachineryPlan(machine=replacement, operation=plans[index].operation)
        return context.model_copy(update={"planned_machinery": plans})

    return _apply


def _set_condition(condition: str):
    def _apply(context: FarmContext) -> FarmContext:
        return context.model_copy(update={"current_soil_condition": condition})

    return _apply


def _compatible_machines(
    operation: str,
    condition: str,
    retention: float,
    exclude: str = "",
) -> list[tuple[str, float]]:
    options: list[tuple[str, float]] = []
    for key, spec in MACHINERY.items():
        if key == exclude or operation not in spec["operations"]:
            continue
        weight = str(spec["weight_class"])
        score = COMPATIBILITY_SCORES[weight][condition]
        if score < _COMPATIBLE_SCORE or is_harmful(weight, operation, condition, retention):
            continue
        options.append((key, score))
    # Prefer the best fit; manual tools go last since they cost the most labour.
    return sorted(options, key=lambda item: (item[0] == "manual_tools", -item[1], item[0]))


def _alternatives(plan: MachineryPlan, condition: str, retention: float, farm_size: float) -> list[Alternative]:
    options: list[Alternative] = []
    for key, score in _compatible_machines(plan.operation, condition, retention, exclude=_machine_key(plan.machine))[:3]:
        spec: dict[str, Any] = MACHINERY[key]
        options.append(
            Alternative(
                alternative_id=f"machine_soil:{key}:{plan.operation}",
                description=f"use a {spec['label']} for {plan.operation}",
                risk_reduction=round(score - COMPATIBILITY_SCORES[machine_weight_class(plan.machine)][condition], 4),
                cost=round(_HIRE_COST_PER_HA.get(str(spec["weight_class"]), 0.0) * farm_size, 2),
                time_to_implement_days=1,
                suitability=round(score, 4),
                source=ANALYZER_NAME,
            )
        )
    if condition in _DRYING_DAYS:
        options.append(
            Alternative(
                alternative_id=f"machine_soil:wait:{plan.operation}",
                description=f"wait about {_DRYING_DAYS[condition]} days for the soil to dry before {plan.operation}",
                risk_reduction=0.4,
                cost=0.0,
                time_to_implement_days=_DRYING_DAYS[condition],
                suitability=0.7,
                source=ANALYZER_NAME,
            )
        )
    if not options:
        options.append(
            Alternative(
                alternative_id=f"machine_soil:manual_tools:{plan.operation}",
                description=f"do {plan.operation} with manual tools",
                risk_reduction=0.3,
                cost=0.0,
                time_to_implement_days=0,
                suitability=0.5,
                source=ANALYZER_NAME,
            )
        )
    return options


def _machine_key(machine: str) -> str:
    return "_".join(machine.strip().lower().replace("-", " ").split())


MACHINE_SOIL_ANALYZER = DomainAnalyzer(
    name=ANALYZER_NAME,
    domain="soil",
    analyze=analyze_machine_soil,
    perturbations=machine_perturbations,
)
