from __future__ import annotations

"""
Physical-load risk.

Design intent:
- Compare weekly labour demand of the planned crop calendar against what the
  household (plus any hired hands) can physically supply.
- Report every period whose load index exceeds 1.0 so advice can target the
  exact weeks, not the season as a whole.
"""

from typing import Any, Mapping

from farmrisk.context.agronomy import MACHINERY, MECHANIZED_LABOUR_SHARE, crop_profile
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
)

ANALYZER_NAME = "physical_load"
PHYSICAL_MODEL_VERSION = "physical-load-rules-1.0"
_HIRED_WAGE_PER_WEEK = 2800.0
_NO_CAPACITY_INDEX = 99.0


class LoadIndexModel(ModelArtifact):
    """Maps the worst weekly load index to a probability of falling behind."""

    def predict(self, features: Mapping[str, float]) -> ModelPrediction:
        peak = float(features.get("peak_load_index", 0.0))
        # 1.0 means demand equals capacity; half the time the work slips.
        score = clip01(0.5 * peak) if peak <= 1.0 else clip01(0.5 + 0.4 * (peak - 1.0))
        return ModelPrediction(
            label="overloaded" if peak > 1.0 else "manageable",
            score=score,
            model_version=PHYSICAL_MODEL_VERSION,
        )

    def version(self) -> str:
        return PHYSICAL_MODEL_VERSION


def labour_periods(context: FarmContext, hours_per_worker_week: float) -> list[dict[str, Any]]:
    """Per-period demand, capacity and load index for the planned crop."""
    profile = crop_profile(context.planned_crop)
    if profile is None:
        return []
    labour = context.labor_profile
    household = int(labour.household_workers or 0) if labour else 0
    capacity_factor = float(labour.physical_capacity if labour and labour.physical_capacity is not None else 0.7)
    hired = int(labour.hired_workers or 0) if labour else 0
    capacity_hours = (household * capacity_factor + hired) * hours_per_worker_week
    farm_size = float(context.farm_size_ha or 1.0)
    sowing_week = int(context.sowing_week or 26)
    mechanized = _mechanized_share(context)

    periods: list[dict[str, Any]] = []
    for start, end, operation, hours_per_ha in profile["labour"]:
        demand = float(hours_per_ha) * farm_size * mechanized.get(operation, 1.0)
        if capacity_hours > 0:
            index = demand / capacity_hours
        else:
            index = _NO_CAPACITY_INDEX if demand > 0 else 0.0
        periods.append(
            {
                "operation": operation,
                "start_week": _wrap_week(sowing_week + start),
                "end_week": _wrap_week(sowing_week + end),
                "demand_hours_per_week": round(demand, 1),
                "capacity_hours_per_week": round(capacity_hours, 1),
                "weeks": max(int(end) - int(start), 1),
                "load_index": round(index, 3),
            }
        )
    return periods


def analyze_physical_load(normalized: NormalizedFarmContext, aux: AuxiliaryData) -> list[RiskFactor]:
    context = normalized.context
    if crop_profile(context.planned_crop) is None:
        raise AnalyzerUnavailable(
            "UNKNOWN_CROP",
            f"No labour calendar known for crop {context.planned_crop!r}.",
            ANALYZER_NAME,
        )
    periods = labour_periods(context, aux.settings.hours_per_worker_week)
    overloaded = [item for item in periods if item["load_index"] > 1.0]
    peak = max((float(item["load_index"]) for item in periods), default=0.0)
    bounded_peak = min(peak, 3.0)

    model = aux.models.get(ANALYZER_NAME) or LoadIndexModel()
    prediction = model.predict({"peak_load_index": bounded_peak})
    labour = context.labor_profile
    capacity_factor = float(labour.physical_capacity if labour and labour.physical_capacity is not None else 0.7)

    severity = clip01(0.3 + 0.25 * min(bounded_peak, 2.0) + 0.2 * (1.0 - capacity_factor))
    confidence = round(
        normalized.provenance_weight(
            "labor_profile.household_workers",
            "labor_profile.physical_capacity",
            "labor_profile.hired_workers",
            "farm_size_ha",
            "planned_crop",
        ),
        4,
    )
    worst = max(periods, key=lambda item: float(item["load_index"]), default=None)
    timeframe = (
        f"weeks {worst['start_week']}-{worst['end_week']} ({worst['operation']})" if worst else "season"
    )

    return [
        RiskFactor(
            factor_id=make_factor_id(ANALYZER_NAME, "labour_overload"),
            analyzer=ANALYZER_NAME,
            domain="physical",
            code="labour_overload",
            title="Peak field work may exceed what the household can do",
            severity=round(severity, 4),
            probability=round(clip01(prediction.score), 4),
            timeframe=timeframe,
            mitigation_options=_labour_alternatives(context, overloaded, aux.settings.hours_per_worker_week),
            confidence=confidence,
            model_version=prediction.model_version,
            basis={
                "peak_load_index": round(bounded_peak, 3),
                "overloaded_periods": float(len(overloaded)),
                "physical_capacity": round(capacity_factor, 3),
            },
            details={
                "periods": periods,
                "overloaded_periods": [
                    {"operation": item["operation"], "start_week": item["start_week"], "end_week": item["end_week"]}
                    for item in overloaded
                ],
            },
        )
    ]


def physical_perturbations(normalized: NormalizedFarmContext) -> list[Perturbation]:
    context = normalized.context
    if crop_profile(context.planned_crop) is None:
        return []
    return [
        Perturbation(
            analyzer=ANALYZER_NAME,
            lever="hired_workers",
            description=f"hire {count} extra worker{'s' if count > 1 else ''} for peak weeks",
            magnitude=float(count),
            apply=_add_hired(count),
        )
        for count in (1, 2)
    ]


def _add_hired(count: int):
    def _apply(context: FarmContext) -> FarmContext:
        labour = context.labor_profile
        if labour is None:
            return context
        hired = int(labour.hired_workers or 0) + count
        return context.model_copy(update={"labor_profile": labour.model_copy(update={"hired_workers": hired})})

    return _apply


def _mechanized_share(context: FarmContext) -> dict[str, float]:
    shares: dict[str, float] = {}
    for plan in context.planned_machinery:
        machine = MACHINERY.get(plan.machine.strip().lower())
        weight = machine["weight_class"] if machine else "heavy"
        share = MECHANIZED_LABOUR_SHARE.get(weight, 1.0)
        shares[plan.operation] = min(shares.get(plan.operation, 1.0), share)
    return shares


def _labour_alternatives(
    context: FarmContext,
    overloaded: list[dict[str, Any]],
    hours_per_worker_week: float,
) -> list[Alternative]:
    if not overloaded:
        return []
    shortfall_hours = max(
        float(item["demand_hours_per_week"]) - float(item["capacity_hours_per_week"]) for item in overloaded
    )
    workers_needed = max(1, int(-(-shortfall_hours // hours_per_worker_week)))
    weeks = sum(int(item["weeks"]) for item in overloaded)
    farm_size = float(context.farm_size_ha or 1.0)
    options = [
        Alternative(
            alternative_id="physical:hire_labour",
            description=f"hire {workers_needed} worker{'s' if workers_needed > 1 else ''} for the peak weeks",
            risk_reduction=0.3,
            cost=round(workers_needed * weeks * _HIRED_WAGE_PER_WEEK, 2),
            time_to_implement_days=3,
            suitability=0.7,
            source=ANALYZER_NAME,
        ),
        Alternative(
            alternative_id="physical:labour_exchange",
            description="arrange a labour-sharing turn with neighbouring households",
            risk_reduction=0.2,
            cost=0.0,
            time_to_implement_days=7,
            suitability=0.8,
            source=ANALYZER_NAME,
        ),
        Alternative(
            alternative_id="physical:stagger_sowing",
            description="sow the field in two blocks a week apart to split the peak",
            risk_reduction=0.15,
            cost=0.0,
            time_to_implement_days=7,
            suitability=0.75,
            source=ANALYZER_NAME,
        ),
    ]
    operations = {item["operation"] for item in overloaded}
    if operations & {"tillage", "sowing", "harvest"}:
        options.append(
            Alternative(
                alternative_id="physical:custom_hiring",
                description="book a custom hiring centre machine for the heaviest operation",
                risk_reduction=0.3,
                cost=round(1800.0 * farm_size, 2),
                time_to_implement_days=5,
                suitability=0.65,
                source=ANALYZER_NAME,
            )
        )
    return options


def _wrap_week(week: int) -> int:
    return ((week - 1) % 52) + 1


PHYSICAL_LOAD_ANALYZER = DomainAnalyzer(
    name=ANALYZER_NAME,
    domain="physical",
    analyze=analyze_physical_load,
    perturbations=physical_perturbations,
)
