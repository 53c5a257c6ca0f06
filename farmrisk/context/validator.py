from __future__ import annotations

"""
Normalize and validate a raw farm context.

Design intent:
- Fail only on structurally malformed identity or location.
- Every other gap degrades quality: missing or out-of-range values are dropped
  and refilled from regional historical defaults, tagged with their provenance.
- Provenance is explicit per field so downstream confidence can be derived from it.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError

from farmrisk.internal_core.contracts import (
    CropHistoryEntry,
    DataSource,
    FarmContext,
    GeoLocation,
    LaborProfile,
    MachineryPlan,
    SoilHandlingEvent,
    SoilTest,
    WaterPattern,
)

from .agronomy import crop_profile
from .regional_defaults import normalize_region, region_defaults


class ContextValidationError(ValueError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class DataQualityIndicator:
    field: str
    source: DataSource
    note: str = ""


@dataclass(frozen=True)
class QualityReport:
    indicators: list[DataQualityIndicator]
    completeness: float
    degradations: list[str]
    region_known: bool

    def source_for(self, field_name: str) -> DataSource:
        """Worst provenance among the indicators under ``field_name`` (dotted prefix match)."""
        sources = [
            item.source
            for item in self.indicators
            if item.field == field_name or item.field.startswith(field_name + ".")
        ]
        if not sources:
            return "default"
        return max(sources, key=lambda item: _SOURCE_RANK[item])

    def fallback_fields(self) -> list[str]:
        return [item.field for item in self.indicators if item.source != "farm-specific"]


@dataclass(frozen=True)
class NormalizedFarmContext:
    context: FarmContext
    region_key: str
    sources: dict[str, DataSource] = field(default_factory=dict)

    def source(self, field_name: str) -> DataSource:
        return self.sources.get(field_name, "default")

    def provenance_weight(self, *field_names: str) -> float:
        if not field_names:
            return 1.0
        weights = [PROVENANCE_WEIGHTS[self.source(name)] for name in field_names]
        return sum(weights) / len(weights)


PROVENANCE_WEIGHTS: dict[str, float] = {
    "farm-specific": 1.0,
    "regional-fallback": 0.6,
    "default": 0.4,
}

_SOURCE_RANK = {"farm-specific": 0, "regional-fallback": 1, "default": 2}

_NESTED_SECTIONS: dict[str, type[BaseModel]] = {
    "soil_test": SoilTest,
    "water_pattern": WaterPattern,
    "labor_profile": LaborProfile,
}

_LIST_SECTIONS: dict[str, type[BaseModel]] = {
    "soil_handling_history": SoilHandlingEvent,
    "crop_history": CropHistoryEntry,
    "planned_machinery": MachineryPlan,
}

_SCALAR_FIELDS = (
    "input_philosophy",
    "farm_size_ha",
    "current_soil_condition",
    "planned_crop",
    "season",
    "sowing_week",
    "working_capital",
)

# Completeness weights for tracked fields. Sample year and history lists count
# less because analyzers can work without them.
TRACKED_FIELD_WEIGHTS: dict[str, float] = {
    "soil_test.ph": 1.0,
    "soil_test.organic_carbon_pct": 1.0,
    "soil_test.nitrogen_kg_ha": 1.0,
    "soil_test.phosphorus_kg_ha": 1.0,
    "soil_test.potassium_kg_ha": 1.0,
    "soil_test.moisture_pct": 0.5,
    "water_pattern.irrigation_source": 1.0,
    "water_pattern.water_retention": 1.0,
    "water_pattern.flood_risk": 0.5,
    "water_pattern.drainage": 0.5,
    "labor_profile.household_workers": 1.0,
    "labor_profile.physical_capacity": 1.0,
    "labor_profile.hired_workers": 0.5,
    "input_philosophy": 0.5,
    "farm_size_ha": 1.0,
    "current_soil_condition": 1.0,
    "planned_crop": 1.0,
    "season": 1.0,
    "sowing_week": 0.5,
    "working_capital": 0.5,
    "planned_machinery": 0.5,
    "soil_handling_history": 0.5,
    "crop_history": 0.5,
}


def validate_farm_context(
    raw: Mapping[str, Any] | FarmContext,
) -> tuple[NormalizedFarmContext, QualityReport]:
    if isinstance(raw, FarmContext):
        payload: dict[str, Any] = raw.model_dump(exclude_none=True)
    elif isinstance(raw, Mapping):
        payload = dict(raw)
    else:
        raise ContextValidationError("MALFORMED_CONTEXT", "Farm context must be a mapping.")

    farm_id = _parse_identity(payload.get("farm_id"))
    location = _parse_location(payload.get("location"))
    region_key = normalize_region(location.region)
    defaults, region_known = region_defaults(region_key)
    fallback_source: DataSource = "regional-fallback" if region_known else "default"

    degradations: list[str] = []
    accepted = _accept_known_fields(payload, farm_id, location, degradations)

    filled: dict[str, Any] = {"farm_id": farm_id, "location": location.model_dump()}
    sources: dict[str, DataSource] = {}

    for section, model in _NESTED_SECTIONS.items():
        provided = accepted.get(section) or {}
        section_values: dict[str, Any] = {}
        for name in model.model_fields:
            tracked = f"{section}.{name}"
            if name in provided:
                section_values[name] = provided[name]
                if tracked in TRACKED_FIELD_WEIGHTS:
                    sources[tracked] = "farm-specific"
                continue
            default_value = defaults.get(section, {}).get(name)
            if default_value is not None:
                section_values[name] = default_value
            if tracked in TRACKED_FIELD_WEIGHTS:
                sources[tracked] = fallback_source
        filled[section] = section_values

    for name in _SCALAR_FIELDS:
        if name in accepted:
            filled[name] = accepted[name]
            sources[name] = "farm-specific"
            continue
        default_value = defaults.get(name)
        if default_value is not None:
            filled[name] = default_value
        sources[name] = fallback_source

    for name in _LIST_SECTIONS:
        items = accepted.get(name) or []
        if items:
            filled[name] = items
            sources[name] = "farm-specific"
            continue
        filled[name] = list(defaults.get(name, []) or [])
        sources[name] = fallback_source

    filled["soil_handling_history"] = sorted(
        filled.get("soil_handling_history") or [], key=lambda item: int(item["year"])
    )

    context = FarmContext.model_validate(filled)

    indicators: list[DataQualityIndicator] = []
    for name in TRACKED_FIELD_WEIGHTS:
        source = sources.get(name, fallback_source)
        note = ""
        if source != "farm-specific":
            note = (
                f"{name} missing; regional historical average for {region_key} used."
                if source == "regional-fallback"
                else f"{name} missing; national default used."
            )
        indicators.append(DataQualityIndicator(field=name, source=source, note=note))

    for section in _NESTED_SECTIONS:
        tracked = [name for name in TRACKED_FIELD_WEIGHTS if name.startswith(section + ".")]
        if any(sources.get(name) == "farm-specific" for name in tracked):
            continue
        degradations.append(
            f"No {section.replace('_', ' ')} data supplied; "
            f"{'regional averages' if region_known else 'national defaults'} used instead."
        )
    if not region_known:
        degradations.append(f"Region '{location.region}' has no historical table; national defaults used.")

    total_weight = sum(TRACKED_FIELD_WEIGHTS.values())
    farm_weight = sum(
        weight for name, weight in TRACKED_FIELD_WEIGHTS.items() if sources.get(name) == "farm-specific"
    )
    completeness = round(farm_weight / total_weight, 6) if total_weight > 0 else 0.0

    normalized = NormalizedFarmContext(context=context, region_key=region_key, sources=sources)
    report = QualityReport(
        indicators=indicators,
        completeness=completeness,
        degradations=degradations,
        region_known=region_known,
    )
    return normalized, report


def _parse_identity(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ContextValidationError("INVALID_IDENTITY", "farm_id must be a non-empty string.")
    normalized = value.strip()
    if len(normalized) > 128:
        raise ContextValidationError("INVALID_IDENTITY", "farm_id exceeds 128 characters.")
    return normalized


def _parse_location(value: Any) -> GeoLocation:
    if isinstance(value, str):
        value = {"region": value}
    if not isinstance(value, Mapping):
        raise ContextValidationError("INVALID_LOCATION", "location must be an object with a region.")
    try:
        location = GeoLocation.model_validate(dict(value))
    except ValidationError as exc:
        raise ContextValidationError("INVALID_LOCATION", f"Unparseable location: {exc.errors()[0]['msg']}") from exc
    if not normalize_region(location.region):
        raise ContextValidationError("INVALID_LOCATION", "location.region is blank.")
    return location


def _accept_known_fields(
    payload: Mapping[str, Any],
    farm_id: str,
    location: GeoLocation,
    degradations: list[str],
) -> dict[str, Any]:
    accepted: dict[str, Any] = {}
    known = set(_NESTED_SECTIONS) | set(_LIST_SECTIONS) | set(_SCALAR_FIELDS)

    for key in sorted(payload):
        if key in {"farm_id", "location"}:
            continue
        if key not in known:
            degradations.append(f"Unknown field '{key}' ignored.")

    for section, model in _NESTED_SECTIONS.items():
        raw = payload.get(section)
        if raw is None:
            continue
        if not isinstance(raw, Mapping):
            degradations.append(f"{section} is not an object; ignored.")
            continue
        values: dict[str, Any] = {}
        for name, value in raw.items():
            if value is None:
                continue
            if name not in model.model_fields:
                degradations.append(f"Unknown field '{section}.{name}' ignored.")
                continue
            try:
                parsed = model.model_validate({name: value})
            except ValidationError:
                degradations.append(f"{section}.{name} out of range or malformed; treated as missing.")
                continue
            values[name] = getattr(parsed, name)
        accepted[section] = values

    for section, model in _LIST_SECTIONS.items():
        raw = payload.get(section)
        if raw is None:
            continue
        if not isinstance(raw, (list, tuple)):
            degradations.append(f"{section} is not a list; ignored.")
            continue
        items: list[dict[str, Any]] = []
        for index, item in enumerate(raw):
            try:
                items.append(model.model_validate(item).model_dump())
            except ValidationError:
                degradations.append(f"{section}[{index}] malformed; dropped.")
        accepted[section] = items

    for name in _SCALAR_FIELDS:
        value = payload.get(name)
        if value is None:
            continue
        try:
            parsed = FarmContext.model_validate(
                {"farm_id": farm_id, "location": location.model_dump(), name: value}
            )
        except ValidationError:
            degradations.append(f"{name} out of range or malformed; treated as missing.")
            continue
        parsed_value = getattr(parsed, name)
        if name == "planned_crop":
            parsed_value = "_".join(parsed_value.strip().lower().split())
            if crop_profile(parsed_value) is None:
                degradations.append(f"planned_crop '{value}' has no crop calendar; treated as missing.")
                continue
        accepted[name] = parsed_value

    return accepted
