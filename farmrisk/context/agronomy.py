from __future__ import annotations

"""
Agronomic reference tables shared by the domain analyzers.

Crop calendars are expressed as week offsets from sowing. Labour demand is in
person-hours per hectare per week for fully manual work.
"""

from typing import Any

CROP_PROFILES: dict[str, dict[str, Any]] = {
    "soybean": {
        "water_requirement_mm": 450.0,
        "optimal_sowing_week": {"kharif": 26},
        "drought_tolerance": 0.4,
        "labour": [(0, 1, "tillage", 18.0), (1, 2, "sowing", 22.0), (4, 7, "weeding", 30.0), (14, 16, "harvest", 38.0)],
        "critical_windows": [("sowing", 0, 2), ("flowering", 7, 9), ("harvest", 14, 16)],
    },
    "cotton": {
        "water_requirement_mm": 700.0,
        "optimal_sowing_week": {"kharif": 25},
        "drought_tolerance": 0.5,
        "labour": [(0, 1, "tillage", 18.0), (1, 2, "sowing", 20.0), (5, 9, "weeding", 28.0), (18, 24, "harvest", 45.0)],
        "critical_windows": [("sowing", 0, 2), ("boll formation", 12, 16), ("harvest", 18, 24)],
    },
    "paddy": {
        "water_requirement_mm": 1200.0,
        "optimal_sowing_week": {"kharif": 25},
        "drought_tolerance": 0.1,
        "labour": [(0, 1, "tillage", 25.0), (3, 5, "sowing", 60.0), (6, 9, "weeding", 35.0), (16, 18, "harvest", 50.0)],
        "critical_windows": [("transplanting", 3, 5), ("panicle initiation", 9, 11), ("harvest", 16, 18)],
    },
    "wheat": {
        "water_requirement_mm": 450.0,
        "optimal_sowing_week": {"rabi": 45},
        "drought_tolerance": 0.3,
        "labour": [(0, 1, "tillage", 15.0), (1, 2, "sowing", 15.0), (4, 8, "weeding", 10.0), (18, 20, "harvest", 40.0)],
        "critical_windows": [("sowing", 0, 2), ("crown root initiation", 3, 4), ("harvest", 18, 20)],
    },
    "chickpea": {
        "water_requirement_mm": 300.0,
        "optimal_sowing_week": {"rabi": 44},
        "drought_tolerance": 0.7,
        "labour": [(0, 1, "tillage", 12.0), (1, 2, "sowing", 14.0), (4, 6, "weeding", 18.0), (14, 16, "harvest", 30.0)],
        "critical_windows": [("sowing", 0, 2), ("flowering", 7, 9), ("harvest", 14, 16)],
    },
    "pigeonpea": {
        "water_requirement_mm": 600.0,
        "optimal_sowing_week": {"kharif": 26},
        "drought_tolerance": 0.7,
        "labour": [(0, 1, "tillage", 15.0), (1, 2, "sowing", 16.0), (4, 8, "weeding", 24.0), (24, 26, "harvest", 35.0)],
        "critical_windows": [("sowing", 0, 2), ("flowering", 14, 18), ("harvest", 24, 26)],
    },
    "sorghum": {
        "water_requirement_mm": 450.0,
        "optimal_sowing_week": {"kharif": 26, "rabi": 40},
        "drought_tolerance": 0.7,
        "labour": [(0, 1, "tillage", 14.0), (1, 2, "sowing", 14.0), (3, 6, "weeding", 22.0), (14, 16, "harvest", 32.0)],
        "critical_windows": [("sowing", 0, 2), ("booting", 8, 10), ("harvest", 14, 16)],
    },
    "pearl_millet": {
        "water_requirement_mm": 350.0,
        "optimal_sowing_week": {"kharif": 27},
        "drought_tolerance": 0.85,
        "labour": [(0, 1, "tillage", 12.0), (1, 2, "sowing", 12.0), (3, 5, "weeding", 18.0), (11, 12, "harvest", 28.0)],
        "critical_windows": [("sowing", 0, 2), ("flowering", 6, 8), ("harvest", 11, 12)],
    },
    "maize": {
        "water_requirement_mm": 550.0,
        "optimal_sowing_week": {"kharif": 25, "rabi": 43},
        "drought_tolerance": 0.4,
        "labour": [(0, 1, "tillage", 16.0), (1, 2, "sowing", 16.0), (3, 6, "weeding", 26.0), (14, 16, "harvest", 36.0)],
        "critical_windows": [("sowing", 0, 2), ("tasseling", 7, 9), ("harvest", 14, 16)],
    },
}

IRRIGATION_SUPPLY_SHARE: dict[str, float] = {
    "rainfed": 0.0,
    "tank": 0.5,
    "river": 0.6,
    "canal": 0.7,
    "borewell": 0.8,
}

MACHINERY: dict[str, dict[str, Any]] = {
    "heavy_tractor": {"label": "heavy tractor (45+ HP)", "weight_class": "heavy", "operations": {"tillage", "sowing", "harvest"}},
    "rotavator": {"label": "tractor-mounted rotavator", "weight_class": "heavy", "operations": {"tillage"}},
    "combine_harvester": {"label": "combine harvester", "weight_class": "heavy", "operations": {"harvest"}},
    "light_tractor": {"label": "light tractor (under 30 HP)", "weight_class": "medium", "operations": {"tillage", "sowing", "spraying"}},
    "zero_till_drill": {"label": "zero-till seed drill", "weight_class": "medium", "operations": {"sowing"}},
    "reaper": {"label": "self-propelled reaper", "weight_class": "medium", "operations": {"harvest"}},
    "power_tiller": {"label": "power tiller", "weight_class": "light", "operations": {"tillage", "weeding"}},
    "bullock_plough": {"label": "bullock-drawn plough", "weight_class": "light", "operations": {"tillage", "sowing"}},
    "knapsack_sprayer": {"label": "knapsack sprayer", "weight_class": "light", "operations": {"spraying"}},
    "manual_tools": {"label": "manual tools", "weight_class": "light", "operations": {"tillage", "sowing", "weeding", "spraying", "harvest"}},
}

# Share of manual labour still needed when an operation is mechanized.
MECHANIZED_LABOUR_SHARE: dict[str, float] = {"heavy": 0.15, "medium": 0.3, "light": 0.7}

COMPATIBILITY_SCORES: dict[str, dict[str, float]] = {
    "light": {"dry": 0.85, "moist": 1.0, "wet": 0.7, "waterlogged": 0.35},
    "medium": {"dry": 0.85, "moist": 0.95, "wet": 0.45, "waterlogged": 0.15},
    "heavy": {"dry": 0.8, "moist": 0.85, "wet": 0.2, "waterlogged": 0.05},
}

# (weight_class, operation, soil_condition) triples known to cause compaction,
# smearing or rutting damage that outlasts the season.
HARMFUL_COMBINATIONS: set[tuple[str, str, str]] = {
    ("heavy", "tillage", "wet"),
    ("heavy", "tillage", "waterlogged"),
    ("heavy", "sowing", "waterlogged"),
    ("heavy", "harvest", "waterlogged"),
    ("medium", "tillage", "waterlogged"),
}

SOIL_CONDITION_ORDER: list[str] = ["dry", "moist", "wet", "waterlogged"]

SOIL_ACTIONS: list[dict[str, Any]] = [
    {"action": "apply farmyard manure or compost", "kind": "safe", "cost_per_ha": 3000.0, "days": 7},
    {"action": "split nitrogen into two or three doses", "kind": "safe", "cost_per_ha": 0.0, "days": 0},
    {"action": "retain crop residue as mulch", "kind": "safe", "cost_per_ha": 0.0, "days": 3},
    {"action": "sow a legume in rotation", "kind": "safe", "cost_per_ha": 1200.0, "days": 30},
    {"action": "get a fresh soil test at the block soil lab", "kind": "safe", "cost_per_ha": 150.0, "days": 14},
    {"action": "full basal dose of urea at sowing", "kind": "risky", "cost_per_ha": 2500.0, "days": 0},
    {"action": "apply agricultural lime", "kind": "risky", "cost_per_ha": 4000.0, "days": 10},
    {"action": "apply gypsum for alkaline soil", "kind": "risky", "cost_per_ha": 3500.0, "days": 10},
    {"action": "deep tillage to break hardpan", "kind": "risky", "cost_per_ha": 4500.0, "days": 5},
]

# Sufficiency bands for soil-test nutrients (kg/ha) and organic carbon (%).
NUTRIENT_LOW_THRESHOLDS: dict[str, float] = {
    "organic_carbon_pct": 0.5,
    "nitrogen_kg_ha": 280.0,
    "phosphorus_kg_ha": 11.0,
    "potassium_kg_ha": 120.0,
}

DROUGHT_ALTERNATIVES: list[dict[str, Any]] = [
    {"id": "shift_sowing", "description": "time sowing to the local monsoon onset window", "cost_per_ha": 0.0, "days": 0, "reduction": 0.15},
    {"id": "dust_mulch", "description": "conserve moisture with mulch and inter-row hoeing", "cost_per_ha": 1500.0, "days": 3, "reduction": 0.12},
    {"id": "tolerant_variety", "description": "switch to a short-duration drought-tolerant variety", "cost_per_ha": 1800.0, "days": 7, "reduction": 0.2},
    {"id": "protective_irrigation", "description": "arrange one protective irrigation from a shared source", "cost_per_ha": 4000.0, "days": 2, "reduction": 0.25},
    {"id": "farm_pond", "description": "dig a lined farm pond for rainwater harvesting", "cost_per_ha": 45000.0, "days": 45, "reduction": 0.35},
    {"id": "drip_irrigation", "description": "install drip irrigation", "cost_per_ha": 60000.0, "days": 30, "reduction": 0.4},
]


def crop_profile(crop: str | None) -> dict[str, Any] | None:
    if not crop:
        return None
    return CROP_PROFILES.get(str(crop).strip().lower())


def optimal_sowing_week(profile: dict[str, Any], season: str) -> int | None:
    weeks = profile.get("optimal_sowing_week", {})
    value = weeks.get(season)
    return int(value) if value is not None else None
