from __future__ import annotations

"""
Regional historical defaults used to fill gaps in a farm context.

Values are multi-year district survey averages rounded for advisory use. The
"national" entry backs regions that have no table of their own and is tagged
as a plain default rather than a regional fallback.
"""

from typing import Any

NATIONAL_KEY = "national"

REGIONAL_DEFAULTS: dict[str, dict[str, Any]] = {
    "vidarbha": {
        "soil_test": {
            "ph": 7.6,
            "organic_carbon_pct": 0.45,
            "nitrogen_kg_ha": 210.0,
            "phosphorus_kg_ha": 14.0,
            "potassium_kg_ha": 320.0,
            "moisture_pct": 18.0,
        },
        "water_pattern": {
            "irrigation_source": "rainfed",
            "water_retention": 0.55,
            "flood_risk": 0.05,
            "drainage": "moderate",
        },
        "labor_profile": {"household_workers": 2, "physical_capacity": 0.7, "hired_workers": 0},
        "input_philosophy": "chemical",
        "farm_size_ha": 1.6,
        "current_soil_condition": "moist",
        "planned_crop": "soybean",
        "season": "kharif",
        "sowing_week": 26,
        "working_capital": 30000.0,
        "planned_machinery": [{"machine": "bullock_plough", "operation": "tillage"}],
        "rainfall": {
            "kharif": {"mean_mm": 880.0, "std_mm": 190.0, "years": 30},
            "rabi": {"mean_mm": 70.0, "std_mm": 40.0, "years": 30},
            "zaid": {"mean_mm": 25.0, "std_mm": 20.0, "years": 30},
        },
    },
    "marathwada": {
        "soil_test": {
            "ph": 7.9,
            "organic_carbon_pct": 0.38,
            "nitrogen_kg_ha": 190.0,
            "phosphorus_kg_ha": 12.0,
            "potassium_kg_ha": 300.0,
            "moisture_pct": 14.0,
        },
        "water_pattern": {
            "irrigation_source": "rainfed",
            "water_retention": 0.45,
            "flood_risk": 0.02,
            "drainage": "good",
        },
        "labor_profile": {"household_workers": 2, "physical_capacity": 0.65, "hired_workers": 0},
        "input_philosophy": "chemical",
        "farm_size_ha": 1.4,
        "current_soil_condition": "dry",
        "planned_crop": "cotton",
        "season": "kharif",
        "sowing_week": 26,
        "working_capital": 25000.0,
        "planned_machinery": [{"machine": "bullock_plough", "operation": "tillage"}],
        "rainfall": {
            "kharif": {"mean_mm": 690.0, "std_mm": 210.0, "years": 30},
            "rabi": {"mean_mm": 60.0, "std_mm": 35.0, "years": 30},
            "zaid": {"mean_mm": 20.0, "std_mm": 15.0, "years": 30},
        },
    },
    "konkan": {
        "soil_test": {
            "ph": 5.6,
            "organic_carbon_pct": 0.9,
            "nitrogen_kg_ha": 260.0,
            "phosphorus_kg_ha": 10.0,
            "potassium_kg_ha": 180.0,
            "moisture_pct": 30.0,
        },
        "water_pattern": {
            "irrigation_source": "rainfed",
            "water_retention": 0.5,
            "flood_risk": 0.3,
            "drainage": "poor",
        },
        "labor_profile": {"household_workers": 3, "physical_capacity": 0.7, "hired_workers": 1},
        "input_philosophy": "mixed",
        "farm_size_ha": 0.8,
        "current_soil_condition": "wet",
        "planned_crop": "paddy",
        "season": "kharif",
        "sowing_week": 24,
        "working_capital": 20000.0,
        "planned_machinery": [{"machine": "power_tiller", "operation": "tillage"}],
        "rainfall": {
            "kharif": {"mean_mm": 2900.0, "std_mm": 520.0, "years": 30},
            "rabi": {"mean_mm": 40.0, "std_mm": 30.0, "years": 30},
            "zaid": {"mean_mm": 30.0, "std_mm": 25.0, "years": 30},
        },
    },
    "punjab": {
        "soil_test": {
            "ph": 8.0,
            "organic_carbon_pct": 0.42,
            "nitrogen_kg_ha": 230.0,
            "phosphorus_kg_ha": 22.0,
            "potassium_kg_ha": 280.0,
            "moisture_pct": 20.0,
        },
        "water_pattern": {
            "irrigation_source": "canal",
            "water_retention": 0.6,
            "flood_risk": 0.08,
            "drainage": "moderate",
        },
        "labor_profile": {"household_workers": 2, "physical_capacity": 0.75, "hired_workers": 2},
        "input_philosophy": "chemical",
        "farm_size_ha": 3.5,
        "current_soil_condition": "moist",
        "planned_crop": "wheat",
        "season": "rabi",
        "sowing_week": 45,
        "working_capital": 90000.0,
        "planned_machinery": [{"machine": "light_tractor", "operation": "tillage"}],
        "rainfall": {
            "kharif": {"mean_mm": 520.0, "std_mm": 140.0, "years": 30},
            "rabi": {"mean_mm": 110.0, "std_mm": 45.0, "years": 30},
            "zaid": {"mean_mm": 30.0, "std_mm": 20.0, "years": 30},
        },
    },
    NATIONAL_KEY: {
        "soil_test": {
            "ph": 7.2,
            "organic_carbon_pct": 0.5,
            "nitrogen_kg_ha": 220.0,
            "phosphorus_kg_ha": 15.0,
            "potassium_kg_ha": 250.0,
            "moisture_pct": 20.0,
        },
        "water_pattern": {
            "irrigation_source": "rainfed",
            "water_retention": 0.5,
            "flood_risk": 0.1,
            "drainage": "moderate",
        },
        "labor_profile": {"household_workers": 2, "physical_capacity": 0.7, "hired_workers": 0},
        "input_philosophy": "mixed",
        "farm_size_ha": 1.1,
        "current_soil_condition": "moist",
        "planned_crop": "sorghum",
        "season": "kharif",
        "sowing_week": 26,
        "working_capital": 25000.0,
        "planned_machinery": [{"machine": "bullock_plough", "operation": "tillage"}],
        "rainfall": {
            "kharif": {"mean_mm": 900.0, "std_mm": 220.0, "years": 30},
            "rabi": {"mean_mm": 80.0, "std_mm": 45.0, "years": 30},
            "zaid": {"mean_mm": 30.0, "std_mm": 20.0, "years": 30},
        },
    },
}


def normalize_region(raw: str) -> str:
    return "_".join(str(raw or "").strip().lower().replace("-", " ").split())


def region_defaults(region: str) -> tuple[dict[str, Any], bool]:
    """Return (defaults, region_known) for a normalized region key."""
    key = normalize_region(region)
    if key in REGIONAL_DEFAULTS and key != NATIONAL_KEY:
        return REGIONAL_DEFAULTS[key], True
    return REGIONAL_DEFAULTS[NATIONAL_KEY], False


def historical_rainfall(region: str, season: str) -> dict[str, float] | None:
    defaults, _ = region_defaults(region)
    row = defaults.get("rainfall", {}).get(str(season or "").strip().lower())
    if not isinstance(row, dict):
        return None
    return dict(row)
