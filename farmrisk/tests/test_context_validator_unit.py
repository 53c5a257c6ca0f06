from typing import Any

import pytest

from farmrisk.context.validator import ContextValidationError, validate_farm_context


def _context(**overrides: Any) -> dict[str, Any]:
    context: dict[str, Any] = {
        "farm_id": "farm-yav-001",
        "location": {"region": "Vidarbha", "district": "Yavatmal"},
        "soil_handling_history": [
            {"year": 2023, "season": "kharif", "practice": "ridge_and_furrow"},
            {"year": 2024, "season": "kharif", "practice": "minimum_tillage"},
        ],
        "water_pattern": {
            "irrigation_source": "rainfed",
            "water_retention": 0.6,
            "flood_risk": 0.0,
            "drainage": "good",
        },
        "input_philosophy": "mixed",
        "labor_profile": {"household_workers": 3, "physical_capacity": 0.8, "hired_workers": 1},
        "farm_size_ha": 2.0,
        "crop_history": [{"year": 2024, "season": "kharif", "crop": "soybean", "outcome": "good"}],
        "soil_test": {
            "ph": 7.2,
            "organic_carbon_pct": 0.6,
            "nitrogen_kg_ha": 300.0,
            "phosphorus_kg_ha": 15.0,
            "potassium_kg_ha": 300.0,
            "moisture_pct": 20.0,
            "sample_year": 2025,
        },
        "current_soil_condition": "moist",
        "planned_machinery": [{"machine": "bullock_plough", "operation": "tillage"}],
        "planned_crop": "soybean",
        "season": "kharif",
        "sowing_week": 26,
        "working_capital": 40000.0,
    }
    context.update(overrides)
    return context


def test_full_context_is_farm_specific_everywhere() -> None:
    normalized, quality = validate_farm_context(_context())

    assert normalized.region_key == "vidarbha"
    assert quality.region_known is True
    assert quality.completeness == 1.0
    assert quality.fallback_fields() == []
    assert quality.degradations == []
    assert normalized.provenance_weight("soil_test.ph", "planned_crop") == 1.0


@pytest.mark.parametrize("farm_id", [None, "", "   ", 42, "x" * 129])
def test_malformed_identity_is_a_hard_error(farm_id: Any) -> None:
    raw = _context()
    raw["farm_id"] = farm_id
    with pytest.raises(ContextValidationError) as exc_info:
        validate_farm_context(raw)
    assert exc_info.value.code == "INVALID_IDENTITY"


@pytest.mark.parametrize("location", [None, 12, {}, {"region": ""}, {"region": "Vidarbha", "latitude": 123.0}])
def test_malformed_location_is_a_hard_error(location: Any) -> None:
    with pytest.raises(ContextValidationError) as exc_info:
        validate_farm_context(_context(location=location))
    assert exc_info.value.code == "INVALID_LOCATION"


def test_plain_string_location_is_accepted_as_region() -> None:
    normalized, _ = validate_farm_context(_context(location="vidarbha"))
    assert normalized.context.location.region == "vidarbha"
    assert normalized.region_key == "vidarbha"


def test_missing_soil_test_falls_back_to_regional_average() -> None:
    raw = _context()
    del raw["soil_test"]

    normalized, quality = validate_farm_context(raw)

    assert quality.source_for("soil_test") == "regional-fallback"
    assert normalized.source("soil_test.ph") == "regional-fallback"
    assert normalized.context.soil_test is not None
    assert normalized.context.soil_test.ph == 7.6
    assert normalized.context.soil_test.sample_year is None
    assert quality.completeness < 1.0
    assert any("soil test" in item for item in quality.degradations)
    notes = [item.note for item in quality.indicators if item.field == "soil_test.ph"]
    assert notes and "vidarbha" in notes[0]


def test_out_of_range_value_is_dropped_and_refilled() -> None:
    raw = _context()
    raw["soil_test"] = dict(raw["soil_test"], ph=12.5)

    normalized, quality = validate_farm_context(raw)

    assert normalized.context.soil_test is not None
    assert normalized.context.soil_test.ph == 7.6
    assert normalized.source("soil_test.ph") == "regional-fallback"
    assert normalized.source("soil_test.nitrogen_kg_ha") == "farm-specific"
    assert any("soil_test.ph out of range" in item for item in quality.degradations)


def test_unknown_crop_is_treated_as_missing() -> None:
    normalized, quality = validate_farm_context(_context(planned_crop="Dragon Fruit"))

    assert normalized.context.planned_crop == "soybean"
    assert normalized.source("planned_crop") == "regional-fallback"
    assert any("no crop calendar" in item for item in quality.degradations)


def test_crop_name_is_normalized() -> None:
    normalized, _ = validate_farm_context(_context(planned_crop="  Pearl Millet "))
    assert normalized.context.planned_crop == "pearl_millet"
    assert normalized.source("planned_crop") == "farm-specific"


def test_unknown_region_uses_national_defaults() -> None:
    raw = _context(location={"region": "Atlantis"})
    del raw["labor_profile"]

    normalized, quality = validate_farm_context(raw)

    assert quality.region_known is False
    assert normalized.source("labor_profile.household_workers") == "default"
    assert any("national defaults" in item for item in quality.degradations)


def test_malformed_list_items_are_dropped_individually() -> None:
    raw = _context(
        planned_machinery=[
            {"machine": "bullock_plough", "operation": "tillage"},
            {"machine": "heavy_tractor", "operation": "levitation"},
        ]
    )

    normalized, quality = validate_farm_context(raw)

    assert [plan.machine for plan in normalized.context.planned_machinery] == ["bullock_plough"]
    assert any("planned_machinery[1]" in item for item in quality.degradations)


def test_unknown_fields_are_reported_not_fatal() -> None:
    _, quality = validate_farm_context(_context(favourite_colour="green"))
    assert any("favourite_colour" in item for item in quality.degradations)


def test_soil_handling_history_is_sorted_by_year() -> None:
    raw = _context(
        soil_handling_history=[
            {"year": 2024, "season": "kharif", "practice": "minimum_tillage"},
            {"year": 2021, "season": "rabi", "practice": "deep_tillage"},
        ]
    )
    normalized, _ = validate_farm_context(raw)
    assert [item.year for item in normalized.context.soil_handling_history] == [2021, 2024]


def test_removing_fields_never_raises_completeness() -> None:
    _, full = validate_farm_context(_context())
    for name in ("soil_test", "water_pattern", "labor_profile", "crop_history", "sowing_week", "working_capital"):
        raw = _context()
        del raw[name]
        _, reduced = validate_farm_context(raw)
        assert reduced.completeness < full.completeness, name
