from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

InputPhilosophy = Literal["chemical", "organic", "mixed"]
Season = Literal["kharif", "rabi", "zaid"]
SoilCondition = Literal["dry", "moist", "wet", "waterlogged"]
Drainage = Literal["poor", "moderate", "good"]
IrrigationSource = Literal["rainfed", "canal", "borewell", "tank", "river"]
Operation = Literal["tillage", "sowing", "weeding", "spraying", "harvest"]
Literacy = Literal["basic", "intermediate", "advanced"]

DataSource = Literal["farm-specific", "regional-fallback", "default"]
RiskLevel = Literal["LOW", "MEDIUM", "HIGH"]
RiskDomain = Literal["weather", "soil", "market", "physical", "financial"]


class GeoLocation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    region: str = Field(min_length=1, max_length=64)
    district: Optional[str] = Field(default=None, max_length=64)
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)


class SoilHandlingEvent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    year: int = Field(ge=1950, le=2100)
    season: Season
    practice: str = Field(min_length=1, max_length=64)


class SoilTest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ph: Optional[float] = Field(default=None, ge=3.0, le=10.5)
    organic_carbon_pct: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    nitrogen_kg_ha: Optional[float] = Field(default=None, ge=0.0, le=2000.0)
    phosphorus_kg_ha: Optional[float] = Field(default=None, ge=0.0, le=500.0)
    potassium_kg_ha: Optional[float] = Field(default=None, ge=0.0, le=2000.0)
    moisture_pct: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    sample_year: Optional[int] = Field(default=None, ge=1950, le=2100)


class WaterPattern(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    irrigation_source: Optional[IrrigationSource] = None
    water_retention: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    flood_risk: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    drainage: Optional[Drainage] = None


class LaborProfile(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    household_workers: Optional[int] = Field(default=None, ge=0, le=50)
    physical_capacity: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    hired_workers: Optional[int] = Field(default=None, ge=0, le=200)


class CropHistoryEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    year: int = Field(ge=1950, le=2100)
    season: Season
    crop: str = Field(min_length=1, max_length=64)
    outcome: Optional[Literal["good", "average", "poor", "failed"]] = None


class MachineryPlan(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    machine: str = Field(min_length=1, max_length=64)
    operation: Operation


class FarmContext(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    farm_id: str = Field(min_length=1, max_length=128)
    location: GeoLocation
    soil_handling_history: List[SoilHandlingEvent] = Field(default_factory=list)
    water_pattern: Optional[WaterPattern] = None
    input_philosophy: Optional[InputPhilosophy] = None
    labor_profile: Optional[LaborProfile] = None
    farm_size_ha: Optional[float] = Field(default=None, gt=0.0, le=10000.0)
    crop_history: List[CropHistoryEntry] = Field(default_factory=list)
    soil_test: Optional[SoilTest] = None
    current_soil_condition: Optional[SoilCondition] = None
    planned_machinery: List[MachineryPlan] = Field(default_factory=list)
    planned_crop: Optional[str] = Field(default=None, min_length=1, max_length=64)
    season: Optional[Season] = None
    sowing_week: Optional[int] = Field(default=None, ge=1, le=52)
    working_capital: Optional[float] = Field(default=None, ge=0.0)

    @model_validator(mode="after")
    def _validate_history_order(self) -> "FarmContext":
        years = [item.year for item in self.soil_handling_history]
        if years != sorted(years):
            raise ValueError("soil_handling_history must be ordered by year")
        return self


class AudienceProfile(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    locale: str = Field(default="en", min_length=2, max_length=16)
    literacy: Literacy = "basic"


class RiskQuery(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    season: Optional[Season] = None
    planned_crop: Optional[str] = Field(default=None, min_length=1, max_length=64)
    audience: Optional[AudienceProfile] = None
    include_explanation: bool = True
    request_timeout_sec: Optional[float] = Field(default=None, gt=0.0, le=120.0)


class Scenario(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    scenario_id: str = Field(min_length=1, max_length=128)
    description: str = Field(default="", max_length=512)
    context: FarmContext
    implementation_cost: float = Field(default=0.0, ge=0.0)
    time_to_implement_days: int = Field(default=0, ge=0)
    suitability: float = Field(default=1.0, ge=0.0, le=1.0)


AuditEventType = Literal[
    "REQUEST_RECEIVED",
    "VALIDATION_FAILED",
    "DATA_DEGRADED",
    "ADAPTER_UNAVAILABLE",
    "ANALYZER_UNAVAILABLE",
    "ASSESSMENT_EMITTED",
    "LAYER_OMITTED",
    "REQUEST_TIMEOUT",
    "COHORT_PUBLISHED",
    "OUTCOME_RECORDED",
    "ERROR",
]


class AuditEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ts_iso: str
    request_id: str
    type: AuditEventType
    code: str
    detail: str
    duration_ms: Optional[int] = None


class PredictionRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prediction_id: str
    farm_id: str
    level: RiskLevel
    confidence: float
    model_versions: Dict[str, str] = Field(default_factory=dict)
    recorded_at: str


class OutcomeEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prediction_id: str
    actual_outcome: str = Field(min_length=1, max_length=256)
    farm_id: str
    predicted_level: RiskLevel
    model_versions: Dict[str, str] = Field(default_factory=dict)
    recorded_at: str
    meta: Dict[str, Any] = Field(default_factory=dict)
