from __future__ import annotations

from farmrisk.internal_core.artifacts import ModelRegistry

from .base import DomainAnalyzer
from .machinery import MACHINE_SOIL_ANALYZER, CompatibilityModel
from .physical import PHYSICAL_LOAD_ANALYZER, LoadIndexModel
from .soil import SOIL_CONFIDENCE_ANALYZER, RuleSoilConfidenceModel
from .water import WATER_ANALYZER, RainfallAdequacyModel

DEFAULT_ANALYZERS: tuple[DomainAnalyzer, ...] = (
    WATER_ANALYZER,
    SOIL_CONFIDENCE_ANALYZER,
    PHYSICAL_LOAD_ANALYZER,
    MACHINE_SOIL_ANALYZER,
)


def default_model_registry() -> ModelRegistry:
    return ModelRegistry(
        {
            WATER_ANALYZER.name: RainfallAdequacyModel(),
            SOIL_CONFIDENCE_ANALYZER.name: RuleSoilConfidenceModel(),
            PHYSICAL_LOAD_ANALYZER.name: LoadIndexModel(),
            MACHINE_SOIL_ANALYZER.name: CompatibilityModel(),
        }
    )


def analyzer_by_name(name: str, analyzers: tuple[DomainAnalyzer, ...] = DEFAULT_ANALYZERS) -> DomainAnalyzer:
    for item in analyzers:
        if item.name == name:
            return item
    raise KeyError(f"Unknown analyzer: {name}")
