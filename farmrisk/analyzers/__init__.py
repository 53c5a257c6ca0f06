from .base import (
    Alternative,
    AnalyzerSettings,
    AnalyzerUnavailable,
    AuxiliaryData,
    DomainAnalyzer,
    Perturbation,
    RainfallOutlook,
    RiskFactor,
)
from .registry import DEFAULT_ANALYZERS, analyzer_by_name, default_model_registry

__all__ = [
    "Alternative",
    "AnalyzerSettings",
    "AnalyzerUnavailable",
    "AuxiliaryData",
    "DEFAULT_ANALYZERS",
    "DomainAnalyzer",
    "Perturbation",
    "RainfallOutlook",
    "RiskFactor",
    "analyzer_by_name",
    "default_model_registry",
]
