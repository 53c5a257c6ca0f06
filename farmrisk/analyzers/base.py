from __future__ import annotations

"""
Shared contract for domain risk analyzers.

Design intent:
- One capability, many tagged variants: each analyzer is a record holding a
  pure ``analyze(context, aux) -> list[RiskFactor]`` function, so a new domain
  is added by registering another record, never by touching the aggregator.
- Analyzers signal missing required inputs with ``AnalyzerUnavailable``; the
  orchestrator records the note and carries on without their factors.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping, Optional

from farmrisk.context.validator import NormalizedFarmContext
from farmrisk.internal_core.artifacts import ModelArtifact
from farmrisk.internal_core.contracts import FarmContext, RiskDomain

AnalyzerName = Literal["water", "soil_confidence", "physical_load", "machine_soil"]
AlertKind = Literal["DO_NOT_USE"]


class AnalyzerUnavailable(RuntimeError):
    def __init__(self, code: str, message: str, analyzer_name: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.analyzer_name = analyzer_name


@dataclass(frozen=True)
class Alternative:
    alternative_id: str
    description: str
    risk_reduction: float
    cost: float
    time_to_implement_days: int
    suitability: float
    source: str = ""


@dataclass(frozen=True)
class RiskFactor:
    factor_id: str
    analyzer: str
    domain: RiskDomain
    code: str
    title: str
    severity: float
    probability: float
    timeframe: str
    mitigation_options: list[Alternative]
    confidence: float
    model_version: str
    basis: dict[str, float] = field(default_factory=dict)
    details: dict[str, Any] = field(default_factory=dict)
    alert: Optional[AlertKind] = None

    @property
    def product(self) -> float:
        return self.severity * self.probability


@dataclass(frozen=True)
class RainfallOutlook:
    expected_mm: float
    std_mm: float
    source: Literal["adapter", "historical"]
    years: int = 0


@dataclass(frozen=True)
class AnalyzerSettings:
    soil_confidence_threshold: float = 0.6
    debt_risk_fraction: float = 0.3
    debt_risk_max_cost: float = 15000.0
    hours_per_worker_week: float = 42.0


@dataclass(frozen=True)
class AuxiliaryData:
    rainfall: Optional[RainfallOutlook] = None
    models: Mapping[str, ModelArtifact] = field(default_factory=dict)
    settings: AnalyzerSettings = field(default_factory=AnalyzerSettings)
    reference_year: int = 2026


@dataclass(frozen=True)
class Perturbation:
    analyzer: str
    lever: str
    description: str
    magnitude: float
    apply: Callable[[FarmContext], FarmContext]


AnalyzeFn = Callable[[NormalizedFarmContext, AuxiliaryData], list[RiskFactor]]
PerturbationFn = Callable[[NormalizedFarmContext], list[Perturbation]]


@dataclass(frozen=True)
class DomainAnalyzer:
    name: str
    domain: RiskDomain
    analyze: AnalyzeFn
    perturbations: Optional[PerturbationFn] = None


def clip01(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))


def normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + math.erf(z / math.sqrt(2.0)))


def make_factor_id(analyzer: str, code: str, suffix: str = "") -> str:
    return f"{analyzer}:{code}" + (f":{suffix}" if suffix else "")


def with_context(normalized: NormalizedFarmContext, context: FarmContext) -> NormalizedFarmContext:
    return NormalizedFarmContext(
        context=context,
        region_key=normalized.region_key,
        sources=dict(normalized.sources),
    )
