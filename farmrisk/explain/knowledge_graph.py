from __future__ import annotations

"""
Fixed agronomic knowledge graph: condition -> mechanism -> outcome.

Each edge is keyed by the factor code an analyzer emits and filled with the
request's own numbers. Missing values render as "?" instead of failing.
"""

from dataclasses import dataclass
from typing import Any

from farmrisk.analyzers.base import RiskFactor


@dataclass(frozen=True)
class CausalEdge:
    condition: str
    mechanism: str
    outcome: str


CAUSAL_GRAPH: dict[str, CausalEdge] = {
    "rain_shortfall": CausalEdge(
        condition="about {expected_rain_mm} mm of rain is expected where the crop needs {required_rain_mm} mm",
        mechanism="the soil holds little water (retention {water_retention}) so moisture runs out around {first_window}",
        outcome="plants stress during {first_window} and yield falls",
    ),
    "flood_exposure": CausalEdge(
        condition="the field has a flood chance of {flood_risk} with {drainage} drainage",
        mechanism="standing water cuts air to the roots",
        outcome="seedlings rot or need re-sowing",
    ),
    "soil_health": CausalEdge(
        condition="soil pH is {ph} and {low_nutrient_pct}% of tested nutrients are low (test reliability {soil_confidence})",
        mechanism="the crop cannot take up enough nutrients from the soil",
        outcome="growth is slow and inputs may be wasted",
    ),
    "labour_overload": CausalEdge(
        condition="work needed in {timeframe} is {peak_load_index} times what the household can do",
        mechanism="field operations fall behind schedule",
        outcome="late weeding or harvest loses part of the crop",
    ),
    "machine_soil_fit": CausalEdge(
        condition="a {weight_class} machine ({machine}) is planned for {operation} on {soil_condition} soil",
        mechanism="wheels compact and smear the soil structure",
        outcome="roots and water cannot move through the hardened layer for seasons",
    ),
}


class _Values(dict):
    def __missing__(self, key: str) -> str:
        return "?"


def causal_values(factor: RiskFactor) -> _Values:
    values = _Values()
    for name, value in factor.basis.items():
        values[name] = _fmt(value)
    for name, value in factor.details.items():
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            values[name] = _fmt(value)
    windows = factor.details.get("critical_windows") or []
    if windows:
        first = sorted(windows, key=lambda item: int(item.get("start_week", 0)))[0]
        values["first_window"] = f"{first['stage']} (weeks {first['start_week']}-{first['end_week']})"
    if "low_nutrient_share" in factor.basis:
        values["low_nutrient_pct"] = _fmt(round(100.0 * float(factor.basis["low_nutrient_share"])))
    if "machine" in factor.details:
        values["machine"] = str(factor.details["machine"]).replace("_", " ")
    values["timeframe"] = factor.timeframe
    values["title"] = factor.title
    return values


def causal_chain(factor: RiskFactor) -> dict[str, str] | None:
    edge = CAUSAL_GRAPH.get(factor.code)
    if edge is None:
        return None
    values = causal_values(factor)
    return {
        "factor_id": factor.factor_id,
        "condition": edge.condition.format_map(values),
        "mechanism": edge.mechanism.format_map(values),
        "outcome": edge.outcome.format_map(values),
    }


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)
