from __future__ import annotations

"""
Render templates per (layer, locale, literacy).

Design intent:
- Audience adaptation is template selection only; the facts underneath never change.
- Built-in templates cover English at every literacy level and basic Hindi.
- A template directory can add or override entries as ``<locale>/<literacy>.json``.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

LAYER_NAMES = ("factor_attribution", "counterfactual", "causal_narrative", "peer_narrative")
FALLBACK_LOCALE = "en"
FALLBACK_LITERACY = "basic"


@dataclass(frozen=True)
class LayerTemplate:
    title: str
    body: str
    item: str = ""
    empty: str = ""


class _Values(dict):
    def __missing__(self, key: str) -> str:
        return "?"


def render(template: LayerTemplate, values: Mapping[str, Any], items: list[Mapping[str, Any]] | None = None) -> str:
    """Fill ``template`` with ``values``; ``items`` are rendered with ``template.item`` and joined."""
    merged = _Values(values)
    if items is not None:
        merged["items"] = "\n".join(template.item.format_map(_Values(item)) for item in items)
    return template.body.format_map(merged).strip()


_EN_BASIC: dict[str, LayerTemplate] = {
    "factor_attribution": LayerTemplate(
        title="What drives the risk",
        body="Overall risk: {level}.\n{items}",
        item="- {title}: {share_pct}% of the risk",
    ),
    "counterfactual": LayerTemplate(
        title="One change that helps",
        body="If you {change}, the risk can drop from {from_level} to {to_level}.",
        empty="No single small change lowers the risk below {level}.",
    ),
    "causal_narrative": LayerTemplate(
        title="Why this can happen",
        body="{items}",
        item="- {condition}. Then {mechanism}. So {outcome}.",
    ),
    "peer_narrative": LayerTemplate(
        title="What similar farms did",
        body="{practice_pct}% of {farm_count} similar farms chose to {practice}. {good_pct}% of them had a good season.",
    ),
}

_EN_INTERMEDIATE: dict[str, LayerTemplate] = {
    "factor_attribution": LayerTemplate(
        title="Risk contributions",
        body="Overall level {level} (confidence {confidence_pct}%).\n{items}",
        item="- {title} ({band}): {share_pct}% of total risk",
    ),
    "counterfactual": LayerTemplate(
        title="Smallest change that lowers the level",
        body="Changing one thing ({change}) would move the level from {from_level} to {to_level}.",
        empty="None of the small single changes checked would move the level below {level}.",
    ),
    "causal_narrative": LayerTemplate(
        title="Cause and effect",
        body="{items}",
        item="- Because {condition}, {mechanism}; as a result {outcome}.",
    ),
    "peer_narrative": LayerTemplate(
        title="Peer farms",
        body=(
            "Among {farm_count} comparable farms in {region}, {practice_pct}% chose to {practice}; "
            "{good_pct}% reported a good outcome."
        ),
    ),
}

_EN_ADVANCED: dict[str, LayerTemplate] = {
    "factor_attribution": LayerTemplate(
        title="Factor attribution",
        body="Level {level}, confidence {confidence}, risk score {risk_score}.\n{items}",
        item="- {factor_id}: share {share}, severity {severity} x probability {probability} ({band}), model {model_version}",
    ),
    "counterfactual": LayerTemplate(
        title="Counterfactual",
        body=(
            "Minimal single change found: {change} (lever {lever}, magnitude {magnitude}) "
            "moves the level {from_level} -> {to_level} (score {from_score} -> {to_score}); "
            "{candidates_checked} candidates checked."
        ),
        empty="No single-change candidate lowered the level below {level} ({candidates_checked} candidates checked).",
    ),
    "causal_narrative": LayerTemplate(
        title="Causal chain",
        body="{items}",
        item="- [{factor_id}] condition: {condition} -> mechanism: {mechanism} -> outcome: {outcome}",
    ),
    "peer_narrative": LayerTemplate(
        title="Cohort statistics",
        body=(
            "Cohort {cluster_id} (n={farm_count}, region {region}, pattern {crop_pattern}, "
            "mean size {mean_farm_size_ha} ha): {practice_pct}% chose {practice}; outcome mix {outcome_mix}."
        ),
    ),
}

_HI_BASIC: dict[str, LayerTemplate] = {
    "factor_attribution": LayerTemplate(
        title="जोखिम किस वजह से है",
        body="कुल जोखिम: {level}।\n{items}",
        item="- {title}: जोखिम का {share_pct}%",
    ),
    "counterfactual": LayerTemplate(
        title="एक बदलाव जो मदद करेगा",
        body="अगर आप यह करें: {change}, तो जोखिम {from_level} से घटकर {to_level} हो सकता है।",
        empty="कोई एक छोटा बदलाव जोखिम को {level} से कम नहीं करता।",
    ),
    "causal_narrative": LayerTemplate(
        title="ऐसा क्यों हो सकता है",
        body="{items}",
        item="- {condition}। इससे {mechanism}। नतीजा: {outcome}।",
    ),
    "peer_narrative": LayerTemplate(
        title="मिलते-जुलते खेतों ने क्या किया",
        body="{farm_count} मिलते-जुलते खेतों में से {practice_pct}% ने चुना: {practice}। उनमें से {good_pct}% का मौसम अच्छा रहा।",
    ),
}

BUILTIN_TEMPLATES: dict[tuple[str, str], dict[str, LayerTemplate]] = {
    ("en", "basic"): _EN_BASIC,
    ("en", "intermediate"): _EN_INTERMEDIATE,
    ("en", "advanced"): _EN_ADVANCED,
    ("hi", "basic"): _HI_BASIC,
}


class TemplateRegistry:
    def __init__(self, template_dir: Optional[Path] = None):
        self._templates: dict[tuple[str, str], dict[str, LayerTemplate]] = {
            key: dict(value) for key, value in BUILTIN_TEMPLATES.items()
        }
        if template_dir is not None:
            self._load_overrides(template_dir)

    def resolve(self, layer: str, locale: str, literacy: str) -> tuple[LayerTemplate, str, str]:
        """Template for ``layer`` plus the (locale, literacy) actually used after fallback."""
        locale = _normalize(locale) or FALLBACK_LOCALE
        literacy = _normalize(literacy) or FALLBACK_LITERACY
        for key in ((locale, literacy), (locale, FALLBACK_LITERACY), (FALLBACK_LOCALE, literacy)):
            template = self._templates.get(key, {}).get(layer)
            if template is not None:
                return template, key[0], key[1]
        template = self._templates[(FALLBACK_LOCALE, FALLBACK_LITERACY)][layer]
        return template, FALLBACK_LOCALE, FALLBACK_LITERACY

    def locales(self) -> list[str]:
        return sorted({locale for locale, _ in self._templates})

    def _load_overrides(self, root: Path) -> None:
        if not root.exists():
            raise ValueError(f"Template directory not found: {root}")
        if not root.is_dir():
            raise ValueError(f"Template path is not a directory: {root}")
        for locale_dir in sorted(root.iterdir()):
            if not locale_dir.is_dir():
                continue
            for path in sorted(locale_dir.glob("*.json")):
                key = (_normalize(locale_dir.name), _normalize(path.stem))
                layers = self._templates.setdefault(key, {})
                layers.update(_load_template_file(path))
                logger.info("explanation_templates_loaded path=%s layers=%s", str(path), sorted(layers))


def _load_template_file(path: Path) -> dict[str, LayerTemplate]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Template file must hold an object: {path}")
    loaded: dict[str, LayerTemplate] = {}
    for layer, spec in raw.items():
        if layer not in LAYER_NAMES:
            raise ValueError(f"Unknown explanation layer '{layer}' in {path}")
        if not isinstance(spec, dict) or not str(spec.get("body", "")).strip():
            raise ValueError(f"Template '{layer}' in {path} needs a non-empty body")
        loaded[layer] = LayerTemplate(
            title=str(spec.get("title", layer.replace("_", " ").title())),
            body=str(spec["body"]),
            item=str(spec.get("item", "")),
            empty=str(spec.get("empty", "")),
        )
    return loaded


def _normalize(raw: str) -> str:
    return str(raw or "").strip().lower().replace("-", "_")
