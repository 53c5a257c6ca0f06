from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _project_root() -> Path:
    # farmrisk/internal_core/config.py -> farmrisk -> repo root
    return Path(__file__).resolve().parents[2]


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _env_set(name: str) -> bool:
    value = os.getenv(name)
    return value is not None and value != ""


def _getenv_int_preset(name: str, default: int, preset_value: Optional[int]) -> int:
    if _env_set(name):
        return _getenv_int(name, default)
    if preset_value is not None:
        return int(preset_value)
    return default


def _getenv_float_preset(name: str, default: float, preset_value: Optional[float]) -> float:
    if _env_set(name):
        return _getenv_float(name, default)
    if preset_value is not None:
        return float(preset_value)
    return default


def _preset_overrides(name: str) -> dict[str, object]:
    if name == "smallholder_conservative_v1":
        return {
            "FARMRISK_SOIL_CONFIDENCE_THRESHOLD": 0.7,
            "FARMRISK_WATER_DEBT_RISK_FRACTION": 0.2,
            "FARMRISK_WATER_DEBT_RISK_MAX_COST": 8000.0,
            "FARMRISK_COHORT_MIN_K": 8,
            "FARMRISK_COHORT_MIN_L": 3,
        }
    return {}


@dataclass(frozen=True)
class AdvisorConfig:
    FARMRISK_PRESET: str
    FARMRISK_LOG_LEVEL: str
    FARMRISK_SOIL_CONFIDENCE_THRESHOLD: float
    FARMRISK_WATER_DEBT_RISK_FRACTION: float
    FARMRISK_WATER_DEBT_RISK_MAX_COST: float
    FARMRISK_HOURS_PER_WORKER_WEEK: float
    FARMRISK_COHORT_MIN_K: int
    FARMRISK_COHORT_MIN_L: int
    FARMRISK_COHORT_REBUILD_SECONDS: int
    FARMRISK_ANALYZER_TIMEOUT_SEC: float
    FARMRISK_LAYER_TIMEOUT_SEC: float
    FARMRISK_ADAPTER_TIMEOUT_SEC: float
    FARMRISK_REQUEST_TIMEOUT_SEC: float
    FARMRISK_CONFIDENCE_ANALYZER_WEIGHT: float
    FARMRISK_COUNTERFACTUAL_MAX_CANDIDATES: int
    FARMRISK_DEFAULT_LOCALE: str
    FARMRISK_DEFAULT_LITERACY: str
    FARMRISK_TEMPLATE_DIR: str
    FARMRISK_OUTCOME_LOG_PATH: str
    FARMRISK_EXPLANATIONS_ENABLED: bool

    def template_dir_path(self, repo_root: Path) -> Optional[Path]:
        if not self.FARMRISK_TEMPLATE_DIR:
            return None
        return (repo_root / self.FARMRISK_TEMPLATE_DIR).resolve()

    def outcome_log_path(self, repo_root: Path) -> Optional[Path]:
        if not self.FARMRISK_OUTCOME_LOG_PATH:
            return None
        return (repo_root / self.FARMRISK_OUTCOME_LOG_PATH).resolve()


def load_config() -> AdvisorConfig:
    preset_name = _getenv_str("FARMRISK_PRESET", "")
    preset = _preset_overrides(preset_name)

    return AdvisorConfig(
        FARMRISK_PRESET=preset_name,
        FARMRISK_LOG_LEVEL=_getenv_str("FARMRISK_LOG_LEVEL", "INFO"),
        FARMRISK_SOIL_CONFIDENCE_THRESHOLD=_getenv_float_preset(
            "FARMRISK_SOIL_CONFIDENCE_THRESHOLD",
            0.6,
            preset.get("FARMRISK_SOIL_CONFIDENCE_THRESHOLD"),
        ),
        FARMRISK_WATER_DEBT_RISK_FRACTION=_getenv_float_preset(
            "FARMRISK_WATER_DEBT_RISK_FRACTION",
            0.3,
            preset.get("FARMRISK_WATER_DEBT_RISK_FRACTION"),
        ),
        FARMRISK_WATER_DEBT_RISK_MAX_COST=_getenv_float_preset(
            "FARMRISK_WATER_DEBT_RISK_MAX_COST",
            15000.0,
            preset.get("FARMRISK_WATER_DEBT_RISK_MAX_COST"),
        ),
        FARMRISK_HOURS_PER_WORKER_WEEK=_getenv_float("FARMRISK_HOURS_PER_WORKER_WEEK", 42.0),
        FARMRISK_COHORT_MIN_K=_getenv_int_preset(
            "FARMRISK_COHORT_MIN_K", 5, preset.get("FARMRISK_COHORT_MIN_K")
        ),
        FARMRISK_COHORT_MIN_L=_getenv_int_preset(
            "FARMRISK_COHORT_MIN_L", 2, preset.get("FARMRISK_COHORT_MIN_L")
        ),
        FARMRISK_COHORT_REBUILD_SECONDS=_getenv_int("FARMRISK_COHORT_REBUILD_SECONDS", 3600),
        FARMRISK_ANALYZER_TIMEOUT_SEC=_getenv_float("FARMRISK_ANALYZER_TIMEOUT_SEC", 2.0),
        FARMRISK_LAYER_TIMEOUT_SEC=_getenv_float("FARMRISK_LAYER_TIMEOUT_SEC", 2.0),
        FARMRISK_ADAPTER_TIMEOUT_SEC=_getenv_float("FARMRISK_ADAPTER_TIMEOUT_SEC", 1.5),
        FARMRISK_REQUEST_TIMEOUT_SEC=_getenv_float("FARMRISK_REQUEST_TIMEOUT_SEC", 8.0),
        FARMRISK_CONFIDENCE_ANALYZER_WEIGHT=_getenv_float(
            "FARMRISK_CONFIDENCE_ANALYZER_WEIGHT", 0.6
        ),
        FARMRISK_COUNTERFACTUAL_MAX_CANDIDATES=_getenv_int(
            "FARMRISK_COUNTERFACTUAL_MAX_CANDIDATES", 3
        ),
        FARMRISK_DEFAULT_LOCALE=_getenv_str("FARMRISK_DEFAULT_LOCALE", "en"),
        FARMRISK_DEFAULT_LITERACY=_getenv_str("FARMRISK_DEFAULT_LITERACY", "basic"),
        FARMRISK_TEMPLATE_DIR=_getenv_str("FARMRISK_TEMPLATE_DIR", ""),
        FARMRISK_OUTCOME_LOG_PATH=_getenv_str("FARMRISK_OUTCOME_LOG_PATH", ""),
        FARMRISK_EXPLANATIONS_ENABLED=_getenv_bool("FARMRISK_EXPLANATIONS_ENABLED", True),
    )


def project_root() -> Path:
    return _project_root()
